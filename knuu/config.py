# /*
# Copyright 2026 The Knuu Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Configuration classes and option models."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from knuu.constants import (
    DEFAULT_BUILD_DIR_BASE,
    DEFAULT_BUILDER,
    DEFAULT_TIMEOUT_SECONDS,
    ENV_LOG_LEVEL,
    image_value,
)

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(h|ms|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def parse_duration(value: str | int | float) -> float:
    """Parse a duration such as ``90``, ``45s``, ``60m`` or ``1h30m`` into seconds.

    Raises:
        ValueError: If the string is not a duration.
    """
    if isinstance(value, (int, float)):
        return float(value)
    text = value.strip()
    if re.fullmatch(r"\d+(\.\d+)?", text):
        return float(text)
    parts = _DURATION_PART.findall(text)
    if not parts or "".join(n + u for n, u in parts) != text:
        raise ValueError(f"invalid duration '{value}'")
    return sum(float(n) * _DURATION_UNITS[u] for n, u in parts)


# ============================================================================
# Configuration classes
# ============================================================================

class KnuuConfig(BaseSettings):
    """Session configuration, auto-loaded from KNUU_* env vars.

    Attributes:
        timeout: Seconds before the timeout handler deletes the test scope.
        builder: Image builder backend.
        skip_cleanup: Keep cluster resources after the run (debugging aid).
        scope: Test scope, also used as the namespace. Generated when unset.
        log_level: Logging level name; ``LOG_LEVEL`` is honoured as well.
        image_registry: Registry host for pushed images without an explicit name.
        image_ttl: Tag suffix used for images pushed to the default registry.
        build_dir_base: Directory under which per-instance build contexts live.
        proxy_enabled: Whether a proxy registrar is wired into the session.
        proxy_endpoint: Externally reachable proxy host, or None to discover it.
    """

    model_config = SettingsConfigDict(env_prefix="KNUU_", extra="ignore", populate_by_name=True)

    timeout: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    builder: Literal["docker"] = DEFAULT_BUILDER
    skip_cleanup: bool = False
    scope: str | None = None
    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("KNUU_LOG_LEVEL", ENV_LOG_LEVEL, "log_level"),
    )
    image_registry: str = image_value("registry", "host", default="ttl.sh")
    image_ttl: str = image_value("registry", "ttl", default="24h")
    build_dir_base: str = DEFAULT_BUILD_DIR_BASE
    proxy_enabled: bool = False
    proxy_endpoint: str | None = None

    @field_validator("timeout", mode="before")
    @classmethod
    def _parse_timeout(cls, value):
        return parse_duration(value)

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()


# ============================================================================
# Options
# ============================================================================

@dataclass(frozen=True)
class GitContext:
    """Source location for building an image from a git repository.

    Attributes:
        repo: Repository URL.
        branch: Branch to check out, or empty for the default branch.
        commit: Commit to check out, or empty for the branch head.
        username: Optional user for authenticated clones.
        password: Optional password or token for authenticated clones.
    """

    repo: str
    branch: str = ""
    commit: str = ""
    username: str = ""
    password: str = ""

    def clean_repo(self) -> str:
        """Repository path without protocol and ``.git`` suffix."""
        repo = re.sub(r"^(https?|git|ssh|ftp)://", "", self.repo)
        repo = re.sub(r"\.git$", "", repo)
        return repo.rstrip("/")

    def build_context(self) -> str:
        """Render the context as ``git://[user[:pass]@]repo[#refs/heads/branch][#commit]``."""
        ctx = "git://"
        if self.username:
            ctx += self.username
            if self.password:
                ctx += f":{self.password}"
            ctx += "@"
        ctx += self.clean_repo()
        if self.branch:
            ctx += f"#refs/heads/{self.branch}"
        if self.commit:
            ctx += f"#{self.commit}"
        return ctx

    def clone_url(self) -> str:
        """HTTPS URL usable by ``git clone``."""
        auth = ""
        if self.username:
            auth = self.username + (f":{self.password}" if self.password else "") + "@"
        return f"https://{auth}{self.clean_repo()}.git"
