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

"""Kubernetes-safe names, random suffixes, and the instance name registry."""

from __future__ import annotations

import re
import threading
import uuid

from knuu.constants import K8S_NAME_MAX_LENGTH, RANDOM_SUFFIX_LENGTH
from knuu.errors import ResourceConflictError, ValidationError

_INVALID_CHARS = re.compile(r"[^a-z0-9-]+")


def sanitize_name(name: str) -> str:
    """Turn *name* into a valid DNS-1123 label.

    Lowercases, replaces disallowed characters with hyphens, trims hyphens
    at both ends and cuts the result to 63 characters.

    Raises:
        ValidationError: If nothing is left after sanitizing.
    """
    sanitized = _INVALID_CHARS.sub("-", name.lower()).strip("-")
    if len(sanitized) > K8S_NAME_MAX_LENGTH:
        sanitized = sanitized[:K8S_NAME_MAX_LENGTH].rstrip("-")
    if not sanitized:
        raise ValidationError(f"name '{name}' is empty after sanitizing")
    return sanitized


def random_k8s_name(prefix: str) -> str:
    """Return ``<prefix>-<8 random hex chars>``, sanitized."""
    suffix = uuid.uuid4().hex[:RANDOM_SUFFIX_LENGTH]
    return sanitize_name(f"{prefix}-{suffix}")


class NameRegistry:
    """Set of instance names in use, safe for concurrent registration."""

    def __init__(self) -> None:
        self._names: set[str] = set()
        self._lock = threading.Lock()

    def register(self, name: str) -> None:
        """Claim *name*.

        Raises:
            ResourceConflictError: If the name is already registered.
        """
        with self._lock:
            if name in self._names:
                raise ResourceConflictError(f"instance name '{name}' is already in use")
            self._names.add(name)

    def release(self, name: str) -> None:
        with self._lock:
            self._names.discard(name)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._names

    def __len__(self) -> int:
        with self._lock:
            return len(self._names)
