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

"""Shared dependencies handed to every instance of a test run."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from knuu import logger as knuu_logger
from knuu.config import KnuuConfig
from knuu.names import NameRegistry


class ImageCache:
    """Thread-safe map from build fingerprint to pushed image name.

    Concurrent builds with the same fingerprint are serialized so the image
    is pushed only once.
    """

    def __init__(self) -> None:
        self._images: dict[str, str] = {}
        self._key_locks: dict[str, threading.Lock] = {}
        self._lock = threading.Lock()

    def get(self, image_hash: str) -> str | None:
        with self._lock:
            return self._images.get(image_hash)

    def put(self, image_hash: str, image_name: str) -> None:
        with self._lock:
            self._images[image_hash] = image_name

    def get_or_create(self, image_hash: str, create: Callable[[], str]) -> tuple[str, bool]:
        """Return the cached name for *image_hash*, calling *create* on a miss.

        Returns:
            Tuple of (image_name, created).
        """
        with self._lock:
            if image_hash in self._images:
                return self._images[image_hash], False
            key_lock = self._key_locks.setdefault(image_hash, threading.Lock())
        with key_lock:
            cached = self.get(image_hash)
            if cached is not None:
                return cached, False
            image_name = create()
            self.put(image_hash, image_name)
            return image_name, True

    def __len__(self) -> int:
        with self._lock:
            return len(self._images)


@dataclass
class SystemDependencies:
    """Collaborators and identifiers shared by all instances of a run.

    Owned by the caller (usually a :class:`knuu.knuu.Knuu` session) and
    borrowed by every instance; instances never replace its members.

    Attributes:
        k8s: Cluster resource client bound to the test namespace.
        image_builder: Factory for image builder sessions.
        proxy: Proxy registrar, or None when no proxy is deployed.
        scope: Test scope identifier, also the namespace name.
        start_time: When the run started, used for the test-started label.
        config: Session configuration.
        logger: Logger used by instances.
        image_cache: Shared build fingerprint to image name map.
        names: Registry of instance names in use.
    """

    k8s: Any
    image_builder: Any
    scope: str
    proxy: Any = None
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    config: KnuuConfig = field(default_factory=KnuuConfig)
    logger: logging.Logger = knuu_logger
    image_cache: ImageCache = field(default_factory=ImageCache)
    names: NameRegistry = field(default_factory=NameRegistry)
