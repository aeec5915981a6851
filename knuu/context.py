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

"""Cancellation and deadline context passed to every blocking operation."""

from __future__ import annotations

import threading
import time
import weakref


class Context:
    """Cancellation signal with an optional deadline.

    Children created with :meth:`with_timeout` or :meth:`with_cancel` are
    cancelled together with their parent, and a child's deadline can only be
    shorter than the parent's.
    """

    def __init__(self, deadline: float | None = None, parent: Context | None = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: weakref.WeakSet[Context] = weakref.WeakSet()
        self._parent = parent
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self.deadline = deadline
        if parent is not None:
            parent._attach(self)

    @classmethod
    def background(cls) -> Context:
        """Return a context that is never cancelled on its own."""
        return cls()

    def with_timeout(self, seconds: float) -> Context:
        """Derive a child context that expires after *seconds*."""
        return Context(deadline=time.monotonic() + seconds, parent=self)

    def with_cancel(self) -> Context:
        """Derive a child context that can be cancelled independently."""
        return Context(parent=self)

    def _attach(self, child: Context) -> None:
        with self._lock:
            self._children.add(child)
            cancelled = self._event.is_set()
        if cancelled:
            child.cancel()

    def cancel(self) -> None:
        """Cancel this context and every context derived from it."""
        with self._lock:
            self._event.set()
            children = list(self._children)
        for child in children:
            child.cancel()

    def done(self) -> bool:
        if self._event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self) -> float | None:
        """Seconds left until the deadline, or None when there is none."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def reason(self) -> str:
        if self._event.is_set():
            return "context cancelled"
        if self.done():
            return "context deadline exceeded"
        return ""

    def sleep(self, seconds: float) -> None:
        """Sleep for *seconds*, waking early when the context is done."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        if seconds > 0:
            self._event.wait(seconds)
