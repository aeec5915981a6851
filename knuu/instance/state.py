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

"""Instance states, instance types, and the state guard used by every mutator."""

from __future__ import annotations

import enum
import functools

from knuu.errors import InvalidStateTransitionError


class InstanceState(enum.Enum):
    NONE = "None"
    PREPARING = "Preparing"
    COMMITTED = "Committed"
    STARTED = "Started"
    STOPPED = "Stopped"
    DESTROYED = "Destroyed"

    def __str__(self) -> str:
        return self.value


class InstanceType(enum.Enum):
    BASIC = "BasicInstance"
    EXECUTOR = "ExecutorInstance"
    TIMEOUT_HANDLER = "TimeoutHandlerInstance"

    def __str__(self) -> str:
        return self.value


def check_state(instance, operation: str, *states: InstanceState) -> None:
    """Raise InvalidStateTransitionError unless *instance* is in one of *states*."""
    if instance.state not in states:
        raise InvalidStateTransitionError(operation, instance.state, instance.name)


def allowed_in(*states: InstanceState):
    """Decorator restricting a method to the given instance states.

    Works on methods of the Instance itself and of its sub-configuration
    objects, which reach their owner through ``self.instance``.
    """

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(self, *args, **kwargs):
            instance = getattr(self, "instance", self)
            check_state(instance, fn.__name__, *states)
            return fn(self, *args, **kwargs)

        return wrapper

    return decorator
