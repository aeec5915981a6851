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

"""Fixed-size groups of identically configured instances."""

from __future__ import annotations

from knuu.context import Context
from knuu.errors import KnuuError, ValidationError
from knuu.instance.state import InstanceState, check_state


class InstancePool:
    """Clones of one template, driven together.

    Every fan-out runs over the members in order and stops at the first error.
    """

    def __init__(self, instances: list) -> None:
        self._instances = list(instances)

    def __len__(self) -> int:
        return len(self._instances)

    def instances(self) -> list:
        return list(self._instances)

    def start(self, ctx: Context) -> None:
        for instance in self._instances:
            instance.execution.start(ctx)

    def start_without_wait(self, ctx: Context) -> None:
        for instance in self._instances:
            instance.execution.start_async(ctx)

    def wait_instance_pool_is_running(self, ctx: Context) -> None:
        for instance in self._instances:
            instance.execution.wait_instance_is_running(ctx)

    def destroy(self, ctx: Context) -> None:
        for instance in self._instances:
            instance.execution.destroy(ctx)


def new_pool(template, amount: int) -> InstancePool:
    """Clone the committed *template* into *amount* instances named ``<name>-<j>``.

    The template is consumed: it is marked Destroyed afterwards.

    Raises:
        InvalidStateTransitionError: If *template* is not committed.
        ValidationError: If *amount* is below one.
        ResourceConflictError: If a member name is taken; members cloned so
            far give their names back.
    """
    check_state(template, "new_pool", InstanceState.COMMITTED)
    if amount < 1:
        raise ValidationError(f"pool size must be at least 1, got {amount}")
    instances: list = []
    try:
        for j in range(amount):
            instances.append(template.clone_with_name(f"{template.name}-{j}"))
    except KnuuError:
        for instance in instances:
            instance.release_names()
        raise
    template.set_state(InstanceState.DESTROYED)
    template.logger.debug("Created pool of %d instances from '%s'", amount, template.name)
    return InstancePool(instances)
