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

"""Companion workloads co-scheduled in their parent's pod.

A sidecar is an ordinary instance, prepared and committed by a
:class:`SidecarManager`, whose container is added to the parent's pod. The
parent drives its lifecycle: sidecar states follow the parent's and a
sidecar has no Service of its own.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Protocol, runtime_checkable

from knuu.context import Context
from knuu.errors import InvalidStateTransitionError, SidecarError, ValidationError
from knuu.instance.state import InstanceState, allowed_in, check_state

if TYPE_CHECKING:
    from knuu.instance.instance import Instance
    from knuu.system import SystemDependencies


@runtime_checkable
class SidecarManager(Protocol):
    """Capabilities a companion workload provides to be attached to an instance."""

    def initialize(self, ctx: Context, name_prefix: str, sys_deps: SystemDependencies) -> None:
        """Create, configure and commit the sidecar instance, named from *name_prefix*."""

    def instance(self) -> Instance | None:
        """The sidecar's own instance, once initialized."""

    def pre_start(self, ctx: Context) -> None:
        """Hook run right before the shared pod is deployed."""

    def clone(self, name_prefix: str) -> SidecarManager:
        """Copy of this sidecar whose instance is named from *name_prefix*."""


class Sidecars:
    """Sidecars attached to an instance, or the sidecar flag of an attached one."""

    def __init__(self, instance) -> None:
        self.instance = instance
        self.is_sidecar = False
        self.sidecars: list[SidecarManager] = []

    @allowed_in(InstanceState.PREPARING, InstanceState.COMMITTED)
    def add(self, ctx: Context, sc: SidecarManager | None) -> None:
        """Initialize *sc* and attach its instance to this one.

        Raises:
            ValidationError: If this instance is itself a sidecar, *sc* is
                None, has no instance, or hosts sidecars of its own.
            InvalidStateTransitionError: If the sidecar instance is not committed.
        """
        host = self.instance
        if self.is_sidecar:
            raise ValidationError(f"sidecar '{host.name}' cannot host sidecars")
        if sc is None:
            raise ValidationError(f"cannot add a None sidecar to '{host.name}'")

        sc.initialize(ctx, host.name, host.sys)
        sc_instance = sc.instance()
        if sc_instance is None:
            raise ValidationError(f"sidecar added to '{host.name}' has no instance")
        if sc_instance.sidecars.sidecars:
            raise ValidationError(f"'{sc_instance.name}' hosts sidecars and cannot be a sidecar")
        if sc_instance.state != InstanceState.COMMITTED:
            raise InvalidStateTransitionError("add sidecar", sc_instance.state, sc_instance.name)

        self.sidecars.append(sc)
        sc_instance.sidecars.is_sidecar = True
        sc_instance.set_parent(host)
        host.logger.debug("Added sidecar '%s' to instance '%s'", sc_instance.name, host.name)

    def apply_function_to_sidecars(self, fn: Callable[[SidecarManager], None]) -> None:
        """Call *fn* on every sidecar in order, stopping at the first failure.

        Raises:
            SidecarError: Wrapping the failure, naming the sidecar.
        """
        for sc in self.sidecars:
            try:
                fn(sc)
            except Exception as err:
                raise SidecarError(sc.instance().name, err) from err

    def verify_sidecars_states(self) -> None:
        def verify(sc: SidecarManager) -> None:
            check_state(sc.instance(), "start sidecar", InstanceState.COMMITTED, InstanceState.STOPPED)

        self.apply_function_to_sidecars(verify)

    def set_state_for_sidecars(self, state: InstanceState) -> None:
        # the parent drives timing, so sidecar transitions are not re-checked
        for sc in self.sidecars:
            sc.instance().set_state(state)

    def clone(self, instance) -> Sidecars:
        """Clone every sidecar for *instance*, named from its name."""
        cloned = Sidecars(instance)
        for sc in self.sidecars:
            cloned_sc = sc.clone(instance.name)
            sc_instance = cloned_sc.instance()
            sc_instance.sidecars.is_sidecar = True
            sc_instance.set_parent(instance)
            cloned.sidecars.append(cloned_sc)
        return cloned
