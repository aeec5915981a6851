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

"""The Instance aggregate: identity, state and its sub-configurations."""

from __future__ import annotations

import logging
import weakref
from typing import TYPE_CHECKING

from knuu.instance.build import Build
from knuu.instance.chaos import ChaosMesh
from knuu.instance.execution import Execution
from knuu.instance.monitoring import Monitoring
from knuu.instance.network import Network
from knuu.instance.pool import InstancePool, new_pool
from knuu.instance.proxy import InstanceProxy
from knuu.instance.resources import Resources
from knuu.instance.security import Security
from knuu.instance.sidecars import Sidecars
from knuu.instance.state import InstanceState, InstanceType, allowed_in
from knuu.instance.storage import Storage
from knuu.names import sanitize_name

if TYPE_CHECKING:
    from knuu.system import SystemDependencies


class Instance:
    """A deployable unit, eventually one pod running one container per sidecar.

    Configuration is spread over sub-objects (``build``, ``network``,
    ``storage``, ``resources``, ``security``, ``monitoring``, ``sidecars``),
    orchestration lives in ``execution``, and ``proxy`` and ``chaos`` act on
    a running instance. Every mutator is guarded by the instance state.

    Args:
        name: Instance name, unique within *sys_deps* for the whole run.
        sys_deps: Shared collaborators of the run.

    Raises:
        ValidationError: If *name* has no valid cluster form.
        ResourceConflictError: If the name is already taken.
    """

    def __init__(self, name: str, sys_deps: SystemDependencies) -> None:
        k8s_name = sanitize_name(name)
        sys_deps.names.register(k8s_name)
        self.name = name
        self.k8s_name = k8s_name
        self.sys = sys_deps
        self.state = InstanceState.NONE
        self.instance_type = InstanceType.BASIC
        self._parent: weakref.ref | None = None

        self.build = Build(self)
        self.network = Network(self)
        self.storage = Storage(self)
        self.resources = Resources(self)
        self.security = Security(self)
        self.monitoring = Monitoring(self)
        self.sidecars = Sidecars(self)
        self.execution = Execution(self)
        self.proxy = InstanceProxy(self)
        self.chaos = ChaosMesh(self)

    def __repr__(self) -> str:
        return f"Instance(name={self.name!r}, state={self.state})"

    @property
    def logger(self) -> logging.Logger:
        return self.sys.logger

    @property
    def is_sidecar(self) -> bool:
        return self.sidecars.is_sidecar

    @property
    def parent_instance(self) -> Instance | None:
        if self._parent is None:
            return None
        return self._parent()

    def set_parent(self, parent: Instance) -> None:
        self._parent = weakref.ref(parent)

    def set_state(self, state: InstanceState) -> None:
        self.state = state
        self.logger.debug("Instance '%s' is now %s", self.name, state)

    def set_instance_type(self, instance_type: InstanceType) -> None:
        self.instance_type = instance_type

    @allowed_in(InstanceState.COMMITTED)
    def clone_with_name(self, name: str) -> Instance:
        """Return a committed copy of this instance named *name*.

        All configuration is deep-copied. Live cluster handles (service,
        replica set, chaos) start empty, and the copy is never a sidecar;
        attached sidecars are cloned along with it.
        """
        clone = Instance(name, self.sys)
        clone.instance_type = self.instance_type
        clone.build = self.build.clone(clone)
        clone.network = self.network.clone(clone)
        clone.storage = self.storage.clone(clone)
        clone.resources = self.resources.clone(clone)
        clone.security = self.security.clone(clone)
        clone.monitoring = self.monitoring.clone(clone)
        clone.chaos = self.chaos.clone(clone)
        clone.state = self.state
        if not self.is_sidecar:
            clone.sidecars = self.sidecars.clone(clone)
        return clone

    def release_names(self) -> None:
        """Give back the registered names of this instance and its sidecars."""
        self.sys.names.release(self.k8s_name)
        for sc in self.sidecars.sidecars:
            self.sys.names.release(sc.instance().k8s_name)

    def clone_with_suffix(self, suffix: str) -> Instance:
        return self.clone_with_name(self.name + suffix)

    def new_pool(self, amount: int) -> InstancePool:
        return new_pool(self, amount)

