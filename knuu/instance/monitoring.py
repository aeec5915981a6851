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

"""Container probes and log access."""

from __future__ import annotations

import copy
from typing import Any

from knuu.context import Context
from knuu.instance.state import InstanceState, allowed_in

_MUTABLE = (InstanceState.PREPARING, InstanceState.COMMITTED, InstanceState.STOPPED)


class Monitoring:
    """Liveness, readiness and startup probes.

    Probes are kubernetes ``V1Probe`` objects or plain dicts and are passed
    through to the container spec unchanged.
    """

    def __init__(self, instance) -> None:
        self.instance = instance
        self.liveness_probe: Any = None
        self.readiness_probe: Any = None
        self.startup_probe: Any = None

    @allowed_in(*_MUTABLE)
    def set_liveness_probe(self, probe: Any) -> None:
        self.liveness_probe = probe

    @allowed_in(*_MUTABLE)
    def set_readiness_probe(self, probe: Any) -> None:
        self.readiness_probe = probe

    @allowed_in(*_MUTABLE)
    def set_startup_probe(self, probe: Any) -> None:
        self.startup_probe = probe

    @allowed_in(InstanceState.STARTED)
    def logs(self, ctx: Context) -> str:
        """Return the current log of the instance container."""
        pod = self.instance.execution.first_pod_name()
        return self.instance.sys.k8s.get_pod_logs(pod, self.instance.k8s_name)

    def clone(self, instance) -> Monitoring:
        cloned = Monitoring(instance)
        cloned.liveness_probe = copy.deepcopy(self.liveness_probe)
        cloned.readiness_probe = copy.deepcopy(self.readiness_probe)
        cloned.startup_probe = copy.deepcopy(self.startup_probe)
        return cloned
