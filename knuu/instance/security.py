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

"""Container security context and RBAC policy rules."""

from __future__ import annotations

import copy
from typing import Any

from knuu.errors import ValidationError
from knuu.instance.state import InstanceState, allowed_in

_MUTABLE = (InstanceState.PREPARING, InstanceState.COMMITTED, InstanceState.STOPPED)


class Security:
    def __init__(self, instance) -> None:
        self.instance = instance
        self.policy_rules: list[Any] = []
        self.privileged = False
        self.capabilities_add: list[str] = []

    @allowed_in(*_MUTABLE)
    def add_policy_rule(self, rule: Any) -> None:
        """Grant the pod's service account *rule* (a V1PolicyRule or plain dict)."""
        if rule is None:
            raise ValidationError("policy rule must not be None")
        self.policy_rules.append(rule)

    @allowed_in(*_MUTABLE)
    def set_privileged(self, privileged: bool) -> None:
        self.privileged = privileged

    @allowed_in(*_MUTABLE)
    def add_kubernetes_capability(self, capability: str) -> None:
        if not capability:
            raise ValidationError("capability must not be empty")
        if capability not in self.capabilities_add:
            self.capabilities_add.append(capability)

    @allowed_in(*_MUTABLE)
    def add_kubernetes_capabilities(self, capabilities: list[str]) -> None:
        for capability in capabilities:
            self.add_kubernetes_capability(capability)

    def prepare_security_context(self) -> dict | None:
        """Container securityContext, or None when nothing was requested."""
        if not self.privileged and not self.capabilities_add:
            return None
        context: dict[str, Any] = {}
        if self.privileged:
            context["privileged"] = True
        if self.capabilities_add:
            context["capabilities"] = {"add": list(self.capabilities_add)}
        return context

    def clone(self, instance) -> Security:
        cloned = Security(instance)
        cloned.policy_rules = copy.deepcopy(self.policy_rules)
        cloned.privileged = self.privileged
        cloned.capabilities_add = list(self.capabilities_add)
        return cloned
