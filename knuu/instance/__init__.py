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

"""Instance state machine, sub-configurations and orchestration."""

from knuu.instance.execution import batch_destroy
from knuu.instance.instance import Instance
from knuu.instance.pool import InstancePool
from knuu.instance.sidecars import SidecarManager
from knuu.instance.state import InstanceState, InstanceType

__all__ = [
    "Instance",
    "InstancePool",
    "InstanceState",
    "InstanceType",
    "SidecarManager",
    "batch_destroy",
]
