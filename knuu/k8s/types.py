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

"""Plain descriptions of the workloads knuu renders into manifests."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class Volume:
    """Persistent volume mounted into an instance container.

    Attributes:
        path: Mount path inside the container.
        size: Kubernetes quantity string, e.g. ``1Gi``.
        owner: Numeric uid/gid that should own the mounted tree.
    """

    path: str
    size: str
    owner: int = 0


@dataclass
class File:
    """File delivered to the container through the instance ConfigMap.

    Attributes:
        source: Local path of the file contents.
        dest: Absolute destination path inside the container.
        chown: ``user:group`` ownership requested for the file.
        permission: Octal permission string such as ``0644``.
    """

    source: str
    dest: str
    chown: str = ""
    permission: str = ""


@dataclass
class ContainerConfig:
    name: str
    image: str
    image_pull_policy: str = "IfNotPresent"
    command: list[str] = field(default_factory=list)
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    volumes: list[Volume] = field(default_factory=list)
    files: list[File] = field(default_factory=list)
    files_config_map: str = ""
    memory_request: str = ""
    memory_limit: str = ""
    cpu_request: str = ""
    liveness_probe: Any = None
    readiness_probe: Any = None
    startup_probe: Any = None
    security_context: dict | None = None
    tcp_ports: list[int] = field(default_factory=list)
    udp_ports: list[int] = field(default_factory=list)


@dataclass
class PodConfig:
    name: str
    labels: dict[str, str]
    service_account_name: str
    container: ContainerConfig
    sidecars: list[ContainerConfig] = field(default_factory=list)
    fs_group: int | None = None
    annotations: dict[str, str] = field(default_factory=dict)
    node_selector: dict[str, str] = field(default_factory=dict)


@dataclass
class ReplicaSetConfig:
    name: str
    labels: dict[str, str]
    pod: PodConfig
    replicas: int = 1
