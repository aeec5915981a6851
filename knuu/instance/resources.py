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

"""Compute requests and limits, and the namespace-scoped resources of an instance."""

from __future__ import annotations

from knuu.context import Context
from knuu.instance.state import InstanceState, allowed_in
from knuu.instance.storage import validate_quantity


def _merge_ports(*port_lists: list[int]) -> list[int]:
    merged: list[int] = []
    for ports in port_lists:
        for port in ports:
            if port not in merged:
                merged.append(port)
    return merged


class Resources:
    """Memory and CPU settings plus deploy/destroy of Service, volume and files."""

    def __init__(self, instance) -> None:
        self.instance = instance
        self.memory_request = ""
        self.memory_limit = ""
        self.cpu_request = ""

    @allowed_in(InstanceState.PREPARING, InstanceState.COMMITTED)
    def set_memory(self, request: str, limit: str) -> None:
        validate_quantity(request, "memory request")
        validate_quantity(limit, "memory limit")
        self.memory_request = request
        self.memory_limit = limit

    @allowed_in(InstanceState.PREPARING, InstanceState.COMMITTED)
    def set_cpu(self, request: str) -> None:
        validate_quantity(request, "cpu request")
        self.cpu_request = request

    def service_ports(self) -> tuple[list[int], list[int]]:
        """TCP and UDP ports of this instance and all of its sidecars."""
        instances = [self.instance] + [sc.instance() for sc in self.instance.sidecars.sidecars]
        tcp = _merge_ports(*(i.network.ports_tcp for i in instances))
        udp = _merge_ports(*(i.network.ports_udp for i in instances))
        return tcp, udp

    def deploy_resources(self, ctx: Context) -> None:
        """Deploy Service, then volume, then files.

        Sidecars skip the Service; they are reached through their parent's.
        """
        instance = self.instance
        if not instance.is_sidecar:
            tcp, udp = self.service_ports()
            if tcp or udp:
                instance.network.deploy_or_patch_service(tcp, udp)
        if instance.storage.volumes:
            instance.storage.deploy_volume()
        if instance.storage.files:
            instance.storage.deploy_files()
        instance.logger.debug("Deployed resources for instance '%s'", instance.name)

    def destroy_resources(self, ctx: Context) -> None:
        instance = self.instance
        if instance.storage.volumes:
            instance.storage.destroy_volume()
        if instance.storage.files:
            instance.storage.destroy_files()
        if not instance.is_sidecar:
            instance.network.destroy_service()
        instance.logger.debug("Destroyed resources for instance '%s'", instance.name)

    def clone(self, instance) -> Resources:
        cloned = Resources(instance)
        cloned.memory_request = self.memory_request
        cloned.memory_limit = self.memory_limit
        cloned.cpu_request = self.cpu_request
        return cloned
