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

"""Ports, the instance Service, port forwarding, and network isolation."""

from __future__ import annotations

import socket
import time

from tenacity import RetryError, retry_if_exception_type, stop_after_attempt

from knuu.constants import (
    PORT_FORWARD_DIAL_TIMEOUT,
    PORT_FORWARD_MAX_RETRIES,
    PORT_FORWARD_RETRY_INTERVAL,
)
from knuu.context import Context
from knuu.errors import (
    DependencyError,
    NotReadyError,
    PortForwardError,
    ValidationError,
    WaitTimeoutError,
)
from knuu.instance.state import InstanceState, allowed_in
from knuu.k8s.manifests import deny_all_network_policy_manifest, service_manifest
from knuu.waiting import retrying_for

MIN_PORT = 1
MAX_PORT = 65535


def validate_port(port: int) -> None:
    if not isinstance(port, int) or isinstance(port, bool) or not MIN_PORT <= port <= MAX_PORT:
        raise ValidationError(f"port {port!r} is out of range {MIN_PORT}-{MAX_PORT}")


def free_local_port() -> int:
    """Ask the OS for a currently unused local TCP port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def dial(port: int, timeout: float) -> bool:
    """Return True once a TCP connection to localhost:*port* succeeds within *timeout*."""
    deadline = time.monotonic() + timeout
    while True:
        try:
            with socket.create_connection(("127.0.0.1", port), timeout=timeout):
                return True
        except OSError:
            if time.monotonic() >= deadline:
                return False
            time.sleep(0.1)


class Network:
    """Port registration and network-facing operations of an instance."""

    def __init__(self, instance) -> None:
        self.instance = instance
        self.ports_tcp: list[int] = []
        self.ports_udp: list[int] = []
        self.service = None
        self.port_forwards: list = []

    def _add_port(self, ports: list[int], port: int, protocol: str) -> None:
        validate_port(port)
        if port in ports:
            raise ValidationError(f"{protocol} port {port} is already registered on '{self.instance.name}'")
        ports.append(port)
        if self.instance.state == InstanceState.STOPPED:
            # a sidecar port lands on its parent's service
            owner = self.instance.execution.pod_owner()
            owner.network.deploy_or_patch_service(*owner.resources.service_ports())

    @allowed_in(InstanceState.PREPARING, InstanceState.COMMITTED, InstanceState.STOPPED)
    def add_port_tcp(self, port: int) -> None:
        self._add_port(self.ports_tcp, port, "TCP")
        self.instance.logger.debug("Added TCP port %d to instance '%s'", port, self.instance.name)

    @allowed_in(InstanceState.PREPARING, InstanceState.COMMITTED, InstanceState.STOPPED)
    def add_port_udp(self, port: int) -> None:
        self._add_port(self.ports_udp, port, "UDP")
        self.instance.logger.debug("Added UDP port %d to instance '%s'", port, self.instance.name)

    def host_name(self) -> str:
        """Service name reaching this instance; a sidecar answers on its parent's."""
        return self.instance.execution.pod_owner().k8s_name

    @allowed_in(InstanceState.STARTED)
    def get_ip(self, ctx: Context) -> str:
        """Return the cluster IP of the instance Service, deploying it if missing."""
        k8s = self.instance.sys.k8s
        owner = self.instance.execution.pod_owner()
        ip = k8s.get_service_ip(owner.k8s_name)
        if not ip:
            owner.network.deploy_or_patch_service(*owner.resources.service_ports())
            ip = k8s.get_service_ip(owner.k8s_name)
        if not ip:
            raise DependencyError("get ip", owner.k8s_name, "service has no cluster IP")
        return ip

    @allowed_in(InstanceState.STARTED)
    def port_forward_tcp(self, ctx: Context, port: int) -> int:
        """Forward a free local port to *port* of the instance pod.

        Returns:
            The local port.

        Raises:
            ValidationError: If *port* is not a registered TCP port.
            WaitTimeoutError: If *ctx* ends before forwarding is up.
            PortForwardError: If every attempt failed.
        """
        validate_port(port)
        if port not in self.ports_tcp:
            raise ValidationError(f"TCP port {port} is not registered on '{self.instance.name}'")
        k8s = self.instance.sys.k8s
        pod = self.instance.execution.first_pod_name()
        local_port = free_local_port()

        def attempt():
            if ctx.done():
                raise WaitTimeoutError(f"port forward to {self.instance.k8s_name}:{port}: {ctx.reason()}")
            forward = k8s.port_forward(pod, local_port, port)
            if not dial(local_port, PORT_FORWARD_DIAL_TIMEOUT):
                forward.close()
                raise NotReadyError(f"local port {local_port} is not accepting connections")
            return forward

        retrying = retrying_for(
            ctx,
            PORT_FORWARD_RETRY_INTERVAL,
            stop=stop_after_attempt(PORT_FORWARD_MAX_RETRIES),
            retry=retry_if_exception_type((NotReadyError, DependencyError)),
        )
        try:
            forward = retrying(attempt)
        except RetryError as err:
            if ctx.done():
                raise WaitTimeoutError(f"port forward to {self.instance.k8s_name}:{port}: {ctx.reason()}") from err
            raise PortForwardError("port forward", self.instance.k8s_name,
                                   f"gave up after {PORT_FORWARD_MAX_RETRIES} attempts") from err
        self.port_forwards.append(forward)
        self.instance.logger.debug("Forwarding localhost:%d to %s:%d", local_port, pod, port)
        return local_port

    # ------------------------------------------------------------------
    # Service
    # ------------------------------------------------------------------

    def deploy_or_patch_service(self, tcp_ports: list[int], udp_ports: list[int]) -> None:
        """Create the instance Service, or patch it in place when it exists."""
        instance = self.instance
        if instance.is_sidecar:
            raise ValidationError(f"sidecar '{instance.name}' cannot own a service")
        if not tcp_ports and not udp_ports:
            return
        k8s = instance.sys.k8s
        labels = instance.execution.labels()
        manifest = service_manifest(instance.k8s_name, k8s.namespace, labels, labels, tcp_ports, udp_ports)
        if k8s.get_service(instance.k8s_name) is None:
            self.service = k8s.create_service(manifest)
            instance.logger.debug("Deployed service for instance '%s'", instance.name)
        else:
            self.service = k8s.patch_service(instance.k8s_name, manifest)
            instance.logger.debug("Patched service for instance '%s'", instance.name)

    def destroy_service(self) -> None:
        if self.service is None:
            return
        self.instance.sys.k8s.delete_service(self.instance.k8s_name)
        self.service = None

    def close_port_forwards(self) -> None:
        for forward in self.port_forwards:
            forward.close()
        self.port_forwards = []

    # ------------------------------------------------------------------
    # Isolation
    # ------------------------------------------------------------------

    def _policy_name(self) -> str:
        return self.instance.execution.pod_owner().k8s_name

    @allowed_in(InstanceState.STARTED)
    def disable(self, ctx: Context) -> None:
        """Cut all ingress and egress traffic of the instance pod."""
        k8s = self.instance.sys.k8s
        owner = self.instance.execution.pod_owner()
        manifest = deny_all_network_policy_manifest(
            self._policy_name(), k8s.namespace, owner.execution.labels(),
        )
        k8s.create_network_policy(manifest)
        self.instance.logger.debug("Disabled network of instance '%s'", self.instance.name)

    @allowed_in(InstanceState.STARTED)
    def enable(self, ctx: Context) -> None:
        self.instance.sys.k8s.delete_network_policy(self._policy_name())
        self.instance.logger.debug("Enabled network of instance '%s'", self.instance.name)

    @allowed_in(InstanceState.STARTED)
    def is_disabled(self, ctx: Context) -> bool:
        return self.instance.sys.k8s.network_policy_exists(self._policy_name())

    def enable_if_disabled(self, ctx: Context) -> None:
        """Remove the isolation policy if present; used during destroy."""
        k8s = self.instance.sys.k8s
        if k8s.network_policy_exists(self._policy_name()):
            k8s.delete_network_policy(self._policy_name())
            self.instance.logger.debug("Re-enabled network of instance '%s'", self.instance.name)

    def clone(self, instance) -> Network:
        cloned = Network(instance)
        cloned.ports_tcp = list(self.ports_tcp)
        cloned.ports_udp = list(self.ports_udp)
        return cloned
