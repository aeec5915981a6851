"""Shared fixtures: in-memory cluster client, image builder, and proxy."""

from __future__ import annotations

import hashlib
import socket

import pytest

from knuu.config import KnuuConfig
from knuu.context import Context
from knuu.errors import DependencyError
from knuu.instance import Instance
from knuu.system import SystemDependencies


# ---------------------------------------------------------------------------
# Cluster client
# ---------------------------------------------------------------------------

class FakePortForward:
    """Listens on the local port so that dialing it succeeds."""

    def __init__(self, local_port: int, remote_port: int) -> None:
        self.local_port = local_port
        self.remote_port = remote_port
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind(("127.0.0.1", local_port))
        self._sock.listen(8)
        self.closed = False

    def alive(self) -> bool:
        return not self.closed

    def close(self) -> None:
        self._sock.close()
        self.closed = True


class FakeKubeClient:
    """Records every call and keeps created objects in dicts keyed by name."""

    def __init__(self, namespace: str = "test-scope") -> None:
        self.namespace = namespace
        self.calls: list[tuple[str, str]] = []
        self.namespace_present = False
        self.services: dict[str, dict] = {}
        self.pvcs: dict[str, dict] = {}
        self.config_maps: dict[str, dict] = {}
        self.service_accounts: dict[str, dict] = {}
        self.roles: dict[str, dict] = {}
        self.role_bindings: dict[str, dict] = {}
        self.replica_sets: dict[str, dict] = {}
        self.network_policies: dict[str, dict] = {}
        self.custom_resources: dict[tuple[str, str], dict] = {}
        self.ready = True
        self.crd_installed = True
        self.inject_chaos = True
        self.exec_result: tuple[str, str] = ("", "")
        self.exec_commands: list[tuple[str, str, list[str]]] = []
        self.fail_on: set[str] = set()
        self.port_forward_error: Exception | None = None
        self.port_forwards: list[FakePortForward] = []

    def _record(self, method: str, name: str) -> None:
        self.calls.append((method, name))
        if method in self.fail_on:
            raise DependencyError(method, name, "injected failure")

    def methods(self) -> list[str]:
        return [method for method, _ in self.calls]

    # namespaces

    def namespace_exists(self) -> bool:
        return self.namespace_present

    def create_namespace(self, labels=None) -> None:
        self._record("create_namespace", self.namespace)
        self.namespace_present = True

    def delete_namespace(self, ctx=None) -> None:
        self._record("delete_namespace", self.namespace)
        self.namespace_present = False

    # services

    def get_service(self, name: str):
        return self.services.get(name)

    def create_service(self, body: dict):
        self._record("create_service", body["metadata"]["name"])
        self.services[body["metadata"]["name"]] = body
        return body

    def patch_service(self, name: str, body: dict):
        self._record("patch_service", name)
        self.services[name] = body
        return body

    def delete_service(self, name: str) -> None:
        self._record("delete_service", name)
        self.services.pop(name, None)

    def get_service_ip(self, name: str):
        return "10.0.0.10" if name in self.services else None

    # storage

    def create_pvc(self, body: dict) -> None:
        self._record("create_pvc", body["metadata"]["name"])
        self.pvcs.setdefault(body["metadata"]["name"], body)

    def delete_pvc(self, name: str) -> None:
        self._record("delete_pvc", name)
        self.pvcs.pop(name, None)

    def create_or_update_config_map(self, body: dict) -> None:
        self._record("create_or_update_config_map", body["metadata"]["name"])
        self.config_maps[body["metadata"]["name"]] = body

    def delete_config_map(self, name: str) -> None:
        self._record("delete_config_map", name)
        self.config_maps.pop(name, None)

    # rbac

    def create_service_account(self, body: dict) -> None:
        self._record("create_service_account", body["metadata"]["name"])
        self.service_accounts[body["metadata"]["name"]] = body

    def delete_service_account(self, name: str) -> None:
        self._record("delete_service_account", name)
        self.service_accounts.pop(name, None)

    def create_or_update_role(self, body: dict) -> None:
        self._record("create_or_update_role", body["metadata"]["name"])
        self.roles[body["metadata"]["name"]] = body

    def delete_role(self, name: str) -> None:
        self._record("delete_role", name)
        self.roles.pop(name, None)

    def create_role_binding(self, body: dict) -> None:
        self._record("create_role_binding", body["metadata"]["name"])
        self.role_bindings[body["metadata"]["name"]] = body

    def delete_role_binding(self, name: str) -> None:
        self._record("delete_role_binding", name)
        self.role_bindings.pop(name, None)

    # replica sets and pods

    def create_replica_set(self, body: dict):
        self._record("create_replica_set", body["metadata"]["name"])
        self.replica_sets[body["metadata"]["name"]] = body
        return body

    def get_replica_set(self, name: str):
        return self.replica_sets.get(name)

    def delete_replica_set(self, name: str) -> None:
        self._record("delete_replica_set", name)
        self.replica_sets.pop(name, None)

    def is_replica_set_running(self, name: str) -> bool:
        return self.ready and name in self.replica_sets

    def get_first_pod_from_replica_set(self, name: str):
        return f"{name}-pod" if name in self.replica_sets else None

    def run_command_in_pod(self, pod: str, container: str, command: list[str]):
        self._record("run_command_in_pod", pod)
        self.exec_commands.append((pod, container, command))
        return self.exec_result

    def get_pod_logs(self, pod: str, container: str) -> str:
        return f"logs of {pod}/{container}"

    def port_forward(self, pod: str, local_port: int, remote_port: int):
        self._record("port_forward", pod)
        if self.port_forward_error is not None:
            raise self.port_forward_error
        forward = FakePortForward(local_port, remote_port)
        self.port_forwards.append(forward)
        return forward

    # network policies

    def create_network_policy(self, body: dict) -> None:
        self._record("create_network_policy", body["metadata"]["name"])
        self.network_policies[body["metadata"]["name"]] = body

    def delete_network_policy(self, name: str) -> None:
        self._record("delete_network_policy", name)
        self.network_policies.pop(name, None)

    def network_policy_exists(self, name: str) -> bool:
        return name in self.network_policies

    # custom resources

    def custom_resource_definition_exists(self, group: str, plural: str) -> bool:
        return self.crd_installed

    def create_custom_resource(self, group: str, version: str, plural: str, body: dict) -> None:
        name = body["metadata"]["name"]
        self._record("create_custom_resource", name)
        stored = dict(body)
        if self.inject_chaos:
            stored["status"] = {"conditions": [{"type": "AllInjected", "status": "True"}]}
        self.custom_resources[(plural, name)] = stored

    def get_custom_resource(self, group: str, version: str, plural: str, name: str):
        return self.custom_resources.get((plural, name))

    def delete_custom_resource(self, group: str, version: str, plural: str, name: str) -> None:
        self._record("delete_custom_resource", name)
        self.custom_resources.pop((plural, name), None)


# ---------------------------------------------------------------------------
# Image builder
# ---------------------------------------------------------------------------

class FakeSession:
    def __init__(self, builder: FakeImageBuilder, base_image: str, build_dir: str) -> None:
        self.builder = builder
        self.image_name_from = base_image
        self.image_name_to = ""
        self.build_dir = build_dir
        self.instructions: list[str] = []

    def clone(self) -> FakeSession:
        cloned = FakeSession(self.builder, self.image_name_from, self.build_dir)
        cloned.image_name_to = self.image_name_to
        cloned.instructions = list(self.instructions)
        return cloned

    def changed(self) -> bool:
        return bool(self.instructions)

    def run(self, command: list[str]) -> None:
        self.instructions.append("RUN " + " ".join(command))

    def add_file(self, relative_src: str, dest: str, chown: str) -> None:
        self.instructions.append(f"ADD --chown={chown} {relative_src} {dest}")

    def set_env(self, key: str, value: str) -> None:
        self.instructions.append(f"ENV {key}={value}")

    def set_user(self, user: str) -> None:
        self.instructions.append(f"USER {user}")

    def image_hash(self) -> str:
        content = "\n".join([self.image_name_from, *self.instructions])
        return hashlib.sha256(content.encode()).hexdigest()

    def push(self, image_name: str) -> None:
        if self.builder.fail_push:
            raise DependencyError("build image", image_name, "injected failure")
        self.builder.pushes.append(image_name)
        self.image_name_to = image_name

    def read_file(self, file_path: str) -> bytes:
        if not self.image_name_to and self.changed():
            raise DependencyError("read file from image", file_path, "image has not been built yet")
        self.builder.reads.append(self.image_name_to or self.image_name_from)
        return self.builder.image_files.get(file_path, b"")


class FakeImageBuilder:
    def __init__(self) -> None:
        self.pushes: list[str] = []
        self.sessions: list[FakeSession] = []
        self.git_builds: list[tuple] = []
        self.image_files: dict[str, bytes] = {}
        self.reads: list[str] = []
        self.fail_push = False

    def new_session(self, base_image: str, build_dir: str) -> FakeSession:
        session = FakeSession(self, base_image, build_dir)
        self.sessions.append(session)
        return session

    def build_from_git(self, git_context, build_dir: str, image_name: str) -> None:
        self.git_builds.append((git_context, build_dir, image_name))


# ---------------------------------------------------------------------------
# Proxy
# ---------------------------------------------------------------------------

class FakeProxy:
    def __init__(self) -> None:
        self.hosts: list[tuple[str, str, int]] = []

    def add_host(self, ctx, service_name: str, prefix: str, port: int) -> None:
        self.hosts.append((service_name, prefix, port))

    def url(self, ctx, prefix: str) -> str:
        return f"http://proxy.test/{prefix}"


# ---------------------------------------------------------------------------
# Sidecar
# ---------------------------------------------------------------------------

class FakeSidecar:
    """Sidecar running a metrics exporter on port 9090."""

    def __init__(self, image: str = "busybox:latest", commit: bool = True) -> None:
        self.image = image
        self.commit = commit
        self.pre_started = False
        self._instance: Instance | None = None

    def initialize(self, ctx, name_prefix: str, sys_deps) -> None:
        self._instance = Instance(f"{name_prefix}-exporter", sys_deps)
        self._instance.build.set_image(ctx, self.image)
        self._instance.network.add_port_tcp(9090)
        if self.commit:
            self._instance.build.commit(ctx)

    def instance(self):
        return self._instance

    def pre_start(self, ctx) -> None:
        self.pre_started = True

    def clone(self, name_prefix: str) -> FakeSidecar:
        cloned = FakeSidecar(self.image, self.commit)
        cloned._instance = self._instance.clone_with_name(f"{name_prefix}-exporter")
        return cloned


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def k8s() -> FakeKubeClient:
    return FakeKubeClient()


@pytest.fixture
def image_builder() -> FakeImageBuilder:
    return FakeImageBuilder()


@pytest.fixture
def proxy() -> FakeProxy:
    return FakeProxy()


@pytest.fixture
def sys_deps(k8s, image_builder, proxy, tmp_path, monkeypatch) -> SystemDependencies:
    monkeypatch.delenv("KNUU_SKIP_CLEANUP", raising=False)
    return SystemDependencies(
        k8s=k8s,
        image_builder=image_builder,
        scope="test-scope",
        proxy=proxy,
        config=KnuuConfig(build_dir_base=str(tmp_path / "build")),
    )


@pytest.fixture
def ctx() -> Context:
    return Context.background().with_timeout(10)


@pytest.fixture
def new_instance(sys_deps, ctx):
    """Factory for instances in a given state: ``none``, ``preparing`` or ``committed``."""

    def factory(name: str, image: str = "nginx:latest", state: str = "committed") -> Instance:
        instance = Instance(name, sys_deps)
        if state == "none":
            return instance
        instance.build.set_image(ctx, image)
        if state == "committed":
            instance.build.commit(ctx)
        return instance

    return factory
