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

"""Namespaced Kubernetes client used by knuu instances."""

from __future__ import annotations

import subprocess

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.stream import stream

from knuu import logger
from knuu.constants import NAMESPACE_DELETE_POLL_INTERVAL
from knuu.context import Context
from knuu.errors import DependencyError
from knuu.waiting import poll_until

HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409


def load_api_client() -> client.ApiClient:
    """Load in-cluster config, falling back to the local kubeconfig.

    Raises:
        DependencyError: If neither configuration can be loaded.
    """
    try:
        config.load_incluster_config()
        logger.debug("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        try:
            config.load_kube_config()
            logger.debug("Loaded kubeconfig")
        except config.ConfigException as err:
            raise DependencyError("load kubernetes configuration", "cluster", err) from err
    return client.ApiClient()


class PortForward:
    """Background ``kubectl port-forward`` process."""

    def __init__(self, process: subprocess.Popen, local_port: int, remote_port: int) -> None:
        self._process = process
        self.local_port = local_port
        self.remote_port = remote_port

    def alive(self) -> bool:
        return self._process.poll() is None

    def close(self) -> None:
        if self.alive():
            self._process.terminate()
            self._process.wait()


class KubeClient:
    """Thin wrapper over the kubernetes API groups, bound to one namespace.

    Every API failure is re-raised as DependencyError carrying the operation
    and the resource name. Lookups return None and deletions succeed
    silently when the object does not exist.
    """

    def __init__(self, namespace: str, api_client: client.ApiClient | None = None) -> None:
        self.namespace = namespace
        self.api_client = api_client or load_api_client()
        self.core = client.CoreV1Api(self.api_client)
        self.apps = client.AppsV1Api(self.api_client)
        self.rbac = client.RbacAuthorizationV1Api(self.api_client)
        self.networking = client.NetworkingV1Api(self.api_client)
        self.custom = client.CustomObjectsApi(self.api_client)
        self.apiextensions = client.ApiextensionsV1Api(self.api_client)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _fail(operation: str, name: str, err: ApiException) -> DependencyError:
        return DependencyError(operation, name, f"{err.status} {err.reason}")

    def _get(self, operation: str, name: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except ApiException as err:
            if err.status == HTTP_NOT_FOUND:
                return None
            raise self._fail(operation, name, err) from err

    def _delete(self, operation: str, name: str, fn, *args, **kwargs) -> None:
        try:
            fn(*args, **kwargs)
            logger.debug("%s: %s", operation, name)
        except ApiException as err:
            if err.status == HTTP_NOT_FOUND:
                return
            raise self._fail(operation, name, err) from err

    def _create(self, operation: str, name: str, fn, body: dict, exists_ok: bool = False):
        try:
            created = fn(self.namespace, body)
            logger.debug("%s: %s", operation, name)
            return created
        except ApiException as err:
            if exists_ok and err.status == HTTP_CONFLICT:
                logger.debug("%s: %s already exists", operation, name)
                return None
            raise self._fail(operation, name, err) from err

    # ------------------------------------------------------------------
    # namespaces
    # ------------------------------------------------------------------

    def namespace_exists(self) -> bool:
        return self._get("get namespace", self.namespace, self.core.read_namespace, self.namespace) is not None

    def create_namespace(self, labels: dict[str, str] | None = None) -> None:
        body = {"apiVersion": "v1", "kind": "Namespace",
                "metadata": {"name": self.namespace, "labels": dict(labels or {})}}
        try:
            self.core.create_namespace(body)
            logger.info("Created namespace %s", self.namespace)
        except ApiException as err:
            if err.status != HTTP_CONFLICT:
                raise self._fail("create namespace", self.namespace, err) from err

    def delete_namespace(self, ctx: Context | None = None) -> None:
        """Delete the namespace and, when *ctx* is given, wait until it is gone."""
        self._delete("delete namespace", self.namespace, self.core.delete_namespace, self.namespace)
        if ctx is not None:
            poll_until(ctx, lambda: not self.namespace_exists(), NAMESPACE_DELETE_POLL_INTERVAL,
                       f"namespace {self.namespace} deletion")

    # ------------------------------------------------------------------
    # services
    # ------------------------------------------------------------------

    def get_service(self, name: str):
        return self._get("get service", name, self.core.read_namespaced_service, name, self.namespace)

    def create_service(self, body: dict):
        return self._create("create service", body["metadata"]["name"],
                            self.core.create_namespaced_service, body)

    def patch_service(self, name: str, body: dict):
        try:
            return self.core.patch_namespaced_service(name, self.namespace, body)
        except ApiException as err:
            raise self._fail("patch service", name, err) from err

    def delete_service(self, name: str) -> None:
        self._delete("delete service", name, self.core.delete_namespaced_service, name, self.namespace)

    def get_service_ip(self, name: str) -> str | None:
        svc = self.get_service(name)
        return svc.spec.cluster_ip if svc is not None else None

    # ------------------------------------------------------------------
    # storage
    # ------------------------------------------------------------------

    def create_pvc(self, body: dict) -> None:
        self._create("create persistent volume claim", body["metadata"]["name"],
                     self.core.create_namespaced_persistent_volume_claim, body, exists_ok=True)

    def delete_pvc(self, name: str) -> None:
        self._delete("delete persistent volume claim", name,
                     self.core.delete_namespaced_persistent_volume_claim, name, self.namespace)

    def _create_or_replace(self, kind: str, body: dict, create_fn, replace_fn) -> None:
        """Create *body*, replacing the stored object when it already exists."""
        name = body["metadata"]["name"]
        try:
            create_fn(self.namespace, body)
            logger.debug("create %s: %s", kind, name)
        except ApiException as err:
            if err.status != HTTP_CONFLICT:
                raise self._fail(f"create {kind}", name, err) from err
            try:
                replace_fn(name, self.namespace, body)
                logger.debug("update %s: %s", kind, name)
            except ApiException as update_err:
                raise self._fail(f"update {kind}", name, update_err) from update_err

    def create_or_update_config_map(self, body: dict) -> None:
        self._create_or_replace("config map", body, self.core.create_namespaced_config_map,
                                self.core.replace_namespaced_config_map)

    def delete_config_map(self, name: str) -> None:
        self._delete("delete config map", name, self.core.delete_namespaced_config_map, name, self.namespace)

    # ------------------------------------------------------------------
    # RBAC
    # ------------------------------------------------------------------

    def create_service_account(self, body: dict) -> None:
        self._create("create service account", body["metadata"]["name"],
                     self.core.create_namespaced_service_account, body, exists_ok=True)

    def delete_service_account(self, name: str) -> None:
        self._delete("delete service account", name,
                     self.core.delete_namespaced_service_account, name, self.namespace)

    def create_or_update_role(self, body: dict) -> None:
        self._create_or_replace("role", body, self.rbac.create_namespaced_role, self.rbac.replace_namespaced_role)

    def delete_role(self, name: str) -> None:
        self._delete("delete role", name, self.rbac.delete_namespaced_role, name, self.namespace)

    def create_role_binding(self, body: dict) -> None:
        self._create("create role binding", body["metadata"]["name"],
                     self.rbac.create_namespaced_role_binding, body, exists_ok=True)

    def delete_role_binding(self, name: str) -> None:
        self._delete("delete role binding", name,
                     self.rbac.delete_namespaced_role_binding, name, self.namespace)

    # ------------------------------------------------------------------
    # replica sets and pods
    # ------------------------------------------------------------------

    def create_replica_set(self, body: dict):
        return self._create("create replica set", body["metadata"]["name"],
                            self.apps.create_namespaced_replica_set, body)

    def get_replica_set(self, name: str):
        return self._get("get replica set", name, self.apps.read_namespaced_replica_set, name, self.namespace)

    def delete_replica_set(self, name: str) -> None:
        """Delete the replica set and its pods immediately (no grace period)."""
        self._delete("delete replica set", name, self.apps.delete_namespaced_replica_set,
                     name, self.namespace, grace_period_seconds=0, propagation_policy="Foreground")

    def is_replica_set_running(self, name: str) -> bool:
        rs = self.get_replica_set(name)
        if rs is None:
            return False
        return (rs.status.ready_replicas or 0) == rs.spec.replicas

    def get_first_pod_from_replica_set(self, name: str) -> str | None:
        """Return the name of the first pod selected by the replica set, if any."""
        rs = self.get_replica_set(name)
        if rs is None:
            return None
        selector = ",".join(f"{k}={v}" for k, v in rs.spec.selector.match_labels.items())
        try:
            pods = self.core.list_namespaced_pod(self.namespace, label_selector=selector)
        except ApiException as err:
            raise self._fail("list pods", name, err) from err
        if not pods.items:
            return None
        return pods.items[0].metadata.name

    def run_command_in_pod(self, pod: str, container: str, command: list[str]) -> tuple[str, str]:
        """Execute *command* in a container and return ``(stdout, stderr)``."""
        try:
            resp = stream(
                self.core.connect_get_namespaced_pod_exec,
                pod,
                self.namespace,
                container=container,
                command=command,
                stderr=True,
                stdin=False,
                stdout=True,
                tty=False,
                _preload_content=False,
            )
        except ApiException as err:
            raise self._fail("exec in pod", pod, err) from err
        stdout: list[str] = []
        stderr: list[str] = []
        while resp.is_open():
            resp.update(timeout=1)
            if resp.peek_stdout():
                stdout.append(resp.read_stdout())
            if resp.peek_stderr():
                stderr.append(resp.read_stderr())
        resp.close()
        return "".join(stdout), "".join(stderr)

    def get_pod_logs(self, pod: str, container: str) -> str:
        try:
            return self.core.read_namespaced_pod_log(pod, self.namespace, container=container)
        except ApiException as err:
            raise self._fail("read pod logs", pod, err) from err

    def port_forward(self, pod: str, local_port: int, remote_port: int) -> PortForward:
        """Start ``kubectl port-forward`` for a pod in the background."""
        cmd = ["kubectl", "port-forward", "-n", self.namespace, f"pod/{pod}", f"{local_port}:{remote_port}"]
        try:
            process = subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except OSError as err:
            raise DependencyError("port forward", pod, err) from err
        return PortForward(process, local_port, remote_port)

    # ------------------------------------------------------------------
    # network policies
    # ------------------------------------------------------------------

    def create_network_policy(self, body: dict) -> None:
        self._create("create network policy", body["metadata"]["name"],
                     self.networking.create_namespaced_network_policy, body)

    def delete_network_policy(self, name: str) -> None:
        self._delete("delete network policy", name,
                     self.networking.delete_namespaced_network_policy, name, self.namespace)

    def network_policy_exists(self, name: str) -> bool:
        return self._get("get network policy", name, self.networking.read_namespaced_network_policy,
                         name, self.namespace) is not None

    # ------------------------------------------------------------------
    # custom resources
    # ------------------------------------------------------------------

    def custom_resource_definition_exists(self, group: str, plural: str) -> bool:
        name = f"{plural}.{group}"
        return self._get("get custom resource definition", name,
                         self.apiextensions.read_custom_resource_definition, name) is not None

    def create_custom_resource(self, group: str, version: str, plural: str, body: dict) -> None:
        name = body["metadata"]["name"]
        try:
            self.custom.create_namespaced_custom_object(group, version, self.namespace, plural, body)
            logger.debug("create %s: %s", plural, name)
        except ApiException as err:
            raise self._fail(f"create {plural}", name, err) from err

    def get_custom_resource(self, group: str, version: str, plural: str, name: str) -> dict | None:
        return self._get(f"get {plural}", name, self.custom.get_namespaced_custom_object,
                         group, version, self.namespace, plural, name)

    def delete_custom_resource(self, group: str, version: str, plural: str, name: str) -> None:
        self._delete(f"delete {plural}", name, self.custom.delete_namespaced_custom_object,
                     group, version, self.namespace, plural, name)
