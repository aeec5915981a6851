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

"""Start, stop and destroy sequencing for an instance and its sidecars.

Resources are created in the order Service, volume, files, then for each
sidecar its pre-start hook and its own volume and files, and finally the
shared pod. Stop only removes the pod; destroy removes everything, pod
first.
"""

from __future__ import annotations

import os
import threading
from typing import Callable

from knuu.constants import (
    ENV_SKIP_CLEANUP,
    EXEC_SHELL,
    LABEL_APP,
    LABEL_K8S_NAME,
    LABEL_MANAGED_BY,
    LABEL_NAME,
    LABEL_SCOPE,
    LABEL_TEST_STARTED,
    LABEL_TYPE,
    MANAGED_BY_VALUE,
    REPLICA_COUNT,
    TEST_STARTED_TIME_FORMAT,
    WAIT_FOR_INSTANCE_INTERVAL,
)
from knuu.context import Context
from knuu.errors import DependencyError, KnuuError, ValidationError
from knuu.instance.state import InstanceState, allowed_in, check_state
from knuu.k8s.manifests import (
    replica_set_manifest,
    role_binding_manifest,
    role_manifest,
    service_account_manifest,
)
from knuu.k8s.types import ContainerConfig, PodConfig, ReplicaSetConfig
from knuu.waiting import poll_until


def container_config(instance) -> ContainerConfig:
    """Describe the container *instance* contributes to its pod."""
    return ContainerConfig(
        name=instance.k8s_name,
        image=instance.build.image_name,
        image_pull_policy=instance.build.image_pull_policy,
        command=list(instance.build.command),
        args=list(instance.build.args),
        env=dict(instance.build.env),
        volumes=list(instance.storage.volumes),
        files=list(instance.storage.files),
        files_config_map=instance.k8s_name,
        memory_request=instance.resources.memory_request,
        memory_limit=instance.resources.memory_limit,
        cpu_request=instance.resources.cpu_request,
        liveness_probe=instance.monitoring.liveness_probe,
        readiness_probe=instance.monitoring.readiness_probe,
        startup_probe=instance.monitoring.startup_probe,
        security_context=instance.security.prepare_security_context(),
        tcp_ports=list(instance.network.ports_tcp),
        udp_ports=list(instance.network.ports_udp),
    )


class Execution:
    """Lifecycle orchestration of one instance."""

    def __init__(self, instance) -> None:
        self.instance = instance
        self.replica_set = None

    def pod_owner(self):
        """The instance whose pod runs this instance's container."""
        parent = self.instance.parent_instance
        if self.instance.is_sidecar and parent is not None:
            return parent
        return self.instance

    def labels(self) -> dict[str, str]:
        instance = self.instance
        sys_deps = instance.sys
        return {
            LABEL_APP: instance.k8s_name,
            LABEL_MANAGED_BY: MANAGED_BY_VALUE,
            LABEL_SCOPE: sys_deps.scope,
            LABEL_TEST_STARTED: sys_deps.start_time.strftime(TEST_STARTED_TIME_FORMAT),
            LABEL_NAME: instance.k8s_name,
            LABEL_K8S_NAME: instance.k8s_name,
            LABEL_TYPE: str(instance.instance_type),
        }

    def _reject_sidecar(self, operation: str) -> None:
        if self.instance.is_sidecar:
            raise ValidationError(f"{operation}: sidecar '{self.instance.name}' is driven by its parent")

    # ========================================================================
    # Start
    # ========================================================================

    @allowed_in(InstanceState.COMMITTED, InstanceState.STOPPED)
    def start_async(self, ctx: Context) -> None:
        """Deploy the instance without waiting for it to become ready.

        Entering from Committed deploys Service, volume and files first, then
        each sidecar's pre-start hook and resources. The pod is always
        deployed last, once any replica set left by a previous stop is gone.
        """
        instance = self.instance
        self._reject_sidecar("start")
        instance.sidecars.verify_sidecars_states()

        if instance.state == InstanceState.COMMITTED:
            instance.resources.deploy_resources(ctx)

            def prepare_sidecar(sc) -> None:
                sc.pre_start(ctx)
                sc.instance().resources.deploy_resources(ctx)

            instance.sidecars.apply_function_to_sidecars(prepare_sidecar)

        # the previous replica set must be gone before it can be recreated
        self._wait_replica_set_deleted(ctx)
        self.deploy_pod(ctx)
        instance.set_state(InstanceState.STARTED)
        instance.sidecars.set_state_for_sidecars(InstanceState.STARTED)
        instance.logger.info("Started instance '%s'", instance.name)

    def start_without_wait(self, ctx: Context) -> None:
        self.start_async(ctx)

    def start(self, ctx: Context) -> None:
        """Deploy the instance and block until its pod is ready."""
        self.start_async(ctx)
        self.wait_instance_is_running(ctx)

    def start_with_callback(self, ctx: Context, callback: Callable[[], None]) -> threading.Thread:
        """Deploy now; wait for readiness in the background and then call *callback*.

        Deploy errors are raised. Failures of the background wait or of the
        callback are only logged.
        """
        self.start_async(ctx)
        instance = self.instance

        def wait_and_notify() -> None:
            try:
                self.wait_instance_is_running(ctx)
                callback()
            except Exception:
                instance.logger.exception("Instance '%s' did not become ready", instance.name)

        thread = threading.Thread(target=wait_and_notify, name=f"knuu-start-{instance.k8s_name}", daemon=True)
        thread.start()
        return thread

    def prepare_replica_set_config(self) -> ReplicaSetConfig:
        instance = self.instance
        labels = self.labels()
        sidecar_instances = [sc.instance() for sc in instance.sidecars.sidecars]
        fs_group = instance.storage.fs_group
        for sc_instance in sidecar_instances:
            if fs_group is None:
                fs_group = sc_instance.storage.fs_group
        pod = PodConfig(
            name=instance.k8s_name,
            labels=labels,
            service_account_name=instance.k8s_name,
            container=container_config(instance),
            sidecars=[container_config(sc_instance) for sc_instance in sidecar_instances],
            fs_group=fs_group,
            node_selector=dict(instance.build.node_selector),
        )
        return ReplicaSetConfig(name=instance.k8s_name, labels=labels, pod=pod, replicas=REPLICA_COUNT)

    def _policy_rules(self) -> list:
        rules = list(self.instance.security.policy_rules)
        for sc in self.instance.sidecars.sidecars:
            rules.extend(sc.instance().security.policy_rules)
        return rules

    def deploy_pod(self, ctx: Context) -> None:
        """Create the service account, RBAC if needed, and the replica set."""
        instance = self.instance
        k8s = instance.sys.k8s
        name = instance.k8s_name
        labels = self.labels()
        k8s.create_service_account(service_account_manifest(name, k8s.namespace, labels))
        rules = self._policy_rules()
        if rules:
            k8s.create_or_update_role(role_manifest(name, k8s.namespace, labels, rules))
            k8s.create_role_binding(role_binding_manifest(name, k8s.namespace, labels, name, name))
        self.replica_set = k8s.create_replica_set(
            replica_set_manifest(self.prepare_replica_set_config(), k8s.namespace),
        )

    # ========================================================================
    # Readiness
    # ========================================================================

    @allowed_in(InstanceState.STARTED, InstanceState.STOPPED)
    def is_running(self, ctx: Context) -> bool:
        return self.instance.sys.k8s.is_replica_set_running(self.pod_owner().k8s_name)

    @allowed_in(InstanceState.STARTED)
    def wait_instance_is_running(self, ctx: Context) -> None:
        """Poll until the replica set reports all replicas ready.

        Raises:
            WaitTimeoutError: If *ctx* ends first.
        """
        k8s = self.instance.sys.k8s
        name = self.pod_owner().k8s_name
        poll_until(
            ctx,
            lambda: k8s.is_replica_set_running(name),
            WAIT_FOR_INSTANCE_INTERVAL,
            f"instance '{self.instance.name}' to be running",
        )

    @allowed_in(InstanceState.STOPPED)
    def wait_instance_is_stopped(self, ctx: Context) -> None:
        self._wait_replica_set_deleted(ctx)

    def _wait_replica_set_deleted(self, ctx: Context) -> None:
        k8s = self.instance.sys.k8s
        name = self.pod_owner().k8s_name
        poll_until(
            ctx,
            lambda: k8s.get_replica_set(name) is None,
            WAIT_FOR_INSTANCE_INTERVAL,
            f"instance '{self.instance.name}' to be stopped",
        )

    # ========================================================================
    # Stop / destroy
    # ========================================================================

    @allowed_in(InstanceState.STARTED)
    def stop(self, ctx: Context) -> None:
        """Delete the pod, keeping Service, volume, files and RBAC for a later start."""
        instance = self.instance
        self._reject_sidecar("stop")
        self.destroy_pod()
        instance.network.close_port_forwards()
        instance.set_state(InstanceState.STOPPED)
        instance.sidecars.set_state_for_sidecars(InstanceState.STOPPED)
        instance.logger.info("Stopped instance '%s'", instance.name)

    def destroy_pod(self) -> None:
        self.instance.sys.k8s.delete_replica_set(self.instance.k8s_name)
        self.replica_set = None

    def destroy_rbac(self) -> None:
        k8s = self.instance.sys.k8s
        name = self.instance.k8s_name
        k8s.delete_role_binding(name)
        k8s.delete_role(name)
        k8s.delete_service_account(name)

    def destroy(self, ctx: Context) -> None:
        """Remove the pod and every owned cluster resource. Terminal.

        All steps are attempted; the first failure is raised afterwards and
        the instance then keeps its state. Destroying a destroyed instance
        does nothing.
        """
        instance = self.instance
        if instance.state == InstanceState.DESTROYED:
            return
        check_state(instance, "destroy", InstanceState.STARTED, InstanceState.STOPPED)
        self._reject_sidecar("destroy")

        errors: list[KnuuError] = []

        def attempt(step: str, fn: Callable[[], None]) -> None:
            try:
                fn()
            except KnuuError as err:
                instance.logger.error("Destroying %s of instance '%s' failed: %s", step, instance.name, err)
                errors.append(err)

        attempt("pod", self.destroy_pod)
        attempt("resources", lambda: instance.resources.destroy_resources(ctx))
        attempt("rbac", self.destroy_rbac)
        attempt("network policy", lambda: instance.network.enable_if_disabled(ctx))
        instance.network.close_port_forwards()
        for sc in instance.sidecars.sidecars:
            sc_instance = sc.instance()
            attempt(f"sidecar '{sc_instance.name}'", lambda sc_instance=sc_instance: sc_instance.resources.destroy_resources(ctx))
        if errors:
            raise errors[0]

        instance.set_state(InstanceState.DESTROYED)
        instance.sidecars.set_state_for_sidecars(InstanceState.DESTROYED)
        instance.logger.info("Destroyed instance '%s'", instance.name)

    # ========================================================================
    # Commands
    # ========================================================================

    def first_pod_name(self) -> str:
        """Name of the first pod backing this instance (its parent's for a sidecar)."""
        owner = self.pod_owner()
        pod = self.instance.sys.k8s.get_first_pod_from_replica_set(owner.k8s_name)
        if pod is None:
            raise DependencyError("find pod", owner.k8s_name, "no pod found for replica set")
        return pod

    @allowed_in(InstanceState.STARTED)
    def execute_command(self, ctx: Context, *command: str) -> str:
        """Run *command* through ``/bin/sh -c`` in the instance container.

        Returns:
            The command's stdout.

        Raises:
            DependencyError: If the exec fails or the command wrote to stderr.
        """
        if not command:
            raise ValidationError("command must not be empty")
        instance = self.instance
        pod = self.first_pod_name()
        stdout, stderr = instance.sys.k8s.run_command_in_pod(
            pod, instance.k8s_name, [*EXEC_SHELL, " ".join(command)],
        )
        if stderr:
            raise DependencyError("execute command", instance.k8s_name, stderr.strip())
        return stdout


def skip_cleanup(instance) -> bool:
    if os.environ.get(ENV_SKIP_CLEANUP, "").lower() in ("1", "true", "yes"):
        return True
    return instance.sys.config.skip_cleanup


def batch_destroy(ctx: Context, *instances) -> None:
    """Destroy *instances* in order, stopping at the first error.

    None entries are skipped. Nothing is destroyed when cleanup is disabled
    through ``KNUU_SKIP_CLEANUP`` or the session config.
    """
    present = [instance for instance in instances if instance is not None]
    if not present:
        return
    if skip_cleanup(present[0]):
        present[0].logger.info("Skipping cleanup of %d instance(s)", len(present))
        return
    for instance in present:
        instance.execution.destroy(ctx)
