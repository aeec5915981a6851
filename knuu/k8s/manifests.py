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

"""Manifest builders for the resources an instance owns."""

from __future__ import annotations

import shlex
from typing import Any

from kubernetes.client import ApiClient

from knuu.constants import (
    CONFIGMAP_FILE_MODE,
    FILES_VOLUME_SUFFIX,
    INIT_CONTAINER_SUFFIX,
    INIT_VOLUME_MOUNT_PATH,
    ROOT_USER_ID,
)
from knuu.k8s.types import ContainerConfig, PodConfig, ReplicaSetConfig, Volume

_serializer = ApiClient()


def to_plain(obj: Any) -> Any:
    """Convert kubernetes model objects (or dicts of them) to plain JSON-able data."""
    if obj is None:
        return None
    return _serializer.sanitize_for_serialization(obj)


def _metadata(name: str, labels: dict[str, str], namespace: str) -> dict:
    return {"name": name, "namespace": namespace, "labels": dict(labels)}


# ============================================================================
# Service and networking
# ============================================================================

def service_ports(tcp_ports: list[int], udp_ports: list[int]) -> list[dict]:
    """Build service port entries named ``tcp-<port>`` / ``udp-<port>``."""
    ports = [
        {"name": f"tcp-{port}", "protocol": "TCP", "port": port, "targetPort": port}
        for port in tcp_ports
    ]
    ports += [
        {"name": f"udp-{port}", "protocol": "UDP", "port": port, "targetPort": port}
        for port in udp_ports
    ]
    return ports


def service_manifest(
    name: str,
    namespace: str,
    labels: dict[str, str],
    selector: dict[str, str],
    tcp_ports: list[int],
    udp_ports: list[int],
) -> dict:
    """Build a ClusterIP Service exposing the given ports.

    Args:
        name: Service name, the instance's k8s name.
        namespace: Target namespace.
        labels: Labels applied to the Service object.
        selector: Pod labels the Service routes to.
        tcp_ports: TCP ports to expose.
        udp_ports: UDP ports to expose.

    Returns:
        Service resource as a dictionary.
    """
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": _metadata(name, labels, namespace),
        "spec": {
            "type": "ClusterIP",
            "selector": dict(selector),
            "ports": service_ports(tcp_ports, udp_ports),
        },
    }


def deny_all_network_policy_manifest(name: str, namespace: str, selector: dict[str, str]) -> dict:
    """Build a NetworkPolicy blocking all ingress and egress for the selected pods."""
    return {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "NetworkPolicy",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {
            "podSelector": {"matchLabels": dict(selector)},
            "policyTypes": ["Ingress", "Egress"],
            "ingress": [],
            "egress": [],
        },
    }


# ============================================================================
# Storage
# ============================================================================

def pvc_manifest(name: str, namespace: str, labels: dict[str, str], size: str) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "PersistentVolumeClaim",
        "metadata": _metadata(name, labels, namespace),
        "spec": {
            "accessModes": ["ReadWriteOnce"],
            "resources": {"requests": {"storage": size}},
        },
    }


def config_map_manifest(
    name: str,
    namespace: str,
    labels: dict[str, str],
    data: dict[str, str],
    binary_data: dict[str, str] | None = None,
) -> dict:
    """ConfigMap holding text entries in ``data`` and base64 entries in ``binaryData``."""
    manifest = {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": _metadata(name, labels, namespace),
        "data": dict(data),
    }
    if binary_data:
        manifest["binaryData"] = dict(binary_data)
    return manifest


# ============================================================================
# RBAC
# ============================================================================

def service_account_manifest(name: str, namespace: str, labels: dict[str, str]) -> dict:
    return {"apiVersion": "v1", "kind": "ServiceAccount", "metadata": _metadata(name, labels, namespace)}


def role_manifest(name: str, namespace: str, labels: dict[str, str], rules: list[Any]) -> dict:
    return {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "Role",
        "metadata": _metadata(name, labels, namespace),
        "rules": [to_plain(rule) for rule in rules],
    }


def role_binding_manifest(name: str, namespace: str, labels: dict[str, str], role: str, service_account: str) -> dict:
    return {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "RoleBinding",
        "metadata": _metadata(name, labels, namespace),
        "roleRef": {"apiGroup": "rbac.authorization.k8s.io", "kind": "Role", "name": role},
        "subjects": [{"kind": "ServiceAccount", "name": service_account, "namespace": namespace}],
    }


# ============================================================================
# Pod / ReplicaSet
# ============================================================================

def _resources(config: ContainerConfig) -> dict:
    requests = {}
    if config.memory_request:
        requests["memory"] = config.memory_request
    if config.cpu_request:
        requests["cpu"] = config.cpu_request
    resources: dict[str, dict] = {}
    if requests:
        resources["requests"] = requests
    if config.memory_limit:
        resources["limits"] = {"memory": config.memory_limit}
    return resources


def _container_ports(config: ContainerConfig) -> list[dict]:
    ports = [{"name": f"tcp-{p}", "protocol": "TCP", "containerPort": p} for p in config.tcp_ports]
    ports += [{"name": f"udp-{p}", "protocol": "UDP", "containerPort": p} for p in config.udp_ports]
    return ports


def files_volume_name(container_name: str) -> str:
    return f"{container_name}{FILES_VOLUME_SUFFIX}"


def _volume_mounts(config: ContainerConfig) -> list[dict]:
    mounts = [{"name": config.name, "mountPath": volume.path} for volume in config.volumes]
    for index, file in enumerate(config.files):
        mounts.append({
            "name": files_volume_name(config.name),
            "mountPath": file.dest,
            "subPath": str(index),
        })
    return mounts


def _pod_volumes(config: ContainerConfig) -> list[dict]:
    volumes = []
    if config.volumes:
        volumes.append({"name": config.name, "persistentVolumeClaim": {"claimName": config.name}})
    if config.files:
        items = []
        for index, file in enumerate(config.files):
            item = {"key": str(index), "path": str(index)}
            if file.permission:
                item["mode"] = int(file.permission, 8)
            items.append(item)
        volumes.append({
            "name": files_volume_name(config.name),
            "configMap": {
                "name": config.files_config_map or config.name,
                "defaultMode": CONFIGMAP_FILE_MODE,
                "items": items,
            },
        })
    return volumes


def init_container_command(volumes: list[Volume]) -> list[str]:
    """Shell command seeding an empty volume from the image and fixing ownership.

    The copy only happens while the claim is empty, so data written by a
    previous run survives restarts and image swaps.
    """
    steps = ["set -e"]
    for volume in volumes:
        path = shlex.quote(volume.path)
        steps.append(
            f"if [ -d {path} ] && [ -z \"$(ls -A {INIT_VOLUME_MOUNT_PATH})\" ]; "
            f"then cp -a {path}/. {INIT_VOLUME_MOUNT_PATH}/; fi"
        )
        steps.append(f"chown -R {volume.owner}:{volume.owner} {INIT_VOLUME_MOUNT_PATH}")
    return ["sh", "-c", " && ".join(steps)]


def _init_containers(config: ContainerConfig) -> list[dict]:
    if not config.volumes:
        return []
    return [{
        "name": f"{config.name}{INIT_CONTAINER_SUFFIX}",
        "image": config.image,
        "imagePullPolicy": config.image_pull_policy,
        "command": init_container_command(config.volumes),
        "securityContext": {"runAsUser": ROOT_USER_ID},
        "volumeMounts": [{"name": config.name, "mountPath": INIT_VOLUME_MOUNT_PATH}],
    }]


def container_manifest(config: ContainerConfig) -> dict:
    """Render one container of the instance pod."""
    container: dict[str, Any] = {
        "name": config.name,
        "image": config.image,
        "imagePullPolicy": config.image_pull_policy,
        "env": [{"name": key, "value": value} for key, value in config.env.items()],
        "ports": _container_ports(config),
        "volumeMounts": _volume_mounts(config),
        "resources": _resources(config),
    }
    if config.command:
        container["command"] = list(config.command)
    if config.args:
        container["args"] = list(config.args)
    for key, probe in (
        ("livenessProbe", config.liveness_probe),
        ("readinessProbe", config.readiness_probe),
        ("startupProbe", config.startup_probe),
    ):
        if probe is not None:
            container[key] = to_plain(probe)
    if config.security_context:
        container["securityContext"] = dict(config.security_context)
    return container


def pod_spec(pod: PodConfig) -> dict:
    """Render the pod spec holding the main container and one container per sidecar."""
    containers = [pod.container, *pod.sidecars]
    spec: dict[str, Any] = {
        "serviceAccountName": pod.service_account_name,
        "initContainers": [c for config in containers for c in _init_containers(config)],
        "containers": [container_manifest(config) for config in containers],
        "volumes": [v for config in containers for v in _pod_volumes(config)],
    }
    if pod.fs_group is not None:
        spec["securityContext"] = {"fsGroup": pod.fs_group}
    if pod.node_selector:
        spec["nodeSelector"] = dict(pod.node_selector)
    return spec


def replica_set_manifest(config: ReplicaSetConfig, namespace: str) -> dict:
    """Build the single-replica ReplicaSet backing an instance.

    Args:
        config: Replica set description including the pod template.
        namespace: Target namespace.

    Returns:
        ReplicaSet resource as a dictionary.
    """
    return {
        "apiVersion": "apps/v1",
        "kind": "ReplicaSet",
        "metadata": _metadata(config.name, config.labels, namespace),
        "spec": {
            "replicas": config.replicas,
            "selector": {"matchLabels": dict(config.labels)},
            "template": {
                "metadata": {
                    "labels": dict(config.pod.labels),
                    "annotations": dict(config.pod.annotations),
                },
                "spec": pod_spec(config.pod),
            },
        },
    }

