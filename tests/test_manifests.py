"""Tests for manifest rendering."""

from knuu.k8s.manifests import (
    config_map_manifest,
    deny_all_network_policy_manifest,
    init_container_command,
    pod_spec,
    replica_set_manifest,
    role_binding_manifest,
    service_manifest,
)
from knuu.k8s.types import ContainerConfig, File, PodConfig, ReplicaSetConfig, Volume


def _pod(**kwargs) -> PodConfig:
    container = kwargs.pop("container", ContainerConfig(name="web", image="nginx:latest"))
    return PodConfig(name="web", labels={"app": "web"}, service_account_name="web", container=container, **kwargs)


def test_service_manifest():
    manifest = service_manifest("web", "ns", {"app": "web"}, {"app": "web"}, [80, 443], [53])
    assert manifest["metadata"] == {"name": "web", "namespace": "ns", "labels": {"app": "web"}}
    assert manifest["spec"]["type"] == "ClusterIP"
    assert manifest["spec"]["ports"] == [
        {"name": "tcp-80", "protocol": "TCP", "port": 80, "targetPort": 80},
        {"name": "tcp-443", "protocol": "TCP", "port": 443, "targetPort": 443},
        {"name": "udp-53", "protocol": "UDP", "port": 53, "targetPort": 53},
    ]


def test_config_map_manifest_binary_data_only_when_present():
    assert "binaryData" not in config_map_manifest("web", "ns", {}, {"0": "text"})
    manifest = config_map_manifest("web", "ns", {}, {}, {"0": "AP8="})
    assert manifest["binaryData"] == {"0": "AP8="}


def test_deny_all_network_policy():
    spec = deny_all_network_policy_manifest("web", "ns", {"app": "web"})["spec"]
    assert spec["ingress"] == [] and spec["egress"] == []
    assert spec["policyTypes"] == ["Ingress", "Egress"]


def test_role_binding_targets_service_account():
    manifest = role_binding_manifest("web", "ns", {}, "web-role", "web-sa")
    assert manifest["roleRef"]["name"] == "web-role"
    assert manifest["subjects"] == [{"kind": "ServiceAccount", "name": "web-sa", "namespace": "ns"}]


def test_pod_spec_minimal():
    spec = pod_spec(_pod())
    assert spec["serviceAccountName"] == "web"
    assert spec["initContainers"] == []
    assert spec["volumes"] == []
    assert "securityContext" not in spec
    container = spec["containers"][0]
    assert container["name"] == "web"
    assert "command" not in container and "args" not in container


def test_pod_spec_files_and_volumes():
    container = ContainerConfig(
        name="db",
        image="postgres:16",
        env={"PGDATA": "/data/pg"},
        volumes=[Volume(path="/data", size="1Gi", owner=999)],
        files=[File(source="/tmp/a", dest="/etc/a.conf", chown="0:0", permission="0600")],
        files_config_map="db",
        tcp_ports=[5432],
    )
    spec = pod_spec(_pod(container=container, fs_group=999, node_selector={"disk": "ssd"}))

    assert spec["securityContext"] == {"fsGroup": 999}
    assert spec["nodeSelector"] == {"disk": "ssd"}
    assert spec["initContainers"][0]["name"] == "db-init"
    assert spec["initContainers"][0]["securityContext"] == {"runAsUser": 0}
    assert spec["volumes"][1]["configMap"]["items"] == [{"key": "0", "path": "0", "mode": 0o600}]
    rendered = spec["containers"][0]
    assert rendered["env"] == [{"name": "PGDATA", "value": "/data/pg"}]
    assert rendered["ports"] == [{"name": "tcp-5432", "protocol": "TCP", "containerPort": 5432}]
    assert rendered["volumeMounts"][0] == {"name": "db", "mountPath": "/data"}


def test_init_container_only_seeds_empty_volume():
    command = init_container_command([Volume(path="/var/lib/data", size="1Gi", owner=1000)])
    script = command[2]
    assert command[:2] == ["sh", "-c"]
    assert 'if [ -d /var/lib/data ] && [ -z "$(ls -A /knuu)" ]' in script
    assert script.endswith("chown -R 1000:1000 /knuu")


def test_replica_set_manifest():
    manifest = replica_set_manifest(ReplicaSetConfig(name="web", labels={"app": "web"}, pod=_pod()), "ns")
    assert manifest["kind"] == "ReplicaSet"
    assert manifest["spec"]["replicas"] == 1
    assert manifest["spec"]["selector"] == {"matchLabels": {"app": "web"}}
    assert manifest["spec"]["template"]["metadata"]["labels"] == {"app": "web"}
