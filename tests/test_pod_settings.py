"""Tests for resources, security, probes, proxy hosts and the executor."""

import pytest
from kubernetes import client

from knuu.errors import DependencyError, InvalidStateTransitionError, ValidationError, WaitTimeoutError
from knuu.instance import InstanceState, InstanceType
from knuu.instance.executor import new_executor


def _container(k8s, name):
    return k8s.replica_sets[name]["spec"]["template"]["spec"]["containers"][0]


def test_resources_rendered(new_instance, ctx, k8s):
    web = new_instance("web")
    web.resources.set_memory("64Mi", "128Mi")
    web.resources.set_cpu("250m")
    web.execution.start(ctx)
    assert _container(k8s, "web")["resources"] == {
        "requests": {"memory": "64Mi", "cpu": "250m"},
        "limits": {"memory": "128Mi"},
    }


def test_resources_validated(new_instance):
    web = new_instance("web")
    with pytest.raises(ValidationError):
        web.resources.set_memory("lots", "1Gi")
    with pytest.raises(ValidationError):
        web.resources.set_cpu("fast")
    assert web.resources.memory_request == ""


def test_resources_frozen_once_stopped(new_instance, ctx):
    web = new_instance("web")
    web.execution.start(ctx)
    web.execution.stop(ctx)
    with pytest.raises(InvalidStateTransitionError):
        web.resources.set_memory("64Mi", "128Mi")


def test_security_context(new_instance, ctx, k8s):
    web = new_instance("web")
    assert web.security.prepare_security_context() is None
    web.security.set_privileged(True)
    web.security.add_kubernetes_capabilities(["NET_ADMIN", "SYS_TIME", "NET_ADMIN"])
    web.execution.start(ctx)
    assert _container(k8s, "web")["securityContext"] == {
        "privileged": True,
        "capabilities": {"add": ["NET_ADMIN", "SYS_TIME"]},
    }


def test_policy_rules_accept_kubernetes_models(new_instance, ctx, k8s):
    web = new_instance("web")
    web.security.add_policy_rule(client.V1PolicyRule(api_groups=[""], resources=["pods"], verbs=["list"]))
    with pytest.raises(ValidationError):
        web.security.add_policy_rule(None)
    web.execution.start(ctx)
    assert k8s.roles["web"]["rules"] == [{"apiGroups": [""], "resources": ["pods"], "verbs": ["list"]}]
    assert k8s.role_bindings["web"]["subjects"][0]["name"] == "web"


def test_policy_rule_added_while_stopped_replaces_role(new_instance, ctx, k8s):
    web = new_instance("web")
    web.security.add_policy_rule({"apiGroups": [""], "resources": ["pods"], "verbs": ["list"]})
    web.execution.start(ctx)
    web.execution.stop(ctx)

    web.security.add_policy_rule({"apiGroups": [""], "resources": ["secrets"], "verbs": ["get"]})
    web.execution.start(ctx)

    assert [rule["resources"] for rule in k8s.roles["web"]["rules"]] == [["pods"], ["secrets"]]


def test_probes_rendered(new_instance, ctx, k8s):
    web = new_instance("web")
    web.monitoring.set_readiness_probe(
        client.V1Probe(http_get=client.V1HTTPGetAction(path="/healthz", port=8080), period_seconds=5),
    )
    web.monitoring.set_liveness_probe({"exec": {"command": ["true"]}})
    web.execution.start(ctx)
    container = _container(k8s, "web")
    assert container["readinessProbe"] == {"httpGet": {"path": "/healthz", "port": 8080}, "periodSeconds": 5}
    assert container["livenessProbe"] == {"exec": {"command": ["true"]}}
    assert "startupProbe" not in container


def test_probes_may_change_while_stopped(new_instance, ctx):
    web = new_instance("web")
    web.execution.start(ctx)
    with pytest.raises(InvalidStateTransitionError):
        web.monitoring.set_startup_probe({"exec": {"command": ["true"]}})
    web.execution.stop(ctx)
    web.monitoring.set_startup_probe({"exec": {"command": ["true"]}})
    assert web.monitoring.startup_probe is not None


def test_add_host(new_instance, ctx, proxy):
    web = new_instance("web")
    web.network.add_port_tcp(8080)
    web.execution.start(ctx)

    url = web.proxy.add_host(ctx, 8080)

    assert url == "http://proxy.test/web-8080"
    assert proxy.hosts == [("web", "web-8080", 8080)]


def test_add_host_without_proxy(new_instance, ctx, sys_deps):
    sys_deps.proxy = None
    web = new_instance("web")
    web.execution.start(ctx)
    with pytest.raises(DependencyError):
        web.proxy.add_host(ctx, 8080)


def test_add_host_with_ready_check(new_instance, ctx):
    web = new_instance("web")
    web.execution.start(ctx)
    checks = []

    def check(url):
        checks.append(url)
        return len(checks) >= 2

    assert web.proxy.add_host_with_ready_check(ctx, 80, check) == "http://proxy.test/web-80"
    assert len(checks) == 2
    with pytest.raises(WaitTimeoutError):
        web.proxy.add_host_with_ready_check(ctx.with_timeout(0.1), 81, lambda url: False)


def test_new_executor(sys_deps, ctx, k8s):
    executor = new_executor(ctx, sys_deps)

    assert executor.state == InstanceState.STARTED
    assert executor.instance_type == InstanceType.EXECUTOR
    assert executor.k8s_name.startswith("executor-")
    container = _container(k8s, executor.k8s_name)
    assert container["args"] == ["sleep", "infinity"]
    assert container["image"].endswith("netshoot:latest")
    assert container["resources"]["limits"] == {"memory": "100M"}
