"""Tests for network fault injection."""

import pytest

from knuu.errors import DependencyError, ValidationError, WaitTimeoutError
from knuu.instance.chaos import all_injected, format_duration, network_chaos_manifest


@pytest.fixture
def started(new_instance, ctx):
    instance = new_instance("web")
    instance.execution.start(ctx)
    return instance


@pytest.mark.parametrize(
    "seconds, expected",
    [(0, "0s"), (1, "1s"), (0.25, "250ms"), (90, "1m30s"), (5400, "1h30m"), (3600, "1h")],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


def test_network_chaos_manifest():
    manifest = network_chaos_manifest(
        "web-delay", "scope", {"app": "web"}, "delay", {"latency": "1s"}, duration=30,
    )
    assert manifest["apiVersion"] == "chaos-mesh.org/v1alpha1"
    assert manifest["kind"] == "NetworkChaos"
    spec = manifest["spec"]
    assert spec["action"] == "delay"
    assert spec["delay"] == {"latency": "1s"}
    assert spec["selector"] == {"namespaces": ["scope"], "labelSelectors": {"app": "web"}}
    assert spec["duration"] == "30s"
    assert "duration" not in network_chaos_manifest("n", "s", {}, "loss", {})["spec"]


def test_all_injected():
    assert not all_injected(None)
    assert not all_injected({"status": {"conditions": [{"type": "AllInjected", "status": "False"}]}})
    assert all_injected({"status": {"conditions": [{"type": "AllInjected", "status": "True"}]}})


def test_fault_requires_chaos_mesh_enabled(started, ctx, k8s):
    with pytest.raises(DependencyError):
        started.chaos.set_delay(ctx, 1)
    assert "create_custom_resource" not in k8s.methods()


def test_fault_requires_installed_crd(started, ctx, k8s):
    k8s.crd_installed = False
    started.chaos.enable_chaos_mesh()
    with pytest.raises(DependencyError) as exc:
        started.chaos.set_loss(ctx, 10)
    assert "networkchaos.chaos-mesh.org" in str(exc.value)


def test_delay_waits_for_injection(started, ctx, k8s):
    started.chaos.enable_chaos_mesh()
    started.chaos.set_delay(ctx, 1, jitter=0.1, correlation=25)

    resource = k8s.custom_resources[("networkchaos", "web-delay")]
    assert resource["spec"]["delay"] == {"latency": "1s", "jitter": "100ms", "correlation": "25"}
    assert resource["spec"]["selector"]["labelSelectors"]["app"] == "web"


def test_injection_times_out_without_condition(started, ctx, k8s):
    k8s.inject_chaos = False
    started.chaos.enable_chaos_mesh()
    with pytest.raises(WaitTimeoutError):
        started.chaos.set_delay(ctx.with_timeout(0.2), 1)


def test_faults_coexist_and_are_removed_by_action(started, ctx, k8s):
    started.chaos.enable_chaos_mesh()
    started.chaos.set_bandwidth(ctx, "1mbps", 20971520, 10000)
    started.chaos.set_corrupt(ctx, 5)
    started.chaos.set_duplicate(ctx, 5, duration=60)
    assert set(k8s.custom_resources) == {
        ("networkchaos", "web-bandwidth"),
        ("networkchaos", "web-corrupt"),
        ("networkchaos", "web-duplicate"),
    }

    started.chaos.remove_network_chaos(ctx, "corrupt")
    assert ("networkchaos", "web-corrupt") not in k8s.custom_resources
    assert len(k8s.custom_resources) == 2


def test_fault_settings_validated(started, ctx):
    started.chaos.enable_chaos_mesh()
    with pytest.raises(ValidationError):
        started.chaos.set_loss(ctx, 150)
    with pytest.raises(ValidationError):
        started.chaos.set_delay(ctx, -1)
    with pytest.raises(ValidationError):
        started.chaos.set_bandwidth(ctx, "", 1, 1)
    with pytest.raises(ValidationError):
        started.chaos.set_bandwidth(ctx, "1mbps", 0, 1)
