"""Tests for sidecar attachment, state mirroring and pod composition."""

import pytest
from conftest import FakeSidecar

from knuu.errors import InvalidStateTransitionError, SidecarError, ValidationError
from knuu.instance import InstanceState, SidecarManager


def test_fake_sidecar_satisfies_protocol():
    assert isinstance(FakeSidecar(), SidecarManager)


def test_add_sidecar_links_parent(new_instance, ctx):
    parent = new_instance("app")
    sidecar = FakeSidecar()
    parent.sidecars.add(ctx, sidecar)

    sc_instance = sidecar.instance()
    assert sc_instance.name == "app-exporter"
    assert sc_instance.is_sidecar
    assert sc_instance.parent_instance is parent
    assert not parent.is_sidecar
    assert parent.sidecars.sidecars == [sidecar]


def test_add_rejects_none_and_uncommitted(new_instance, ctx):
    parent = new_instance("app")
    with pytest.raises(ValidationError):
        parent.sidecars.add(ctx, None)
    with pytest.raises(InvalidStateTransitionError):
        parent.sidecars.add(ctx, FakeSidecar(commit=False))
    assert parent.sidecars.sidecars == []


def test_sidecar_cannot_host_sidecars(new_instance, ctx):
    parent = new_instance("app")
    sidecar = FakeSidecar()
    parent.sidecars.add(ctx, sidecar)
    with pytest.raises(ValidationError):
        sidecar.instance().sidecars.add(ctx, FakeSidecar())


def test_host_of_sidecars_cannot_be_attached(new_instance, sys_deps, ctx):
    class HostingSidecar(FakeSidecar):
        def initialize(self, ctx, name_prefix, deps):
            super().initialize(ctx, name_prefix, deps)
            self._instance.sidecars.add(ctx, FakeSidecar())

    parent = new_instance("app")
    with pytest.raises(ValidationError):
        parent.sidecars.add(ctx, HostingSidecar())


def test_sidecar_states_follow_parent(new_instance, ctx):
    parent = new_instance("app")
    sidecar = FakeSidecar()
    parent.sidecars.add(ctx, sidecar)

    parent.execution.start(ctx)
    assert sidecar.pre_started
    assert sidecar.instance().state == InstanceState.STARTED
    parent.execution.stop(ctx)
    assert sidecar.instance().state == InstanceState.STOPPED
    parent.execution.start(ctx)
    assert sidecar.instance().state == InstanceState.STARTED
    parent.execution.destroy(ctx)
    assert sidecar.instance().state == InstanceState.DESTROYED


def test_sidecar_shares_pod_and_parent_service(new_instance, ctx, k8s):
    parent = new_instance("app")
    parent.network.add_port_tcp(8080)
    sidecar = FakeSidecar()
    parent.sidecars.add(ctx, sidecar)
    parent.execution.start(ctx)

    containers = k8s.replica_sets["app"]["spec"]["template"]["spec"]["containers"]
    assert [c["name"] for c in containers] == ["app", "app-exporter"]
    assert [p["port"] for p in k8s.services["app"]["spec"]["ports"]] == [8080, 9090]
    assert "app-exporter" not in k8s.services
    assert "app-exporter" not in k8s.replica_sets
    assert sidecar.instance().network.host_name() == "app"


def test_sidecar_port_added_while_stopped_patches_parent_service(new_instance, ctx, k8s):
    parent = new_instance("app")
    parent.network.add_port_tcp(80)
    sidecar = FakeSidecar()
    parent.sidecars.add(ctx, sidecar)
    parent.execution.start(ctx)
    parent.execution.stop(ctx)

    sidecar.instance().network.add_port_tcp(9100)
    parent.execution.start(ctx)

    assert [p["port"] for p in k8s.services["app"]["spec"]["ports"]] == [80, 9090, 9100]
    assert "patch_service" in k8s.methods()
    assert "app-exporter" not in k8s.services


def test_sidecar_commands_run_in_parent_pod(new_instance, ctx, k8s):
    parent = new_instance("app")
    sidecar = FakeSidecar()
    parent.sidecars.add(ctx, sidecar)
    parent.execution.start(ctx)

    sidecar.instance().execution.execute_command(ctx, "echo", "hi")
    assert k8s.exec_commands[-1][:2] == ("app-pod", "app-exporter")


def test_sidecar_is_driven_by_parent(new_instance, ctx):
    parent = new_instance("app")
    sidecar = FakeSidecar()
    parent.sidecars.add(ctx, sidecar)
    with pytest.raises(ValidationError):
        sidecar.instance().execution.start(ctx)


def test_stopped_sidecar_cannot_be_reimaged(new_instance, ctx):
    parent = new_instance("app")
    sidecar = FakeSidecar()
    parent.sidecars.add(ctx, sidecar)
    parent.execution.start(ctx)
    parent.execution.stop(ctx)
    with pytest.raises(InvalidStateTransitionError):
        sidecar.instance().build.set_image(ctx, "busybox:1.36")


def test_verify_sidecars_states_names_failing_sidecar(new_instance, ctx):
    parent = new_instance("app")
    sidecar = FakeSidecar()
    parent.sidecars.add(ctx, sidecar)
    sidecar.instance().set_state(InstanceState.PREPARING)
    with pytest.raises(SidecarError) as exc:
        parent.execution.start(ctx)
    assert exc.value.sidecar == "app-exporter"
    assert parent.state == InstanceState.COMMITTED


def test_clone_clones_sidecars(new_instance, ctx):
    parent = new_instance("app")
    parent.sidecars.add(ctx, FakeSidecar())
    clone = parent.clone_with_name("app-2")

    cloned_sidecar = clone.sidecars.sidecars[0].instance()
    assert cloned_sidecar.name == "app-2-exporter"
    assert cloned_sidecar.parent_instance is clone
    assert cloned_sidecar.is_sidecar
    assert not clone.is_sidecar
