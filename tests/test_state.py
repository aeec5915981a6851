"""Tests for the state guard and illegal transitions."""

import pytest

from knuu.errors import InvalidStateTransitionError
from knuu.instance.state import InstanceState, InstanceType, allowed_in, check_state


class _Thing:
    def __init__(self, state):
        self.state = state
        self.name = "thing"

    @allowed_in(InstanceState.PREPARING)
    def mutate(self):
        return "done"


class _Sub:
    def __init__(self, thing):
        self.instance = thing

    @allowed_in(InstanceState.STARTED, InstanceState.STOPPED)
    def act(self):
        return "acted"


def test_state_strings():
    assert str(InstanceState.COMMITTED) == "Committed"
    assert str(InstanceType.TIMEOUT_HANDLER) == "TimeoutHandlerInstance"


def test_check_state_error_carries_operation_and_state():
    thing = _Thing(InstanceState.NONE)
    with pytest.raises(InvalidStateTransitionError) as exc:
        check_state(thing, "commit", InstanceState.PREPARING)
    assert exc.value.operation == "commit"
    assert exc.value.state == InstanceState.NONE
    assert "commit" in str(exc.value) and "None" in str(exc.value)


def test_allowed_in_on_owner_and_sub_object():
    thing = _Thing(InstanceState.PREPARING)
    assert thing.mutate() == "done"
    with pytest.raises(InvalidStateTransitionError):
        _Sub(thing).act()
    thing.state = InstanceState.STOPPED
    assert _Sub(thing).act() == "acted"
    with pytest.raises(InvalidStateTransitionError):
        thing.mutate()


@pytest.mark.parametrize(
    "call",
    [
        lambda i, ctx: i.build.commit(ctx),
        lambda i, ctx: i.build.set_start_command("sh"),
        lambda i, ctx: i.network.add_port_tcp(80),
        lambda i, ctx: i.storage.add_volume("/data", "1Gi"),
        lambda i, ctx: i.resources.set_memory("1Gi", "1Gi"),
        lambda i, ctx: i.security.set_privileged(True),
        lambda i, ctx: i.monitoring.set_liveness_probe({}),
        lambda i, ctx: i.execution.start(ctx),
        lambda i, ctx: i.execution.stop(ctx),
        lambda i, ctx: i.execution.destroy(ctx),
        lambda i, ctx: i.clone_with_name("other"),
        lambda i, ctx: i.new_pool(2),
    ],
)
def test_mutators_rejected_before_set_image(new_instance, ctx, call):
    instance = new_instance("fresh", state="none")
    with pytest.raises(InvalidStateTransitionError):
        call(instance, ctx)
    assert instance.state == InstanceState.NONE


@pytest.mark.parametrize(
    "call",
    [
        lambda i, ctx: i.build.set_git_repo(ctx, None),
        lambda i, ctx: i.build.execute_command("ls"),
        lambda i, ctx: i.build.set_user("app"),
        lambda i, ctx: i.execution.execute_command(ctx, "ls"),
        lambda i, ctx: i.execution.wait_instance_is_running(ctx),
        lambda i, ctx: i.network.port_forward_tcp(ctx, 80),
        lambda i, ctx: i.network.disable(ctx),
        lambda i, ctx: i.chaos.set_delay(ctx, 1),
        lambda i, ctx: i.monitoring.logs(ctx),
    ],
)
def test_mutators_rejected_when_committed(new_instance, ctx, call):
    instance = new_instance("committed")
    with pytest.raises(InvalidStateTransitionError):
        call(instance, ctx)
    assert instance.state == InstanceState.COMMITTED


def test_destroyed_is_absorbing(new_instance, ctx):
    instance = new_instance("web")
    instance.execution.start(ctx)
    instance.execution.destroy(ctx)
    for call in (
        lambda: instance.execution.start(ctx),
        lambda: instance.execution.is_running(ctx),
        lambda: instance.build.set_image(ctx, "nginx:1.27"),
        lambda: instance.network.add_port_tcp(8080),
    ):
        with pytest.raises(InvalidStateTransitionError):
            call()
        assert instance.state == InstanceState.DESTROYED
