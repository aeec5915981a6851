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

"""Network fault injection through Chaos Mesh NetworkChaos resources.

Every fault is submitted as a NetworkChaos object selecting the pod by its
labels, and is only reported active once Chaos Mesh sets the
``AllInjected`` condition to ``True``.
"""

from __future__ import annotations

from knuu.constants import (
    CHAOS_CHECK_INTERVAL,
    CHAOS_CONDITION_ALL_INJECTED,
    CHAOS_MESH_GROUP,
    CHAOS_MESH_NETWORK_KIND,
    CHAOS_MESH_NETWORK_RESOURCE,
    CHAOS_MESH_VERSION,
)
from knuu.context import Context
from knuu.errors import DependencyError, ValidationError
from knuu.instance.state import InstanceState, allowed_in
from knuu.waiting import poll_until

ACTION_DELAY = "delay"
ACTION_LOSS = "loss"
ACTION_DUPLICATE = "duplicate"
ACTION_CORRUPT = "corrupt"
ACTION_BANDWIDTH = "bandwidth"


def format_duration(seconds: float) -> str:
    """Render seconds as a duration string such as ``1s``, ``250ms`` or ``1h30m``."""
    total_ms = round(seconds * 1000)
    if total_ms == 0:
        return "0s"
    if total_ms % 1000:
        return f"{total_ms}ms"
    hours, rest = divmod(total_ms // 1000, 3600)
    minutes, secs = divmod(rest, 60)
    out = ""
    if hours:
        out += f"{hours}h"
    if minutes:
        out += f"{minutes}m"
    if secs:
        out += f"{secs}s"
    return out


def _percent(value: float, what: str) -> str:
    if not 0 <= value <= 100:
        raise ValidationError(f"{what} {value} must be between 0 and 100")
    return f"{value:g}"


def network_chaos_manifest(
    name: str,
    namespace: str,
    selector: dict[str, str],
    action: str,
    settings: dict,
    duration: float = 0,
) -> dict:
    """Build a NetworkChaos resource.

    Args:
        name: Resource name.
        namespace: Namespace of the target pods.
        selector: Pod labels to target.
        action: One of delay, loss, duplicate, corrupt or bandwidth.
        settings: Action-specific settings, stored under the action key.
        duration: Fault duration in seconds; 0 keeps it until removed.
    """
    spec = {
        "action": action,
        action: settings,
        "direction": "both",
        "mode": "all",
        "selector": {"namespaces": [namespace], "labelSelectors": dict(selector)},
    }
    if duration:
        spec["duration"] = format_duration(duration)
    return {
        "apiVersion": f"{CHAOS_MESH_GROUP}/{CHAOS_MESH_VERSION}",
        "kind": CHAOS_MESH_NETWORK_KIND,
        "metadata": {"name": name, "namespace": namespace},
        "spec": spec,
    }


def all_injected(resource: dict | None) -> bool:
    """True once the resource status carries ``AllInjected=True``."""
    if not resource:
        return False
    conditions = (resource.get("status") or {}).get("conditions") or []
    return any(
        c.get("type") == CHAOS_CONDITION_ALL_INJECTED and str(c.get("status")) == "True"
        for c in conditions
    )


class ChaosMesh:
    """Network faults of a running instance."""

    def __init__(self, instance) -> None:
        self.instance = instance
        self.resource: tuple[str, str, str] | None = None

    def enable_chaos_mesh(self) -> None:
        self.resource = (CHAOS_MESH_GROUP, CHAOS_MESH_VERSION, CHAOS_MESH_NETWORK_RESOURCE)

    def resource_name(self, action: str) -> str:
        return f"{self.instance.k8s_name}-{action}"

    def _require_enabled(self) -> tuple[str, str, str]:
        if self.resource is None:
            raise DependencyError("network chaos", self.instance.k8s_name, "chaos mesh is not enabled")
        group, _, plural = self.resource
        if not self.instance.sys.k8s.custom_resource_definition_exists(group, plural):
            raise DependencyError(
                "network chaos", self.instance.k8s_name,
                f"custom resource definition {plural}.{group} is not installed",
            )
        return self.resource

    def _inject(self, ctx: Context, action: str, settings: dict, duration: float) -> None:
        group, version, plural = self._require_enabled()
        k8s = self.instance.sys.k8s
        owner = self.instance.execution.pod_owner()
        name = self.resource_name(action)
        manifest = network_chaos_manifest(
            name, k8s.namespace, owner.execution.labels(), action, settings, duration,
        )
        k8s.create_custom_resource(group, version, plural, manifest)
        self.instance.logger.debug("Submitted %s fault for instance '%s'", action, self.instance.name)
        self.wait_for_chaos_injection(ctx, action)

    @allowed_in(InstanceState.STARTED)
    def set_delay(self, ctx: Context, delay: float, duration: float = 0,
                  jitter: float = 0, correlation: float = 0) -> None:
        """Delay every packet by *delay* seconds (plus up to *jitter*)."""
        if delay < 0 or jitter < 0:
            raise ValidationError("delay and jitter must not be negative")
        settings = {
            "latency": format_duration(delay),
            "jitter": format_duration(jitter),
            "correlation": _percent(correlation, "correlation"),
        }
        self._inject(ctx, ACTION_DELAY, settings, duration)

    @allowed_in(InstanceState.STARTED)
    def set_loss(self, ctx: Context, loss: float, duration: float = 0, correlation: float = 0) -> None:
        settings = {"loss": _percent(loss, "loss"), "correlation": _percent(correlation, "correlation")}
        self._inject(ctx, ACTION_LOSS, settings, duration)

    @allowed_in(InstanceState.STARTED)
    def set_duplicate(self, ctx: Context, duplicate: float, duration: float = 0, correlation: float = 0) -> None:
        settings = {
            "duplicate": _percent(duplicate, "duplicate"),
            "correlation": _percent(correlation, "correlation"),
        }
        self._inject(ctx, ACTION_DUPLICATE, settings, duration)

    @allowed_in(InstanceState.STARTED)
    def set_corrupt(self, ctx: Context, corrupt: float, duration: float = 0, correlation: float = 0) -> None:
        settings = {
            "corrupt": _percent(corrupt, "corrupt"),
            "correlation": _percent(correlation, "correlation"),
        }
        self._inject(ctx, ACTION_CORRUPT, settings, duration)

    @allowed_in(InstanceState.STARTED)
    def set_bandwidth(self, ctx: Context, rate: str, limit: int, buffer: int, duration: float = 0) -> None:
        """Shape traffic with a token bucket.

        Args:
            ctx: Bounds the wait for injection.
            rate: Rate such as ``1mbps``.
            limit: Bytes that can be queued waiting for tokens.
            buffer: Bucket size in bytes.
            duration: Fault duration in seconds; 0 keeps it until removed.
        """
        if not rate:
            raise ValidationError("bandwidth rate must not be empty")
        if limit <= 0 or buffer <= 0:
            raise ValidationError("bandwidth limit and buffer must be positive")
        self._inject(ctx, ACTION_BANDWIDTH, {"rate": rate, "limit": limit, "buffer": buffer}, duration)

    def wait_for_chaos_injection(self, ctx: Context, action: str) -> None:
        """Block until Chaos Mesh reports the *action* fault as injected.

        Raises:
            WaitTimeoutError: If *ctx* ends first.
        """
        group, version, plural = self._require_enabled()
        k8s = self.instance.sys.k8s
        name = self.resource_name(action)
        poll_until(
            ctx,
            lambda: all_injected(k8s.get_custom_resource(group, version, plural, name)),
            CHAOS_CHECK_INTERVAL,
            f"{action} fault on instance '{self.instance.name}' to be injected",
        )

    @allowed_in(InstanceState.STARTED, InstanceState.STOPPED)
    def remove_network_chaos(self, ctx: Context, action: str) -> None:
        group, version, plural = self._require_enabled()
        self.instance.sys.k8s.delete_custom_resource(group, version, plural, self.resource_name(action))

    def clone(self, instance) -> ChaosMesh:
        # the resource handle is a live connection setting and is not copied
        return ChaosMesh(instance)
