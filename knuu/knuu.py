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

"""Test session entry point: assembles shared dependencies for a scope."""

from __future__ import annotations

import logging
import shlex
import signal
from datetime import datetime, timezone

from knuu import logger
from knuu.builder import DockerImageBuilder
from knuu.config import KnuuConfig
from knuu.constants import (
    LABEL_MANAGED_BY,
    LABEL_SCOPE,
    LABEL_TYPE,
    MANAGED_BY_VALUE,
    SCOPE_TIME_FORMAT,
    TIMEOUT_HANDLER_NAME,
    image_ref,
)
from knuu.context import Context
from knuu.instance.executor import new_executor
from knuu.instance.instance import Instance
from knuu.instance.state import InstanceType
from knuu.k8s.client import KubeClient
from knuu.names import sanitize_name
from knuu.proxy import TraefikProxy
from knuu.system import SystemDependencies

CLEANUP_KINDS = "all,pvc,netpol,roles,serviceaccounts,rolebindings,configmaps"


def default_scope(now: datetime | None = None) -> str:
    """Scope of the form ``YYYYMMDD-HHMMSS-mmm``."""
    now = now or datetime.now(timezone.utc)
    return f"{now.strftime(SCOPE_TIME_FORMAT)}-{now.microsecond // 1000:03d}"


def timeout_handler_command(timeout: float, scope: str, namespace: str) -> str:
    """Shell script that waits *timeout* seconds and then removes the scope.

    Labelled resources other than the handler itself go first, then the
    namespace, then anything labelled that is left.
    """
    selector = f"{LABEL_SCOPE}={scope}"
    handler_type = str(InstanceType.TIMEOUT_HANDLER)
    jq_filter = (
        f'.items[] | select(.metadata.labels."{LABEL_TYPE}" != "{handler_type}")'
        ' | "\\(.kind)/\\(.metadata.name)"'
    )
    commands = [
        f"sleep {int(timeout)}",
        f"kubectl get {CLEANUP_KINDS} -l {selector} -n {namespace} -o json"
        f" | jq -r {shlex.quote(jq_filter)} | xargs -r kubectl delete -n {namespace}",
        f"kubectl delete namespace {namespace}",
        f"kubectl delete {CLEANUP_KINDS} -l {selector} -n {namespace}",
    ]
    return " && ".join(commands)


class Knuu:
    """A test run: one scope, one namespace, shared collaborators.

    Build it with :meth:`new`; collaborators can be injected for testing.
    """

    def __init__(self, sys_deps: SystemDependencies) -> None:
        self.sys = sys_deps

    @classmethod
    def new(
        cls,
        ctx: Context,
        config: KnuuConfig | None = None,
        *,
        k8s=None,
        image_builder=None,
        proxy=None,
        handle_timeout: bool = True,
    ) -> Knuu:
        """Create the scope namespace and return a ready session.

        Args:
            ctx: Bounds setup work.
            config: Session settings; read from ``KNUU_*`` env vars when None.
            k8s: Cluster client; a KubeClient for the scope namespace by default.
            image_builder: Image builder; DockerImageBuilder by default.
            proxy: Proxy registrar; a TraefikProxy when enabled in *config*.
            handle_timeout: Start the timeout handler instance.

        Raises:
            DependencyError: If the namespace or the timeout handler cannot be created.
        """
        config = config or KnuuConfig()
        logger.setLevel(logging.getLevelName(config.log_level))
        scope = sanitize_name(config.scope or default_scope())
        k8s = k8s if k8s is not None else KubeClient(scope)
        if proxy is None and config.proxy_enabled:
            proxy = TraefikProxy(k8s, config.proxy_endpoint)
        sys_deps = SystemDependencies(
            k8s=k8s,
            image_builder=image_builder if image_builder is not None else DockerImageBuilder(),
            scope=scope,
            proxy=proxy,
            config=config,
        )
        kn = cls(sys_deps)
        if not k8s.namespace_exists():
            k8s.create_namespace({LABEL_MANAGED_BY: MANAGED_BY_VALUE, LABEL_SCOPE: scope})
        logger.info("Using scope '%s'", scope)
        if handle_timeout:
            kn.handle_timeout(ctx)
        return kn

    @property
    def scope(self) -> str:
        return self.sys.scope

    def new_instance(self, name: str) -> Instance:
        return Instance(name, self.sys)

    def new_executor(self, ctx: Context) -> Instance:
        return new_executor(ctx, self.sys)

    def handle_timeout(self, ctx: Context) -> Instance:
        """Start the instance that removes the scope once the session timeout elapses."""
        instance = Instance(TIMEOUT_HANDLER_NAME, self.sys)
        instance.set_instance_type(InstanceType.TIMEOUT_HANDLER)
        instance.build.set_image(ctx, image_ref("timeout_handler"))
        instance.build.commit(ctx)
        instance.build.set_start_command(
            "sh", "-c", timeout_handler_command(self.sys.config.timeout, self.scope, self.sys.k8s.namespace),
        )
        instance.security.add_policy_rule({"verbs": ["*"], "apiGroups": ["*"], "resources": ["*"]})
        instance.execution.start_async(ctx)
        logger.debug("Scope '%s' will be removed after %ss", self.scope, self.sys.config.timeout)
        return instance

    def clean_up(self, ctx: Context) -> None:
        """Delete the scope namespace and everything in it."""
        if self.sys.config.skip_cleanup:
            logger.info("Skipping cleanup of scope '%s'", self.scope)
            return
        self.sys.k8s.delete_namespace(ctx)
        logger.info("Deleted scope '%s'", self.scope)

    def handle_stop_signal(self, ctx: Context) -> None:
        """Clean up the scope on SIGINT or SIGTERM, then exit."""

        def on_signal(signum, frame) -> None:
            logger.info("Received signal %s, cleaning up", signal.Signals(signum).name)
            try:
                self.clean_up(ctx)
            finally:
                raise SystemExit(128 + signum)

        signal.signal(signal.SIGINT, on_signal)
        signal.signal(signal.SIGTERM, on_signal)
