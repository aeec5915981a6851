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

"""Expose instance ports through the session's proxy."""

from __future__ import annotations

from typing import Callable

from knuu.constants import PROXY_WAIT_CHECK_INTERVAL
from knuu.context import Context
from knuu.errors import DependencyError
from knuu.instance.network import validate_port
from knuu.instance.state import InstanceState, allowed_in
from knuu.waiting import poll_until


class InstanceProxy:
    def __init__(self, instance) -> None:
        self.instance = instance

    @allowed_in(InstanceState.PREPARING, InstanceState.STARTED)
    def add_host(self, ctx: Context, port: int) -> str:
        """Route ``/<k8s_name>-<port>`` on the proxy to *port* of the instance.

        Returns:
            The externally reachable URL.

        Raises:
            DependencyError: If the session has no proxy or registration fails.
        """
        validate_port(port)
        instance = self.instance
        proxy = instance.sys.proxy
        if proxy is None:
            raise DependencyError("add host", instance.k8s_name, "proxy is not enabled")
        prefix = f"{instance.k8s_name}-{port}"
        proxy.add_host(ctx, instance.network.host_name(), prefix, port)
        url = proxy.url(ctx, prefix)
        instance.logger.debug("Exposed port %d of instance '%s' at %s", port, instance.name, url)
        return url

    @allowed_in(InstanceState.PREPARING, InstanceState.STARTED)
    def add_host_with_ready_check(self, ctx: Context, port: int, check: Callable[[str], bool]) -> str:
        """Like add_host, then poll *check(url)* until it returns True.

        Raises:
            WaitTimeoutError: If *ctx* ends before the host is ready.
        """
        url = self.add_host(ctx, port)
        poll_until(ctx, lambda: check(url), PROXY_WAIT_CHECK_INTERVAL, f"host {url} to be ready")
        return url
