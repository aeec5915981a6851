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

"""Traefik registrar exposing instance ports under path prefixes."""

from __future__ import annotations

from knuu import logger
from knuu.constants import (
    TRAEFIK_ENTRYPOINT,
    TRAEFIK_GROUP,
    TRAEFIK_INGRESS_ROUTE_RESOURCE,
    TRAEFIK_MIDDLEWARE_RESOURCE,
    TRAEFIK_SERVICE_NAME,
    TRAEFIK_VERSION,
)
from knuu.context import Context
from knuu.errors import DependencyError
from knuu.names import sanitize_name


def middleware_manifest(name: str, namespace: str, prefix: str) -> dict:
    """StripPrefix middleware so the backend sees paths without ``/<prefix>``."""
    return {
        "apiVersion": f"{TRAEFIK_GROUP}/{TRAEFIK_VERSION}",
        "kind": "Middleware",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {"stripPrefix": {"prefixes": [f"/{prefix}"]}},
    }


def ingress_route_manifest(
    name: str, namespace: str, service: str, prefix: str, middleware: str, port: int,
) -> dict:
    return {
        "apiVersion": f"{TRAEFIK_GROUP}/{TRAEFIK_VERSION}",
        "kind": "IngressRoute",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {
            "entryPoints": [TRAEFIK_ENTRYPOINT],
            "routes": [{
                "match": f"PathPrefix(`/{prefix}`)",
                "kind": "Rule",
                "services": [{"name": service, "namespace": namespace, "port": port}],
                "middlewares": [{"name": middleware, "namespace": namespace}],
            }],
        },
    }


class TraefikProxy:
    """Registers ``(service, prefix, port)`` triples as Traefik routes.

    Args:
        k8s: Namespaced cluster client.
        endpoint: Externally reachable proxy host, discovered from the
            Traefik service when None.
    """

    def __init__(self, k8s, endpoint: str | None = None) -> None:
        self.k8s = k8s
        self._endpoint = endpoint

    def add_host(self, ctx: Context, service_name: str, prefix: str, port: int) -> None:
        namespace = self.k8s.namespace
        middleware = sanitize_name(f"{prefix}-strip")
        route = sanitize_name(f"{prefix}-ing-route")
        self.k8s.create_custom_resource(
            TRAEFIK_GROUP, TRAEFIK_VERSION, TRAEFIK_MIDDLEWARE_RESOURCE,
            middleware_manifest(middleware, namespace, prefix),
        )
        self.k8s.create_custom_resource(
            TRAEFIK_GROUP, TRAEFIK_VERSION, TRAEFIK_INGRESS_ROUTE_RESOURCE,
            ingress_route_manifest(route, namespace, service_name, prefix, middleware, port),
        )
        logger.debug("Registered proxy route /%s -> %s:%d", prefix, service_name, port)

    def endpoint(self, ctx: Context) -> str:
        if self._endpoint:
            return self._endpoint
        svc = self.k8s.get_service(TRAEFIK_SERVICE_NAME)
        ingress = None
        if svc is not None and svc.status.load_balancer is not None:
            ingress = svc.status.load_balancer.ingress
        if not ingress:
            raise DependencyError("resolve proxy endpoint", TRAEFIK_SERVICE_NAME, "no load balancer address")
        self._endpoint = ingress[0].ip or ingress[0].hostname
        return self._endpoint

    def url(self, ctx: Context, prefix: str) -> str:
        return f"http://{self.endpoint(ctx)}/{prefix}"
