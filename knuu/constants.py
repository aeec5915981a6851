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

"""Labels, wait intervals and the helper images shipped in images.yaml."""

from __future__ import annotations

from functools import reduce
from pathlib import Path
from typing import Any

import yaml

IMAGES_FILE = Path(__file__).resolve().parent / "images.yaml"


def load_images(path: Path = IMAGES_FILE) -> dict:
    """Read the helper image table (executor, timeout handler, registry)."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


IMAGES = load_images()


def image_value(*keys: str, default: Any = None) -> Any:
    """Look up a nested entry of images.yaml, e.g. ``image_value("registry", "ttl")``.

    A missing key anywhere along the path yields ``default``.
    """
    found = reduce(lambda node, key: node.get(key) if isinstance(node, dict) else None, keys, IMAGES)
    return default if found is None else found


def image_ref(component: str) -> str:
    """Return ``image:version`` for a component listed in images.yaml."""
    return f"{image_value(component, 'image')}:{image_value(component, 'version', default='latest')}"


# -- Labels --
LABEL_APP = "app"
LABEL_MANAGED_BY = "k8s.kubernetes.io/managed-by"
LABEL_SCOPE = "knuu.sh/scope"
LABEL_TEST_STARTED = "knuu.sh/test-started"
LABEL_NAME = "knuu.sh/name"
LABEL_K8S_NAME = "knuu.sh/k8s-name"
LABEL_TYPE = "knuu.sh/type"
MANAGED_BY_VALUE = "knuu"

# -- Environment --
ENV_SKIP_CLEANUP = "KNUU_SKIP_CLEANUP"
ENV_LOG_LEVEL = "LOG_LEVEL"

# -- Defaults --
DEFAULT_TIMEOUT_SECONDS = 60 * 60
DEFAULT_BUILD_DIR_BASE = "/tmp/knuu"
DEFAULT_BUILDER = "docker"
SCOPE_TIME_FORMAT = "%Y%m%d-%H%M%S"
TEST_STARTED_TIME_FORMAT = "%Y%m%d-%H%M%S"
K8S_NAME_MAX_LENGTH = 63
RANDOM_SUFFIX_LENGTH = 8

# -- Wait loops (seconds) --
WAIT_FOR_INSTANCE_INTERVAL = 1.0
CHAOS_CHECK_INTERVAL = 1.0
PROXY_WAIT_CHECK_INTERVAL = 0.5
PORT_FORWARD_MAX_RETRIES = 5
PORT_FORWARD_RETRY_INTERVAL = 5.0
PORT_FORWARD_DIAL_TIMEOUT = 2.0
NAMESPACE_DELETE_POLL_INTERVAL = 1.0

# -- Pod layout --
EXEC_SHELL = ["/bin/sh", "-c"]
INIT_CONTAINER_SUFFIX = "-init"
FILES_VOLUME_SUFFIX = "-config"
INIT_VOLUME_MOUNT_PATH = "/knuu"
ROOT_USER_ID = 0
REPLICA_COUNT = 1
CONFIGMAP_FILE_MODE = 0o644

# -- Chaos Mesh --
CHAOS_MESH_GROUP = "chaos-mesh.org"
CHAOS_MESH_VERSION = "v1alpha1"
CHAOS_MESH_NETWORK_RESOURCE = "networkchaos"
CHAOS_MESH_NETWORK_KIND = "NetworkChaos"
CHAOS_CONDITION_ALL_INJECTED = "AllInjected"

# -- Traefik --
TRAEFIK_GROUP = "traefik.io"
TRAEFIK_VERSION = "v1alpha1"
TRAEFIK_INGRESS_ROUTE_RESOURCE = "ingressroutes"
TRAEFIK_MIDDLEWARE_RESOURCE = "middlewares"
TRAEFIK_SERVICE_NAME = "traefik"
TRAEFIK_ENTRYPOINT = "web"

# -- Executor --
EXECUTOR_NAME = "executor"
EXECUTOR_ARGS = ["sleep", "infinity"]
EXECUTOR_MEMORY_REQUEST = "100M"
EXECUTOR_MEMORY_LIMIT = "100M"
EXECUTOR_CPU_REQUEST = "100m"

# -- Timeout handler --
TIMEOUT_HANDLER_NAME = "timeout-handler"
