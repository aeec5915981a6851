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

"""Error kinds raised by knuu instances and their collaborators."""

from __future__ import annotations


class KnuuError(RuntimeError):
    """Base class for every error raised by knuu."""


class InvalidStateTransitionError(KnuuError):
    """An operation was attempted outside its legal set of states.

    Attributes:
        operation: Name of the rejected operation.
        state: The instance state at the time of the call.
        instance: Name of the instance, when known.
    """

    def __init__(self, operation: str, state: object, instance: str = "") -> None:
        self.operation = operation
        self.state = state
        self.instance = instance
        target = f" on instance '{instance}'" if instance else ""
        super().__init__(f"{operation} is not allowed{target} in state '{state}'")


class ValidationError(KnuuError):
    """Malformed input such as an out-of-range port or an empty path."""


class ResourceConflictError(KnuuError):
    """A name or resource is already taken."""


class DependencyError(KnuuError):
    """A collaborator (cluster client, builder, proxy) failed.

    Always raised with ``from`` so the original error stays attached.

    Attributes:
        operation: What knuu was doing when the collaborator failed.
        resource: Cluster-facing name of the affected instance or resource.
    """

    def __init__(self, operation: str, resource: str, detail: object = None) -> None:
        self.operation = operation
        self.resource = resource
        message = f"{operation} failed for '{resource}'"
        if detail is not None:
            message += f": {detail}"
        super().__init__(message)


class WaitTimeoutError(KnuuError, TimeoutError):
    """A wait loop's context was cancelled or its deadline elapsed."""


class NotReadyError(KnuuError):
    """A polled condition is not satisfied yet. Only used to drive retries."""


class SidecarError(KnuuError):
    """An operation fanned out to sidecars failed for one of them.

    Attributes:
        sidecar: Name of the sidecar instance that failed.
    """

    def __init__(self, sidecar: str, err: Exception) -> None:
        self.sidecar = sidecar
        super().__init__(f"sidecar '{sidecar}': {err}")


class PortForwardError(DependencyError):
    """Port forwarding did not come up within the allowed retries."""
