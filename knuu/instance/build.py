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

"""Image selection, build-time instructions, and commit with image-hash reuse."""

from __future__ import annotations

import os
import uuid

from knuu.builder import default_image_name
from knuu.config import GitContext
from knuu.context import Context
from knuu.errors import InvalidStateTransitionError, ValidationError
from knuu.instance.state import InstanceState, allowed_in

PULL_POLICIES = ("Always", "IfNotPresent", "Never")

_MUTABLE_FOR_POD = (InstanceState.PREPARING, InstanceState.COMMITTED, InstanceState.STOPPED)


class Build:
    """Image and container-command configuration of an instance."""

    def __init__(self, instance) -> None:
        self.instance = instance
        self.image_name = ""
        self.image_pull_policy = "IfNotPresent"
        self.builder = None
        self.command: list[str] = []
        self.args: list[str] = []
        self.env: dict[str, str] = {}
        self.node_selector: dict[str, str] = {}

    @property
    def build_dir(self) -> str:
        return os.path.join(self.instance.sys.config.build_dir_base, self.instance.k8s_name)

    def _reject_started_sidecar(self, operation: str) -> None:
        # a sidecar that was already started lives in its parent's pod
        if self.instance.is_sidecar and self.instance.state == InstanceState.STOPPED:
            raise InvalidStateTransitionError(operation, self.instance.state, self.instance.name)

    @allowed_in(InstanceState.NONE, InstanceState.PREPARING, InstanceState.STOPPED)
    def set_image(self, ctx: Context, image: str) -> None:
        """Use *image* as the base image and open a fresh builder session.

        On a stopped instance this swaps the image; commit and start again to
        roll the new image out while keeping volumes and services.
        """
        self._reject_started_sidecar("set_image")
        if not image:
            raise ValidationError("image name must not be empty")
        self.builder = self.instance.sys.image_builder.new_session(image, self.build_dir)
        self.image_name = image
        self.instance.set_state(InstanceState.PREPARING)
        self.instance.logger.debug("Set image of instance '%s' to '%s'", self.instance.name, image)

    @allowed_in(InstanceState.NONE)
    def set_git_repo(self, ctx: Context, git_context: GitContext) -> None:
        """Build the base image from a git repository's Dockerfile."""
        self._reject_started_sidecar("set_git_repo")
        if not git_context.repo:
            raise ValidationError("git repository must not be empty")
        config = self.instance.sys.config
        image_name = default_image_name(git_context.build_context(), config.image_registry, config.image_ttl)
        builder = self.instance.sys.image_builder
        builder.build_from_git(git_context, self.build_dir, image_name)
        self.builder = builder.new_session(image_name, self.build_dir)
        self.image_name = image_name
        self.instance.set_state(InstanceState.PREPARING)

    @allowed_in(*_MUTABLE_FOR_POD)
    def set_image_pull_policy(self, policy: str) -> None:
        if policy not in PULL_POLICIES:
            raise ValidationError(f"invalid image pull policy '{policy}', expected one of {PULL_POLICIES}")
        self.image_pull_policy = policy

    @allowed_in(*_MUTABLE_FOR_POD)
    def set_node_selector(self, node_selector: dict[str, str]) -> None:
        self.node_selector = dict(node_selector)

    @allowed_in(InstanceState.PREPARING)
    def execute_command(self, *command: str) -> None:
        """Add a ``RUN`` layer to the image being built."""
        if not command:
            raise ValidationError("command must not be empty")
        self.builder.run(list(command))

    @allowed_in(InstanceState.PREPARING)
    def set_user(self, user: str) -> None:
        self.builder.set_user(user)

    @allowed_in(*_MUTABLE_FOR_POD)
    def set_environment_variable(self, key: str, value: str) -> None:
        """Set a pod env var; while preparing it is also baked into the image."""
        if not key:
            raise ValidationError("environment variable name must not be empty")
        if self.instance.state == InstanceState.PREPARING:
            self.builder.set_env(key, value)
        self.env[key] = value

    @allowed_in(*_MUTABLE_FOR_POD)
    def set_start_command(self, *command: str) -> None:
        self.command = list(command)

    @allowed_in(*_MUTABLE_FOR_POD)
    def set_args(self, *args: str) -> None:
        self.args = list(args)

    def _new_image_name(self) -> str:
        config = self.instance.sys.config
        return f"{config.image_registry}/{uuid.uuid4()}:{config.image_ttl}"

    @allowed_in(InstanceState.PREPARING)
    def commit(self, ctx: Context) -> None:
        """Freeze the build into a pushed (or reused) image.

        An unchanged builder keeps the base image. Otherwise the build
        fingerprint is looked up in the shared image cache so every distinct
        build is pushed at most once per run.

        Raises:
            DependencyError: If building or pushing the image fails; the
                instance then stays in Preparing.
        """
        log = self.instance.logger
        if not self.builder.changed():
            self.image_name = self.builder.image_name_from
            log.debug("No need to build and push image for instance '%s'", self.instance.name)
            self.instance.set_state(InstanceState.COMMITTED)
            return

        def push() -> str:
            image_name = self._new_image_name()
            self.builder.push(image_name)
            return image_name

        image_name, pushed = self.instance.sys.image_cache.get_or_create(self.builder.image_hash(), push)
        self.image_name = image_name
        self.builder.image_name_to = image_name
        if pushed:
            log.debug("Pushed new image '%s' for instance '%s'", image_name, self.instance.name)
        else:
            log.debug("Using cached image '%s' for instance '%s'", image_name, self.instance.name)
        self.instance.set_state(InstanceState.COMMITTED)

    def clone(self, instance) -> Build:
        cloned = Build(instance)
        cloned.image_name = self.image_name
        cloned.image_pull_policy = self.image_pull_policy
        cloned.builder = self.builder.clone() if self.builder is not None else None
        cloned.command = list(self.command)
        cloned.args = list(self.args)
        cloned.env = dict(self.env)
        cloned.node_selector = dict(self.node_selector)
        return cloned
