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

"""Dockerfile-based image builder sessions backed by the Docker daemon."""

from __future__ import annotations

import hashlib
import io
import os
import shlex
import tarfile
from pathlib import Path

import docker
import sh

from knuu import logger
from knuu.config import GitContext
from knuu.errors import DependencyError

DOCKERFILE_NAME = "Dockerfile.knuu"


def default_image_name(build_context: str, registry: str, ttl: str) -> str:
    """Derive a deterministic image name from a build context string."""
    digest = hashlib.sha256(build_context.encode()).hexdigest()[:32]
    return f"{registry}/{digest}:{ttl}"


def _push(client: docker.DockerClient, image_name: str) -> None:
    """Push *image_name*, surfacing errors reported in the push stream."""
    for line in client.images.push(image_name, stream=True, decode=True):
        if "error" in line:
            raise DependencyError("push image", image_name, line["error"])


class BuilderSession:
    """Accumulates Dockerfile instructions on top of a base image.

    Files referenced by ``ADD`` must live inside *build_dir*, which is the
    Docker build context.
    """

    def __init__(self, client_factory, base_image: str, build_dir: str) -> None:
        self._client_factory = client_factory
        self.image_name_from = base_image
        self.image_name_to = ""
        self.build_dir = Path(build_dir)
        self.instructions: list[str] = [f"FROM {base_image}"]
        self._added: list[str] = []

    def clone(self) -> BuilderSession:
        cloned = BuilderSession(self._client_factory, self.image_name_from, str(self.build_dir))
        cloned.image_name_to = self.image_name_to
        cloned.instructions = list(self.instructions)
        cloned._added = list(self._added)
        return cloned

    def changed(self) -> bool:
        return len(self.instructions) > 1

    def run(self, command: list[str]) -> None:
        self.instructions.append("RUN " + " ".join(shlex.quote(part) for part in command))

    def add_file(self, relative_src: str, dest: str, chown: str) -> None:
        self.instructions.append(f"ADD --chown={chown} {relative_src} {dest}")
        self._added.append(relative_src)

    def set_env(self, key: str, value: str) -> None:
        self.instructions.append(f"ENV {key}={shlex.quote(value)}")

    def set_user(self, user: str) -> None:
        self.instructions.append(f"USER {user}")

    def dockerfile(self) -> str:
        return "\n".join(self.instructions) + "\n"

    def image_hash(self) -> str:
        """Fingerprint of the Dockerfile and the content of every added file."""
        digest = hashlib.sha256(self.dockerfile().encode())
        for relative in self._added:
            path = self.build_dir / relative
            digest.update(relative.encode())
            if path.is_file():
                digest.update(path.read_bytes())
        return digest.hexdigest()

    def push(self, image_name: str) -> None:
        """Build the accumulated Dockerfile and push it as *image_name*.

        Raises:
            DependencyError: If the build or the push fails.
        """
        self.build_dir.mkdir(parents=True, exist_ok=True)
        (self.build_dir / DOCKERFILE_NAME).write_text(self.dockerfile())
        client = self._client_factory()
        try:
            client.images.build(
                path=str(self.build_dir), dockerfile=DOCKERFILE_NAME, tag=image_name, rm=True,
            )
            _push(client, image_name)
        except (docker.errors.BuildError, docker.errors.APIError) as err:
            raise DependencyError("build image", image_name, err) from err
        self.image_name_to = image_name
        logger.debug("Pushed image %s", image_name)

    def read_file(self, file_path: str) -> bytes:
        """Read *file_path* from the built image (or the base image if unchanged).

        Raises:
            DependencyError: If the session has changes that were never pushed,
                or the file cannot be read.
        """
        if not self.image_name_to and self.changed():
            raise DependencyError("read file from image", file_path, "image has not been built yet")
        image = self.image_name_to or self.image_name_from
        client = self._client_factory()
        try:
            container = client.containers.create(image, command=["true"])
        except docker.errors.APIError as err:
            raise DependencyError("read file from image", image, err) from err
        try:
            chunks, _ = container.get_archive(file_path)
            archive = io.BytesIO(b"".join(chunks))
            with tarfile.open(fileobj=archive) as tar:
                for member in tar.getmembers():
                    if member.isfile():
                        return tar.extractfile(member).read()
        except docker.errors.APIError as err:
            raise DependencyError("read file from image", f"{image}:{file_path}", err) from err
        finally:
            container.remove(force=True)
        raise DependencyError("read file from image", f"{image}:{file_path}", "not a regular file")


class DockerImageBuilder:
    """Creates builder sessions and builds images from git repositories."""

    def __init__(self, client: docker.DockerClient | None = None) -> None:
        self._client = client

    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = docker.from_env()
            except docker.errors.DockerException as err:
                raise DependencyError("connect to docker", "docker", err) from err
        return self._client

    def new_session(self, base_image: str, build_dir: str) -> BuilderSession:
        os.makedirs(build_dir, exist_ok=True)
        return BuilderSession(self.client, base_image, build_dir)

    def build_from_git(self, git_context: GitContext, build_dir: str, image_name: str) -> None:
        """Clone *git_context* into *build_dir*, build its Dockerfile and push it.

        Raises:
            DependencyError: If cloning, building or pushing fails.
        """
        src = Path(build_dir) / "src"
        clone_args = ["clone", "--depth", "1"]
        if git_context.commit:
            clone_args = ["clone"]
        if git_context.branch:
            clone_args += ["--branch", git_context.branch]
        try:
            if not src.exists():
                sh.git(*clone_args, git_context.clone_url(), str(src))
            if git_context.commit:
                sh.git("-C", str(src), "checkout", git_context.commit)
        except sh.ErrorReturnCode as err:
            raise DependencyError("clone git repository", git_context.clean_repo(), err) from err
        client = self.client()
        try:
            client.images.build(path=str(src), tag=image_name, rm=True)
            _push(client, image_name)
        except (docker.errors.BuildError, docker.errors.APIError) as err:
            raise DependencyError("build image from git", image_name, err) from err
        logger.info("Built %s from %s", image_name, git_context.clean_repo())
