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

"""Files delivered to the container and the instance's persistent volume.

While an instance is Preparing, files are baked into the image through the
builder. Once committed, files are shipped in a ConfigMap named after the
instance and mounted one by one with ``subPath``. The single volume is
backed by a PersistentVolumeClaim of the same name, which survives Stop so
data outlives restarts and image swaps.
"""

from __future__ import annotations

import base64
import copy
import os
import shutil
import stat
import tempfile

from kubernetes.utils import parse_quantity

from knuu.context import Context
from knuu.errors import DependencyError, ValidationError
from knuu.instance.state import InstanceState, allowed_in
from knuu.k8s.manifests import config_map_manifest, pvc_manifest
from knuu.k8s.types import File, Volume


def parse_chown(chown: str) -> tuple[str, int]:
    """Split ``user:group`` and return the user and the numeric group id.

    Raises:
        ValidationError: If *chown* is not ``user:group`` with a numeric group.
    """
    user, sep, group = chown.partition(":")
    if not sep or not user or not group:
        raise ValidationError(f"chown '{chown}' must have the form 'user:group'")
    try:
        return user, int(group)
    except ValueError as err:
        raise ValidationError(f"group in chown '{chown}' must be numeric") from err


def validate_quantity(value: str, what: str) -> None:
    try:
        parse_quantity(value)
    except ValueError as err:
        raise ValidationError(f"invalid {what} '{value}': {err}") from err


class Storage:
    """Files and volumes of an instance."""

    def __init__(self, instance) -> None:
        self.instance = instance
        self.files: list[File] = []
        self.volumes: list[Volume] = []
        self.fs_group: int | None = None

    def _claim_group(self, group: int) -> None:
        if self.fs_group is not None and self.fs_group != group:
            raise ValidationError(
                f"all files of '{self.instance.name}' must share one group, "
                f"got {group} after {self.fs_group}"
            )
        self.fs_group = group

    def _copy_to_build_dir(self, src: str, dest: str) -> str:
        """Copy *src* under the build directory and return the path relative to it."""
        relative = dest.lstrip("/")
        target = os.path.join(self.instance.build.build_dir, relative)
        os.makedirs(os.path.dirname(target), exist_ok=True)
        shutil.copy2(src, target)
        return relative

    # ========================================================================
    # Files
    # ========================================================================

    @allowed_in(InstanceState.PREPARING, InstanceState.COMMITTED)
    def add_file(self, src: str, dest: str, chown: str) -> None:
        """Make the local file *src* available at *dest* inside the container.

        Args:
            src: Local path of the file.
            dest: Absolute destination path in the container.
            chown: ``user:group`` owning the file; the group becomes the pod fsGroup.

        Raises:
            ValidationError: On empty paths, a missing source, a malformed
                chown, or a group differing from previously added files.
        """
        if not src or not dest:
            raise ValidationError("file source and destination must not be empty")
        if not os.path.isfile(src):
            raise ValidationError(f"source file '{src}' does not exist")
        _, group = parse_chown(chown)
        self._claim_group(group)

        relative = self._copy_to_build_dir(src, dest)
        if self.instance.state == InstanceState.PREPARING:
            self.instance.build.builder.add_file(relative, dest, chown)
        else:
            mode = stat.S_IMODE(os.stat(src).st_mode)
            self.files.append(File(
                source=os.path.join(self.instance.build.build_dir, relative),
                dest=dest,
                chown=chown,
                permission=f"{mode:04o}",
            ))
        self.instance.logger.debug("Added file '%s' to instance '%s'", dest, self.instance.name)

    @allowed_in(InstanceState.PREPARING, InstanceState.COMMITTED)
    def add_folder(self, src: str, dest: str, chown: str) -> None:
        """Add every regular file below *src*, keeping the layout under *dest*."""
        if not src or not dest:
            raise ValidationError("folder source and destination must not be empty")
        if not os.path.isdir(src):
            raise ValidationError(f"source folder '{src}' does not exist")
        for root, _, names in os.walk(src):
            for name in sorted(names):
                path = os.path.join(root, name)
                relative = os.path.relpath(path, src)
                self.add_file(path, os.path.join(dest, relative), chown)

    @allowed_in(InstanceState.PREPARING, InstanceState.COMMITTED)
    def add_file_bytes(self, data: bytes, dest: str, chown: str) -> None:
        """Like add_file, with the content given in memory."""
        fd, path = tempfile.mkstemp(prefix="knuu-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            self.add_file(path, dest, chown)
        finally:
            os.remove(path)

    @allowed_in(InstanceState.PREPARING, InstanceState.COMMITTED, InstanceState.STARTED)
    def get_file_bytes(self, ctx: Context, file_path: str) -> bytes:
        """Read *file_path* from the image, or from the container once started."""
        if not file_path:
            raise ValidationError("file path must not be empty")
        if self.instance.state != InstanceState.STARTED:
            return self.instance.build.builder.read_file(file_path)
        output = self.instance.execution.execute_command(ctx, "cat", file_path)
        return output.encode()

    # ========================================================================
    # Volumes
    # ========================================================================

    @allowed_in(InstanceState.PREPARING, InstanceState.COMMITTED)
    def add_volume(self, path: str, size: str) -> None:
        self.add_volume_with_owner(path, size, 0)

    @allowed_in(InstanceState.PREPARING, InstanceState.COMMITTED)
    def add_volume_with_owner(self, path: str, size: str, owner: int) -> None:
        """Mount a persistent volume of *size* at *path*, owned by uid/gid *owner*.

        Only one volume per instance is supported.
        """
        if not path:
            raise ValidationError("volume path must not be empty")
        validate_quantity(size, "volume size")
        if self.volumes:
            raise ValidationError(f"instance '{self.instance.name}' already has a volume")
        self.volumes.append(Volume(path=path, size=size, owner=owner))
        self.instance.logger.debug(
            "Added volume '%s' (%s) to instance '%s'", path, size, self.instance.name,
        )

    # ========================================================================
    # Cluster resources
    # ========================================================================

    def deploy_volume(self) -> None:
        k8s = self.instance.sys.k8s
        size = self.volumes[0].size
        k8s.create_pvc(pvc_manifest(self.instance.k8s_name, k8s.namespace, self.instance.execution.labels(), size))

    def destroy_volume(self) -> None:
        self.instance.sys.k8s.delete_pvc(self.instance.k8s_name)

    def deploy_files(self) -> None:
        """Create or update the ConfigMap holding every file, keyed by index."""
        data: dict[str, str] = {}
        binary_data: dict[str, str] = {}
        for index, file in enumerate(self.files):
            try:
                with open(file.source, "rb") as f:
                    content = f.read()
            except OSError as err:
                raise DependencyError("read file", file.source, err) from err
            try:
                data[str(index)] = content.decode("utf-8")
            except UnicodeDecodeError:
                binary_data[str(index)] = base64.b64encode(content).decode("ascii")
        k8s = self.instance.sys.k8s
        k8s.create_or_update_config_map(config_map_manifest(
            self.instance.k8s_name, k8s.namespace, self.instance.execution.labels(), data, binary_data,
        ))

    def destroy_files(self) -> None:
        self.instance.sys.k8s.delete_config_map(self.instance.k8s_name)

    def clone(self, instance) -> Storage:
        cloned = Storage(instance)
        cloned.files = copy.deepcopy(self.files)
        cloned.volumes = copy.deepcopy(self.volumes)
        cloned.fs_group = self.fs_group
        return cloned
