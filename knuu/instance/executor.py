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

"""Idle helper instance used to run tools (curl, dig, ...) inside the cluster."""

from __future__ import annotations

from knuu.constants import (
    EXECUTOR_ARGS,
    EXECUTOR_CPU_REQUEST,
    EXECUTOR_MEMORY_LIMIT,
    EXECUTOR_MEMORY_REQUEST,
    EXECUTOR_NAME,
    image_ref,
)
from knuu.context import Context
from knuu.instance.instance import Instance
from knuu.instance.state import InstanceType
from knuu.names import random_k8s_name


def new_executor(ctx: Context, sys_deps) -> Instance:
    """Start an executor instance and wait until it is running.

    Use ``executor.execution.execute_command(ctx, ...)`` to run commands in it.
    """
    instance = Instance(random_k8s_name(EXECUTOR_NAME), sys_deps)
    instance.set_instance_type(InstanceType.EXECUTOR)
    instance.build.set_image(ctx, image_ref("executor"))
    instance.build.set_args(*EXECUTOR_ARGS)
    instance.resources.set_memory(EXECUTOR_MEMORY_REQUEST, EXECUTOR_MEMORY_LIMIT)
    instance.resources.set_cpu(EXECUTOR_CPU_REQUEST)
    instance.build.commit(ctx)
    instance.execution.start(ctx)
    return instance
