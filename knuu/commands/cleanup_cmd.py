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

"""Cleanup subcommands (scope, namespace)."""

from __future__ import annotations

import sh
import typer

from knuu import console
from knuu.constants import LABEL_SCOPE
from knuu.context import Context
from knuu.errors import DependencyError
from knuu.k8s.client import KubeClient
from knuu.knuu import CLEANUP_KINDS

app = typer.Typer(help="Remove resources left behind by test runs.")


@app.command("scope")
def scope(
    scope: str = typer.Argument(..., help="Test scope whose resources are deleted"),
    namespace: str | None = typer.Option(None, "--namespace", "-n", help="Namespace, defaults to the scope"),
) -> None:
    """Delete every knuu resource labelled with SCOPE."""
    namespace = namespace or scope
    try:
        sh.kubectl("delete", CLEANUP_KINDS, "-l", f"{LABEL_SCOPE}={scope}", "-n", namespace, "--ignore-not-found")
    except (sh.ErrorReturnCode, sh.CommandNotFound) as err:
        raise DependencyError("cleanup scope", scope, err) from err
    console.print(f"[green]✅ Removed resources of scope {scope}[/green]")


@app.command("namespace")
def namespace(
    name: str = typer.Argument(..., help="Namespace to delete"),
    timeout: float = typer.Option(300.0, "--timeout", help="Seconds to wait for the deletion"),
) -> None:
    """Delete a test namespace and wait until it is gone."""
    ctx = Context.background().with_timeout(timeout)
    KubeClient(name).delete_namespace(ctx)
    console.print(f"[green]✅ Deleted namespace {name}[/green]")
