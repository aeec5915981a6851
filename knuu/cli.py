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

"""
cli.py - Operator CLI for knuu test scopes.

Subcommands:
    cleanup    Remove what a test run left behind (scope, namespace)
    scope      Scope helpers (new)

Examples:
    # Delete every knuu resource labelled with a scope
    knuu cleanup scope 20260101-120000-123 --namespace 20260101-120000-123

    # Delete a whole test namespace
    knuu cleanup namespace 20260101-120000-123

    # Print a fresh scope name
    knuu scope new
"""

from __future__ import annotations

import logging
import sys

import typer

from knuu import console
from knuu.commands import cleanup_cmd, scope_cmd
from knuu.config import KnuuConfig
from knuu.errors import KnuuError

app = typer.Typer(
    help="Operator CLI for knuu test scopes.",
    no_args_is_help=True,
)


@app.callback()
def _main_callback() -> None:
    """Initialize logging for all subcommands."""
    logging.basicConfig(
        level=KnuuConfig().log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


app.add_typer(cleanup_cmd.app, name="cleanup")
app.add_typer(scope_cmd.app, name="scope")


def main() -> None:
    try:
        app()
    except KnuuError as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
