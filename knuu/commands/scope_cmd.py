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

"""Scope subcommands (new)."""

from __future__ import annotations

import typer

from knuu import console
from knuu.knuu import default_scope

app = typer.Typer(help="Test scope helpers.")


@app.command("new")
def new() -> None:
    """Print a fresh scope name (``YYYYMMDD-HHMMSS-mmm``)."""
    console.print(default_scope(), highlight=False)
