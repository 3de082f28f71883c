# /*
# Copyright 2026 The ARC Sandbox Authors.
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

"""CLI subcommand groups and the shared failure wrapper."""

from __future__ import annotations

from collections.abc import Callable

import typer
from rich.markup import escape

from arc_sandbox import console


def run_step(fn: Callable[[], None]) -> None:
    """Run *fn*, turning any failure into a red message and exit status 1."""
    try:
        fn()
    except Exception as e:
        console.print(f"[red]\u274c {escape(str(e))}[/red]")
        raise typer.Exit(code=1)
