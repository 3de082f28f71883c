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

"""
cli.py - Local minikube sandbox for GitHub Actions Runner Controller (ARC).

Commands:
    setup      Create minikube cluster + deploy ARC (optionally with sidecar)
    watch      Tail sidecar logs from runner pods
    cleanup    Delete minikube cluster
    install    Install single components on an existing cluster

Required env vars for setup (may also come from .env):
    GITHUB_CONFIG_URL              Org or repo URL (https://github.com/your-org)
    GITHUB_APP_ID                  GitHub App ID
    GITHUB_APP_INSTALLATION_ID     GitHub App Installation ID
    GITHUB_APP_PRIVATE_KEY_FILE    Path to GitHub App private key PEM file

Optional env vars:
    SIDECAR_IMAGE                  Custom sidecar image to load (e.g. my-sidecar:latest)
    ARC_MONITORING_ENABLED         Install the metrics stack and wire it into the sidecar
    ARC_PROFILE, ARC_CPUS, ...     See the config classes for the full list

Examples:
    export SIDECAR_IMAGE=my-sidecar:latest
    arc-sandbox setup
    # Trigger a workflow with 'runs-on: arc-runner-set'
    arc-sandbox watch
    arc-sandbox cleanup
"""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from typer.core import TyperGroup

from arc_sandbox.commands import install_cmd, run_step
from arc_sandbox.constants import DEFAULT_ENV_FILE
from arc_sandbox.orchestrator import run_cleanup, run_setup, watch_sidecar_logs


class UsageOnUnknownGroup(TyperGroup):
    """Print usage and exit 0 for unrecognised commands instead of a usage error."""

    def resolve_command(self, ctx, args):
        if args and not args[0].startswith("-") and self.get_command(ctx, args[0]) is None:
            typer.echo(ctx.get_help())
            raise typer.Exit()
        return super().resolve_command(ctx, args)


app = typer.Typer(
    cls=UsageOnUnknownGroup,
    help="Local minikube sandbox for GitHub Actions Runner Controller.",
    invoke_without_command=True,
)


@app.callback()
def _main_callback(
    ctx: typer.Context,
    env_file: Path = typer.Option(
        Path(DEFAULT_ENV_FILE), "--env-file", help="Credentials file loaded before any step"),
    debug: bool = typer.Option(False, "--debug", help="Log every external command"),
) -> None:
    """Initialize logging and show usage when no command is given."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    ctx.obj = {"env_file": env_file}
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@app.command()
def setup(
    ctx: typer.Context,
    sidecar_image: str | None = typer.Option(
        None, "--sidecar-image", help="Sidecar image to load (overrides SIDECAR_IMAGE)"),
    monitoring: bool = typer.Option(
        False, "--monitoring", help="Install the metrics stack (same as ARC_MONITORING_ENABLED=true)"),
    skip_listener_wait: bool = typer.Option(
        False, "--skip-listener-wait", help="Do not wait for the scale set listener pod"),
) -> None:
    """Create minikube cluster + deploy ARC with optional sidecar."""
    run_step(lambda: run_setup(
        env_file=ctx.obj["env_file"],
        sidecar_image=sidecar_image,
        monitoring_enabled=True if monitoring else None,
        skip_listener_wait=skip_listener_wait,
    ))


@app.command()
def cleanup(ctx: typer.Context) -> None:
    """Delete minikube cluster."""
    run_step(lambda: run_cleanup(ctx.obj["env_file"]))


@app.command()
def watch(ctx: typer.Context) -> None:
    """Tail sidecar logs from runner pods."""
    run_step(lambda: watch_sidecar_logs(ctx.obj["env_file"]))


app.add_typer(install_cmd.app, name="install")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
