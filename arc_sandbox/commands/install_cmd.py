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

"""Install subcommands (monitoring, controller, runner-set) for an existing cluster."""

from __future__ import annotations

import typer

from arc_sandbox.commands import run_step
from arc_sandbox.components import (
    apply_rbac,
    create_github_secret,
    install_controller,
    install_monitoring,
    install_runner_set,
)
from arc_sandbox.config import validate_credentials
from arc_sandbox.orchestrator import load_configs
from arc_sandbox.values import metrics_endpoint

app = typer.Typer(help="Install single components on an existing cluster.")


@app.command()
def monitoring(ctx: typer.Context) -> None:
    """Install the metrics stack and its RBAC."""
    def _install() -> None:
        _, _, deploy, monitoring_cfg = load_configs(ctx.obj["env_file"])
        install_monitoring(monitoring_cfg)
        apply_rbac(deploy, monitoring_cfg)

    run_step(_install)


@app.command()
def controller(ctx: typer.Context) -> None:
    """Install the ARC scale set controller via Helm."""
    def _install() -> None:
        _, _, deploy, _ = load_configs(ctx.obj["env_file"])
        install_controller(deploy)

    run_step(_install)


@app.command("runner-set")
def runner_set(
    ctx: typer.Context,
    sidecar_image: str | None = typer.Option(
        None, "--sidecar-image", help="Sidecar image already loaded into the cluster"),
    with_metrics: bool = typer.Option(
        False, "--with-metrics", help="Point the sidecar at the installed metrics stack"),
) -> None:
    """Recreate the GitHub App secret and install the runner scale set."""
    def _install() -> None:
        _, github, deploy, monitoring_cfg = load_configs(ctx.obj["env_file"], sidecar_image)
        validate_credentials(github)
        create_github_secret(github, deploy)
        metrics_url = metrics_endpoint(monitoring_cfg) if with_metrics else None
        install_runner_set(github, deploy, metrics_url)

    run_step(_install)
