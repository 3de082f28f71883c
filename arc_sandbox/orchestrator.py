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

"""Orchestration functions that compose domain modules into workflows."""

from __future__ import annotations

from pathlib import Path

import sh
from rich.panel import Panel

from arc_sandbox import console
from arc_sandbox.cluster import create_cluster, delete_cluster, load_image
from arc_sandbox.components import (
    apply_rbac,
    create_github_secret,
    install_controller,
    install_monitoring,
    install_runner_set,
    wait_for_listener,
)
from arc_sandbox.config import (
    ClusterConfig,
    DeployConfig,
    GitHubAppConfig,
    MonitoringConfig,
    load_env_file,
    validate_credentials,
)
from arc_sandbox.constants import DEFAULT_ENV_FILE, SCALE_SET_LABEL, SIDECAR_CONTAINER
from arc_sandbox.utils import check_dependencies


# ============================================================================
# Internal helpers
# ============================================================================

def _print_next_steps(deploy: DeployConfig) -> None:
    console.print()
    console.print("Next steps:")
    console.print(f"  1. Add a workflow with 'runs-on: {deploy.runner_set_release}' to your repo")
    console.print("  2. Push to trigger the workflow")
    if deploy.sidecar_image:
        console.print("  3. Run: arc-sandbox watch")


def load_configs(
    env_file: Path = Path(DEFAULT_ENV_FILE),
    sidecar_image: str | None = None,
    monitoring_enabled: bool | None = None,
) -> tuple[ClusterConfig, GitHubAppConfig, DeployConfig, MonitoringConfig]:
    """Load the credentials file, then build every config from the environment.

    Args:
        env_file: Optional key=value credentials file.
        sidecar_image: CLI override for ``SIDECAR_IMAGE``, or None.
        monitoring_enabled: CLI override for ``ARC_MONITORING_ENABLED``, or None.

    Returns:
        Tuple of (cluster, github, deploy, monitoring) configs.
    """
    load_env_file(env_file)

    cluster_cfg = ClusterConfig()
    github = GitHubAppConfig()
    deploy = DeployConfig()
    monitoring = MonitoringConfig()
    if sidecar_image is not None:
        deploy = deploy.model_copy(update={"sidecar_image": sidecar_image})
    if monitoring_enabled is not None:
        monitoring = monitoring.model_copy(update={"enabled": monitoring_enabled})
    return cluster_cfg, github, deploy, monitoring


# ============================================================================
# Public API
# ============================================================================

def run_setup(
    *,
    env_file: Path = Path(DEFAULT_ENV_FILE),
    sidecar_image: str | None = None,
    monitoring_enabled: bool | None = None,
    skip_listener_wait: bool = False,
) -> None:
    """Create the cluster and deploy ARC, optionally with sidecar and monitoring.

    Every check that can fail without touching the cluster (tools on PATH,
    credentials, private key file) runs before the first mutating command.

    Args:
        env_file: Optional key=value credentials file.
        sidecar_image: CLI override for ``SIDECAR_IMAGE``, or None.
        monitoring_enabled: CLI override for ``ARC_MONITORING_ENABLED``, or None.
        skip_listener_wait: Whether to return right after the Helm install.

    Raises:
        CredentialsError: If a credential is missing.
        RuntimeError: If any step fails.
    """
    cluster_cfg, github, deploy, monitoring = load_configs(env_file, sidecar_image, monitoring_enabled)

    console.print(Panel.fit("Checking prerequisites", style="bold blue"))
    check_dependencies()
    validate_credentials(github)

    create_cluster(cluster_cfg)
    load_image(cluster_cfg, deploy.sidecar_image)

    metrics_url = None
    if monitoring.enabled:
        metrics_url = install_monitoring(monitoring)

    install_controller(deploy)
    create_github_secret(github, deploy)
    if monitoring.enabled:
        apply_rbac(deploy, monitoring)
    install_runner_set(github, deploy, metrics_url)

    if not skip_listener_wait:
        wait_for_listener(deploy)
    _print_next_steps(deploy)


def run_cleanup(env_file: Path = Path(DEFAULT_ENV_FILE)) -> None:
    """Delete the minikube profile."""
    load_env_file(env_file)
    delete_cluster(ClusterConfig())


def watch_sidecar_logs(env_file: Path = Path(DEFAULT_ENV_FILE)) -> None:
    """Follow the sidecar logs of every runner pod in the scale set."""
    load_env_file(env_file)
    deploy = DeployConfig()
    console.print(
        f"[yellow]\u2139\ufe0f  Tailing '{SIDECAR_CONTAINER}' logs in {deploy.runner_namespace} "
        "(Ctrl+C to stop)...[/yellow]"
    )
    sh.kubectl(
        "logs",
        "-n", deploy.runner_namespace,
        "-l", f"{SCALE_SET_LABEL}={deploy.runner_set_release}",
        "-c", SIDECAR_CONTAINER,
        "--prefix",
        "--follow",
        "--max-log-requests", str(deploy.max_runners + 1),
        _fg=True,
    )
