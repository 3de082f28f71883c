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

"""ARC controller, runner scale set, GitHub secret, and monitoring installation."""

from __future__ import annotations

import sh
from rich.panel import Panel
from tenacity import RetryError, retry, stop_after_attempt, wait_fixed

from arc_sandbox import console, logger
from arc_sandbox.config import DeployConfig, GitHubAppConfig, MonitoringConfig
from arc_sandbox.constants import (
    ARC_CONTROLLER_CHART,
    ARC_RUNNER_SET_CHART,
    HELM_CHART_MONITORING,
    HELM_REPO_MONITORING,
    HELM_REPO_MONITORING_URL,
    LISTENER_COMPONENT_LABEL,
    LISTENER_READY_MAX_RETRIES,
    LISTENER_READY_POLL_INTERVAL_SECONDS,
    SCALE_SET_LABEL,
    SECRET_KEY_APP_ID,
    SECRET_KEY_INSTALLATION_ID,
    SECRET_KEY_PRIVATE_KEY,
)
from arc_sandbox.utils import ensure_namespace, error_output, helm_set_args, run_kubectl
from arc_sandbox.values import (
    metrics_endpoint,
    metrics_rbac_manifests,
    monitoring_set_values,
    render_manifests,
    render_values,
    runner_set_values,
)


# ============================================================================
# Monitoring
# ============================================================================

def _add_helm_repo(name: str, url: str) -> None:
    """Register a chart repository, tolerating an existing entry."""
    try:
        sh.helm("repo", "add", name, url)
    except sh.ErrorReturnCode as err:
        if "already exists" not in error_output(err):
            raise
        console.print(f"[yellow]   Helm repo '{name}' already exists[/yellow]")


def install_monitoring(monitoring: MonitoringConfig) -> str:
    """Install the metrics stack and return its ingestion endpoint.

    Args:
        monitoring: Monitoring namespace, release and chart version.

    Returns:
        Cluster-internal URL of the metrics ingestion endpoint.

    Raises:
        RuntimeError: If namespace creation fails.
    """
    console.print(Panel.fit(f"Installing monitoring (namespace: {monitoring.namespace})", style="bold blue"))
    _add_helm_repo(HELM_REPO_MONITORING, HELM_REPO_MONITORING_URL)
    sh.helm("repo", "update", HELM_REPO_MONITORING)
    ensure_namespace(monitoring.namespace)

    helm_args = [
        "upgrade", "--install", monitoring.release, HELM_CHART_MONITORING,
        "--namespace", monitoring.namespace,
        *helm_set_args(monitoring_set_values()),
        "--wait",
    ]
    if monitoring.chart_version:
        helm_args += ["--version", monitoring.chart_version]
    sh.helm(*helm_args)

    endpoint = metrics_endpoint(monitoring)
    console.print(f"[green]\u2705 Monitoring installed, metrics endpoint: {endpoint}[/green]")
    return endpoint


def apply_rbac(deploy: DeployConfig, monitoring: MonitoringConfig) -> None:
    """Apply the metrics-read ClusterRole bound to the configured service accounts."""
    console.print("[yellow]\u2139\ufe0f  Applying metrics RBAC...[/yellow]")
    manifests = render_manifests(metrics_rbac_manifests(deploy, monitoring))
    logger.debug("Metrics RBAC manifests:\n%s", manifests)
    sh.kubectl("apply", "-f", "-", _in=manifests)
    console.print("[green]\u2705 Metrics RBAC applied[/green]")


# ============================================================================
# ARC controller and secret
# ============================================================================

def install_controller(deploy: DeployConfig) -> None:
    """Install or upgrade the scale set controller and wait until it is ready.

    Args:
        deploy: Deploy configuration with the controller namespace and release.
    """
    console.print(Panel.fit("Installing ARC controller", style="bold blue"))
    helm_args = [
        "upgrade", "--install", deploy.controller_release,
        ARC_CONTROLLER_CHART,
        "--namespace", deploy.controller_namespace,
        "--create-namespace",
        "--wait",
    ]
    if deploy.chart_version:
        helm_args += ["--version", deploy.chart_version]
    sh.helm(*helm_args)
    console.print("[green]\u2705 ARC controller installed[/green]")


def create_github_secret(github: GitHubAppConfig, deploy: DeployConfig) -> None:
    """Replace the GitHub App secret in the runner namespace.

    The secret is deleted first so re-running setup always leaves exactly one
    secret holding the current credentials.

    Args:
        github: Validated GitHub App credentials.
        deploy: Deploy configuration with the runner namespace and secret name.

    Raises:
        RuntimeError: If the namespace or the old secret cannot be handled.
    """
    console.print(Panel.fit("Creating runner namespace and secret", style="bold blue"))
    ensure_namespace(deploy.runner_namespace)

    ok, stdout, stderr = run_kubectl([
        "delete", "secret", deploy.secret_name,
        "-n", deploy.runner_namespace, "--ignore-not-found",
    ])
    if not ok:
        raise RuntimeError(f"Failed to delete secret {deploy.secret_name}: {stderr.strip()}")
    if "deleted" in stdout:
        console.print(f"[yellow]   Replacing existing secret '{deploy.secret_name}'[/yellow]")

    logger.debug("Creating secret %s/%s", deploy.runner_namespace, deploy.secret_name)
    sh.kubectl(
        "create", "secret", "generic", deploy.secret_name,
        f"--namespace={deploy.runner_namespace}",
        f"--from-literal={SECRET_KEY_APP_ID}={github.app_id}",
        f"--from-literal={SECRET_KEY_INSTALLATION_ID}={github.app_installation_id}",
        f"--from-file={SECRET_KEY_PRIVATE_KEY}={github.private_key_path}",
    )
    console.print(f"[green]\u2705 Secret '{deploy.secret_name}' created in {deploy.runner_namespace}[/green]")


# ============================================================================
# Runner scale set
# ============================================================================

def install_runner_set(
    github: GitHubAppConfig,
    deploy: DeployConfig,
    metrics_url: str | None = None,
) -> None:
    """Install or upgrade the runner scale set with the generated pod template.

    Args:
        github: Validated GitHub App credentials.
        deploy: Deploy configuration; ``sidecar_image`` selects the variant.
        metrics_url: Metrics ingestion endpoint for the sidecar, or None.
    """
    console.print(Panel.fit(f"Deploying runner scale set ({deploy.variant.value})", style="bold blue"))
    values = render_values(runner_set_values(github, deploy, metrics_url))
    logger.debug("Runner scale set values:\n%s", values)

    helm_args = [
        "upgrade", "--install", deploy.runner_set_release,
        ARC_RUNNER_SET_CHART,
        "--namespace", deploy.runner_namespace,
        "--values", "-",
        "--wait",
    ]
    if deploy.chart_version:
        helm_args += ["--version", deploy.chart_version]
    sh.helm(*helm_args, _in=values)
    console.print("[green]\u2705 ARC deployed![/green]")


@retry(
    stop=stop_after_attempt(LISTENER_READY_MAX_RETRIES),
    wait=wait_fixed(LISTENER_READY_POLL_INTERVAL_SECONDS),
    reraise=True,
)
def _check_listener_running(deploy: DeployConfig) -> None:
    """Raise unless the scale set listener pod reports phase Running.

    Raises:
        RuntimeError: If no listener pod is running yet.
    """
    ok, stdout, _ = run_kubectl([
        "get", "pods",
        "-n", deploy.controller_namespace,
        "-l", f"{SCALE_SET_LABEL}={deploy.runner_set_release},{LISTENER_COMPONENT_LABEL}",
        "-o", "jsonpath={.items[*].status.phase}",
    ])
    if not ok or "Running" not in stdout.split():
        raise RuntimeError("Listener not running")


def wait_for_listener(deploy: DeployConfig) -> None:
    """Wait for the controller to start the scale set listener.

    Helm's ``--wait`` does not cover the listener because the controller
    creates it after the release is installed.

    Raises:
        RuntimeError: If the listener does not come up within the timeout.
    """
    console.print("[yellow]\u2139\ufe0f  Waiting for runner scale set listener...[/yellow]")
    try:
        _check_listener_running(deploy)
    except (RuntimeError, RetryError) as err:
        raise RuntimeError(
            "Timed out waiting for the scale set listener. Check the GitHub App "
            f"credentials and `kubectl logs -n {deploy.controller_namespace} "
            f"-l app.kubernetes.io/name=gha-rs-controller`"
        ) from err
    console.print("[green]\u2705 Listener is running[/green]")
