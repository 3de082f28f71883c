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

"""Constants, dependency loading, and dep_value helper."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

PACKAGE_DIR = Path(__file__).resolve().parent


def load_dependencies() -> dict:
    """Load chart references and images from dependencies.yaml.

    Returns:
        Parsed YAML content as a nested dictionary.
    """
    with open(PACKAGE_DIR / "dependencies.yaml") as f:
        return yaml.safe_load(f)


DEPENDENCIES = load_dependencies()


def dep_value(*keys: str, default: Any = None) -> Any:
    """Safely traverse the DEPENDENCIES dict by key path.

    Args:
        *keys: Sequence of dictionary keys to traverse.
        default: Value to return if any key is missing.

    Returns:
        The value at the nested key path, or *default* if not found.
    """
    node = DEPENDENCIES
    for key in keys:
        if not isinstance(node, dict):
            return default
        node = node.get(key)
        if node is None:
            return default
    return node


REQUIRED_COMMANDS = ("minikube", "kubectl", "helm", "docker")
DEFAULT_ENV_FILE = ".env"

# -- Minikube defaults --
DEFAULT_PROFILE = "arc-minikube"
DEFAULT_CPUS = 2
DEFAULT_MEMORY_MB = 4096
DEFAULT_DRIVER = "docker"

# -- Namespaces --
DEFAULT_CONTROLLER_NAMESPACE = "arc-systems"
DEFAULT_RUNNER_NAMESPACE = "arc-runners"
DEFAULT_MONITORING_NAMESPACE = "monitoring"

# -- Helm releases --
DEFAULT_CONTROLLER_RELEASE = "arc"
DEFAULT_RUNNER_SET_RELEASE = "arc-runner-set"
DEFAULT_MONITORING_RELEASE = "prometheus"

# -- Helm charts --
ARC_CONTROLLER_CHART = dep_value("arc", "controller_chart")
ARC_RUNNER_SET_CHART = dep_value("arc", "runner_set_chart")
RUNNER_IMAGE = dep_value("arc", "runner_image")
HELM_REPO_MONITORING = dep_value("monitoring", "repo_name")
HELM_REPO_MONITORING_URL = dep_value("monitoring", "repo_url")
HELM_CHART_MONITORING = dep_value("monitoring", "chart")
PUSHGATEWAY_PORT = dep_value("monitoring", "pushgateway_port", default=9091)

# -- Runner scale set --
DEFAULT_SECRET_NAME = "github-app-secret"
DEFAULT_MIN_RUNNERS = 0
DEFAULT_MAX_RUNNERS = 2
SCALE_SET_LABEL = "actions.github.com/scale-set-name"
LISTENER_COMPONENT_LABEL = "app.kubernetes.io/component=runner-scale-set-listener"

# -- Secret keys --
SECRET_KEY_APP_ID = "github_app_id"
SECRET_KEY_INSTALLATION_ID = "github_app_installation_id"
SECRET_KEY_PRIVATE_KEY = "github_app_private_key"

# -- Pod template --
RUNNER_CONTAINER = "runner"
RUNNER_COMMAND = "/home/runner/run.sh"
RUNNER_WORK_DIR = "/home/runner/_work"
SIDECAR_CONTAINER = "step-exporter"
SIDECAR_WORK_DIR = "/work"
RUNNER_DIAG_DIR = "/home/runner/_diag"
SIDECAR_DIAG_PATH = "/diag"
SIDECAR_CPU_LIMIT = "200m"
SIDECAR_MEMORY_LIMIT = "128Mi"
DOCKER_SOCKET = "/var/run/docker.sock"
VOLUME_WORK = "work"
VOLUME_DOCKER_SOCK = "docker-sock"
VOLUME_DIAG = "diag"
PULL_POLICY_NEVER = "Never"

# -- Metrics RBAC --
METRICS_RBAC_NAME = "arc-metrics-reader"
METRICS_RBAC_RULES = [
    {
        "apiGroups": [""],
        "resources": ["pods", "nodes", "nodes/metrics", "nodes/proxy", "services", "endpoints"],
        "verbs": ["get", "list", "watch"],
    },
    {"nonResourceURLs": ["/metrics"], "verbs": ["get"]},
]
# Service account names the charts derive from their release names.
MONITORING_SERVER_SA_SUFFIX = "-server"
RUNNER_SA_SUFFIX = "-gha-rs-no-permission"

# -- Monitoring chart toggles --
MONITORING_TOGGLES = {
    "alertmanager.enabled": "false",
    "kube-state-metrics.enabled": "false",
    "prometheus-node-exporter.enabled": "false",
    "prometheus-pushgateway.enabled": "true",
    "server.persistentVolume.enabled": "false",
}

# -- Listener readiness --
LISTENER_READY_MAX_RETRIES = 24
LISTENER_READY_POLL_INTERVAL_SECONDS = 5
