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

"""Helm values and pod template builders.

Everything here is a pure function returning plain dicts, so the sidecar /
no-sidecar choice can be inspected without a cluster. ``render_values``
turns the result into the YAML document fed to ``helm --values -``.
"""

from __future__ import annotations

import yaml

from arc_sandbox.config import DeployConfig, GitHubAppConfig, MonitoringConfig
from arc_sandbox.constants import (
    DOCKER_SOCKET,
    METRICS_RBAC_NAME,
    METRICS_RBAC_RULES,
    MONITORING_SERVER_SA_SUFFIX,
    MONITORING_TOGGLES,
    PULL_POLICY_NEVER,
    PUSHGATEWAY_PORT,
    RUNNER_COMMAND,
    RUNNER_CONTAINER,
    RUNNER_DIAG_DIR,
    RUNNER_IMAGE,
    RUNNER_SA_SUFFIX,
    RUNNER_WORK_DIR,
    SCALE_SET_LABEL,
    SIDECAR_CONTAINER,
    SIDECAR_CPU_LIMIT,
    SIDECAR_DIAG_PATH,
    SIDECAR_MEMORY_LIMIT,
    SIDECAR_WORK_DIR,
    VOLUME_DIAG,
    VOLUME_DOCKER_SOCK,
    VOLUME_WORK,
)


def metrics_endpoint(monitoring: MonitoringConfig) -> str:
    """Cluster-internal URL of the pushgateway installed by the monitoring chart."""
    return (
        f"http://{monitoring.release}-prometheus-pushgateway."
        f"{monitoring.namespace}.svc.cluster.local:{PUSHGATEWAY_PORT}"
    )


def _field_ref(path: str) -> dict:
    return {"valueFrom": {"fieldRef": {"fieldPath": path}}}


def runner_container() -> dict:
    """The ARC runner container with the shared work and diag dirs and the Docker socket."""
    return {
        "name": RUNNER_CONTAINER,
        "image": RUNNER_IMAGE,
        "command": [RUNNER_COMMAND],
        "volumeMounts": [
            {"name": VOLUME_WORK, "mountPath": RUNNER_WORK_DIR},
            {"name": VOLUME_DIAG, "mountPath": RUNNER_DIAG_DIR},
            {"name": VOLUME_DOCKER_SOCK, "mountPath": DOCKER_SOCKET},
        ],
    }


def sidecar_container(image: str, metrics_url: str | None = None) -> dict:
    """The step-exporter sidecar.

    The image is loaded straight into the minikube cache, so the pull
    policy is pinned to ``Never``. All mounts are read-only; the runner's
    ``_diag`` logs appear under ``DIAG_PATH``.

    Args:
        image: Locally built sidecar image reference.
        metrics_url: Metrics ingestion endpoint, or None when no monitoring
            stack is installed.

    Returns:
        Container spec dictionary.
    """
    env = [
        {"name": "POD_NAME", **_field_ref("metadata.name")},
        {"name": "POD_NAMESPACE", **_field_ref("metadata.namespace")},
        {"name": "RUNNER_SCALE_SET", **_field_ref(f"metadata.labels['{SCALE_SET_LABEL}']")},
        {"name": "DIAG_PATH", "value": SIDECAR_DIAG_PATH},
    ]
    if metrics_url:
        env.append({"name": "METRICS_ENDPOINT", "value": metrics_url})

    return {
        "name": SIDECAR_CONTAINER,
        "image": image,
        "imagePullPolicy": PULL_POLICY_NEVER,
        "env": env,
        "volumeMounts": [
            {"name": VOLUME_WORK, "mountPath": SIDECAR_WORK_DIR, "readOnly": True},
            {"name": VOLUME_DIAG, "mountPath": SIDECAR_DIAG_PATH, "readOnly": True},
            {"name": VOLUME_DOCKER_SOCK, "mountPath": DOCKER_SOCKET, "readOnly": True},
        ],
        "resources": {
            "limits": {"cpu": SIDECAR_CPU_LIMIT, "memory": SIDECAR_MEMORY_LIMIT},
        },
    }


def pod_volumes() -> list[dict]:
    return [
        {"name": VOLUME_WORK, "emptyDir": {}},
        {"name": VOLUME_DIAG, "emptyDir": {}},
        {"name": VOLUME_DOCKER_SOCK, "hostPath": {"path": DOCKER_SOCKET, "type": "Socket"}},
    ]


def pod_template(sidecar_image: str = "", metrics_url: str | None = None) -> dict:
    """Build the runner pod template, with the sidecar only when an image is given.

    Args:
        sidecar_image: Sidecar image reference, or empty for a runner-only pod.
        metrics_url: Passed through to :func:`sidecar_container`.

    Returns:
        The ``template`` value of the gha-runner-scale-set chart.
    """
    containers = [runner_container()]
    if sidecar_image:
        containers.append(sidecar_container(sidecar_image, metrics_url))
    return {"spec": {"containers": containers, "volumes": pod_volumes()}}


def runner_set_values(
    github: GitHubAppConfig,
    deploy: DeployConfig,
    metrics_url: str | None = None,
) -> dict:
    """Build the complete values document for the runner scale set release.

    Credentials are referenced through the pre-created secret rather than
    inlined, so the private key never appears in the Helm release history.

    Args:
        github: Validated GitHub App credentials.
        deploy: Deploy configuration (secret name, runner bounds, sidecar image).
        metrics_url: Metrics ingestion endpoint for the sidecar, or None.

    Returns:
        Values dictionary for ``gha-runner-scale-set``.
    """
    return {
        "githubConfigUrl": github.config_url,
        "githubConfigSecret": deploy.secret_name,
        "minRunners": deploy.min_runners,
        "maxRunners": deploy.max_runners,
        "template": pod_template(deploy.sidecar_image, metrics_url),
    }


def monitoring_set_values() -> dict[str, str]:
    """Feature toggles for the metrics chart as ``--set`` pairs."""
    return dict(MONITORING_TOGGLES)


def metrics_rbac_manifests(deploy: DeployConfig, monitoring: MonitoringConfig) -> list[dict]:
    """ClusterRole and binding letting the metrics server and runner pods read metrics.

    Subjects are the service accounts the prometheus and gha-runner-scale-set
    charts create, so they follow the configured releases and namespaces.

    Args:
        deploy: Deploy configuration with the runner release and namespace.
        monitoring: Monitoring configuration with the release and namespace.

    Returns:
        ``[ClusterRole, ClusterRoleBinding]`` manifests.
    """
    role = {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "ClusterRole",
        "metadata": {"name": METRICS_RBAC_NAME},
        "rules": METRICS_RBAC_RULES,
    }
    binding = {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "ClusterRoleBinding",
        "metadata": {"name": METRICS_RBAC_NAME},
        "roleRef": {
            "apiGroup": "rbac.authorization.k8s.io",
            "kind": "ClusterRole",
            "name": METRICS_RBAC_NAME,
        },
        "subjects": [
            {
                "kind": "ServiceAccount",
                "name": f"{monitoring.release}{MONITORING_SERVER_SA_SUFFIX}",
                "namespace": monitoring.namespace,
            },
            {
                "kind": "ServiceAccount",
                "name": f"{deploy.runner_set_release}{RUNNER_SA_SUFFIX}",
                "namespace": deploy.runner_namespace,
            },
        ],
    }
    return [role, binding]


def render_values(values: dict) -> str:
    return yaml.safe_dump(values, sort_keys=False)


def render_manifests(manifests: list[dict]) -> str:
    return yaml.safe_dump_all(manifests, sort_keys=False)
