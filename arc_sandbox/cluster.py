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

"""minikube cluster lifecycle and sidecar image loading."""

from __future__ import annotations

import docker
import sh
from rich.panel import Panel

from arc_sandbox import console, logger
from arc_sandbox.config import ClusterConfig


# ============================================================================
# Cluster operations
# ============================================================================

def cluster_exists(cluster_cfg: ClusterConfig) -> bool:
    """Return True if ``minikube status`` reports the profile."""
    try:
        sh.minikube("status", "-p", cluster_cfg.profile)
    except sh.ErrorReturnCode:
        return False
    return True


def create_cluster(cluster_cfg: ClusterConfig) -> None:
    """Start the minikube profile, reusing it when it already exists.

    The profile is made active afterwards so later kubectl and helm calls
    target this cluster.

    Args:
        cluster_cfg: minikube profile configuration.
    """
    console.print(Panel.fit("Creating minikube cluster", style="bold blue"))
    if cluster_exists(cluster_cfg):
        console.print(f"[yellow]\u2139\ufe0f  Minikube cluster '{cluster_cfg.profile}' already exists[/yellow]")
    else:
        console.print(
            f"[yellow]\u2139\ufe0f  Starting '{cluster_cfg.profile}' "
            f"(cpus={cluster_cfg.cpus}, memory={cluster_cfg.memory}MB, driver={cluster_cfg.driver})...[/yellow]"
        )
        logger.debug("minikube start --profile=%s", cluster_cfg.profile)
        sh.minikube(
            "start",
            f"--profile={cluster_cfg.profile}",
            f"--cpus={cluster_cfg.cpus}",
            f"--memory={cluster_cfg.memory}",
            f"--driver={cluster_cfg.driver}",
        )
        console.print("[green]\u2705 Cluster created successfully[/green]")
    sh.minikube("profile", cluster_cfg.profile)


def delete_cluster(cluster_cfg: ClusterConfig) -> None:
    """Delete the minikube profile.

    minikube itself treats deleting a missing profile as success, so no
    existence check is made here.

    Args:
        cluster_cfg: minikube profile configuration with the profile name.
    """
    console.print(f"[yellow]\u2139\ufe0f  Deleting minikube cluster '{cluster_cfg.profile}'...[/yellow]")
    sh.minikube("delete", f"--profile={cluster_cfg.profile}")
    console.print("[green]\u2705 Cleanup complete[/green]")


# ============================================================================
# Sidecar image
# ============================================================================

def _ensure_local_image(image: str) -> None:
    """Fail early if *image* is not present in the local Docker daemon.

    An unreachable daemon only produces a warning; ``minikube image load``
    reports its own error in that case.

    Raises:
        RuntimeError: If the daemon is reachable and does not have the image.
    """
    try:
        docker_client = docker.from_env()
    except docker.errors.DockerException as e:
        console.print(f"[yellow]\u26a0\ufe0f  Failed to connect to Docker: {e}[/yellow]")
        return

    try:
        docker_client.images.get(image)
    except docker.errors.ImageNotFound as err:
        raise RuntimeError(f"Sidecar image '{image}' not found locally. Build it first.") from err
    finally:
        docker_client.close()


def load_image(cluster_cfg: ClusterConfig, image: str) -> None:
    """Push a locally built image into the cluster's image cache.

    Args:
        cluster_cfg: minikube profile configuration.
        image: Image reference, or empty to skip.
    """
    if not image:
        console.print("[yellow]\u2139\ufe0f  No SIDECAR_IMAGE provided, skipping sidecar[/yellow]")
        return

    console.print(Panel.fit(f"Loading sidecar image: {image}", style="bold blue"))
    _ensure_local_image(image)
    sh.minikube("-p", cluster_cfg.profile, "image", "load", image)
    console.print(f"[green]\u2705 Loaded {image} into '{cluster_cfg.profile}'[/green]")
