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

"""Configuration classes, credential validation, and .env loading."""

from __future__ import annotations

import enum
from pathlib import Path

from dotenv import load_dotenv
from dotenv.parser import parse_stream
from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from arc_sandbox import logger
from arc_sandbox.constants import (
    DEFAULT_CONTROLLER_NAMESPACE,
    DEFAULT_CONTROLLER_RELEASE,
    DEFAULT_CPUS,
    DEFAULT_DRIVER,
    DEFAULT_MAX_RUNNERS,
    DEFAULT_MEMORY_MB,
    DEFAULT_MIN_RUNNERS,
    DEFAULT_MONITORING_NAMESPACE,
    DEFAULT_MONITORING_RELEASE,
    DEFAULT_PROFILE,
    DEFAULT_RUNNER_NAMESPACE,
    DEFAULT_RUNNER_SET_RELEASE,
    DEFAULT_SECRET_NAME,
    dep_value,
)


class CredentialsError(ValueError):
    """Raised when the GitHub App credentials are missing or unusable."""


class EnvFileError(ValueError):
    """Raised when an env file contains lines that are not KEY=value pairs."""


class DeploymentVariant(str, enum.Enum):
    """Pod template flavour submitted to the runner scale set chart."""

    WITH_SIDECAR = "with-sidecar"
    WITHOUT_SIDECAR = "without-sidecar"


# ============================================================================
# Configuration classes
# ============================================================================

class ClusterConfig(BaseSettings):
    """minikube profile configuration, auto-loaded from ARC_* env vars.

    Attributes:
        profile: Name of the minikube profile.
        cpus: CPUs given to a newly created cluster.
        memory: Memory in MiB given to a newly created cluster.
        driver: minikube driver.
    """

    model_config = SettingsConfigDict(env_prefix="ARC_", extra="ignore")

    profile: str = DEFAULT_PROFILE
    cpus: int = Field(default=DEFAULT_CPUS, ge=1)
    memory: int = Field(default=DEFAULT_MEMORY_MB, ge=1024)
    driver: str = DEFAULT_DRIVER


class GitHubAppConfig(BaseSettings):
    """GitHub App credentials, auto-loaded from GITHUB_* env vars.

    Everything defaults to empty so that a missing value is reported by
    :func:`validate_credentials` with the variable name instead of a
    pydantic error dump.
    """

    model_config = SettingsConfigDict(env_prefix="GITHUB_", extra="ignore")

    config_url: str = ""
    app_id: str = ""
    app_installation_id: str = ""
    app_private_key_file: str = ""

    @property
    def private_key_path(self) -> Path:
        return Path(self.app_private_key_file).expanduser()


class DeployConfig(BaseSettings):
    """ARC controller and runner scale set options, auto-loaded from ARC_* env vars.

    Attributes:
        controller_namespace: Namespace of the scale set controller.
        runner_namespace: Namespace of the runner scale set and its secret.
        controller_release: Helm release name of the controller.
        runner_set_release: Helm release name of the runner scale set. This is
            also the ``runs-on`` label used by workflows.
        secret_name: Name of the GitHub App secret.
        min_runners: Minimum idle runners.
        max_runners: Maximum concurrent runners.
        chart_version: ARC chart version, or empty for the latest release.
        sidecar_image: Locally built sidecar image (``SIDECAR_IMAGE``), or empty.
    """

    model_config = SettingsConfigDict(env_prefix="ARC_", extra="ignore", populate_by_name=True)

    controller_namespace: str = DEFAULT_CONTROLLER_NAMESPACE
    runner_namespace: str = DEFAULT_RUNNER_NAMESPACE
    controller_release: str = DEFAULT_CONTROLLER_RELEASE
    runner_set_release: str = DEFAULT_RUNNER_SET_RELEASE
    secret_name: str = DEFAULT_SECRET_NAME
    min_runners: int = Field(default=DEFAULT_MIN_RUNNERS, ge=0)
    max_runners: int = Field(default=DEFAULT_MAX_RUNNERS, ge=1)
    chart_version: str = dep_value("arc", "version", default="")
    sidecar_image: str = Field(
        default="",
        validation_alias=AliasChoices("SIDECAR_IMAGE", "sidecar_image"),
    )

    @model_validator(mode="after")
    def _check_runner_bounds(self) -> DeployConfig:
        if self.min_runners > self.max_runners:
            raise ValueError(
                f"min_runners ({self.min_runners}) exceeds max_runners ({self.max_runners})")
        return self

    @property
    def variant(self) -> DeploymentVariant:
        if self.sidecar_image:
            return DeploymentVariant.WITH_SIDECAR
        return DeploymentVariant.WITHOUT_SIDECAR


class MonitoringConfig(BaseSettings):
    """Metrics stack configuration, auto-loaded from ARC_MONITORING_* env vars."""

    model_config = SettingsConfigDict(env_prefix="ARC_MONITORING_", extra="ignore")

    enabled: bool = False
    namespace: str = DEFAULT_MONITORING_NAMESPACE
    release: str = DEFAULT_MONITORING_RELEASE
    chart_version: str = dep_value("monitoring", "version", default="")


# ============================================================================
# Credentials
# ============================================================================

_REQUIRED_CREDENTIALS = (
    ("config_url", "GITHUB_CONFIG_URL"),
    ("app_id", "GITHUB_APP_ID"),
    ("app_installation_id", "GITHUB_APP_INSTALLATION_ID"),
    ("app_private_key_file", "GITHUB_APP_PRIVATE_KEY_FILE"),
)


def validate_credentials(github: GitHubAppConfig) -> None:
    """Check that every required credential is set and the private key exists.

    Args:
        github: Credentials loaded from the environment.

    Raises:
        CredentialsError: Naming the first missing variable, or the missing
            private key path.
    """
    for field, env_name in _REQUIRED_CREDENTIALS:
        if not getattr(github, field).strip():
            raise CredentialsError(f"Set {env_name}")
    if not github.private_key_path.is_file():
        raise CredentialsError(f"Private key file not found: {github.app_private_key_file}")


def load_env_file(path: Path) -> bool:
    """Export key=value pairs from *path* into the process environment.

    Comment and blank lines are skipped. Values in the file win over
    variables already set, matching ``export $(grep -v '^#' .env | xargs)``.
    The file is checked before anything is exported, so a malformed line
    leaves the environment untouched.

    Args:
        path: Credentials file, usually ``.env`` in the working directory.

    Returns:
        True if the file existed and was loaded.

    Raises:
        EnvFileError: Listing the line numbers that could not be parsed.
    """
    if not path.is_file():
        return False
    with path.open(encoding="utf-8") as stream:
        bad_lines = [b.original.line for b in parse_stream(stream) if b.error]
    if bad_lines:
        raise EnvFileError(f"Malformed line(s) in {path}: {', '.join(map(str, bad_lines))}")
    logger.debug("Loading environment from %s", path)
    load_dotenv(path, override=True)
    return True
