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

"""Utility functions for command checks, kubectl, and helm arguments."""

from __future__ import annotations

import subprocess
from collections.abc import Mapping

import sh

from arc_sandbox import console, logger
from arc_sandbox.constants import REQUIRED_COMMANDS


def require_command(cmd: str) -> None:
    """Check if a command exists on the system PATH.

    Args:
        cmd: Name of the CLI command to check.

    Raises:
        RuntimeError: If the command is not found.
    """
    try:
        found = sh.which(cmd)
    except sh.ErrorReturnCode:
        found = None
    if not found:
        raise RuntimeError(f"Missing: {cmd}. Please install it first.")


def check_dependencies(commands: tuple[str, ...] = REQUIRED_COMMANDS) -> None:
    """Fail on the first required CLI tool that is not on PATH."""
    for cmd in commands:
        require_command(cmd)
    console.print("[green]\u2705 All required tools are available[/green]")


def run_kubectl(args: list[str], timeout: int = 30) -> tuple[bool, str, str]:
    """Run a kubectl command via subprocess and return (success, stdout, stderr).

    Uses subprocess instead of sh because callers inspect stderr to tell
    "already exists" apart from real failures.

    Args:
        args: kubectl arguments (e.g. ``["get", "pods", "-n", "default"]``).
        timeout: Maximum seconds to wait for the command to complete.

    Returns:
        Tuple of (success, stdout, stderr).
    """
    logger.debug("kubectl %s", " ".join(args))
    try:
        result = subprocess.run(
            ["kubectl", *args],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        return result.returncode == 0, result.stdout, result.stderr
    except (subprocess.SubprocessError, OSError) as exc:
        return False, "", str(exc)


def ensure_namespace(namespace: str) -> None:
    """Create *namespace*, treating AlreadyExists as success.

    Raises:
        RuntimeError: If namespace creation fails for any other reason.
    """
    ok, _, stderr = run_kubectl(["create", "namespace", namespace])
    if not ok and "AlreadyExists" not in stderr:
        raise RuntimeError(f"Failed to create namespace {namespace}: {stderr.strip()}")


def helm_set_args(values: Mapping[str, object]) -> list[str]:
    """Flatten a mapping into repeated ``--set key=value`` arguments.

    Args:
        values: Helm value paths mapped to their values.

    Returns:
        Argument list ready to splat into a helm invocation.
    """
    return [item for key, value in values.items() for item in ("--set", f"{key}={value}")]


def error_output(err: sh.ErrorReturnCode) -> str:
    """Decode the stderr (or stdout) captured on a failed sh command."""
    raw = err.stderr or err.stdout or b""
    if isinstance(raw, bytes):
        raw = raw.decode(errors="replace")
    return raw.strip()
