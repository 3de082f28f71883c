"""Tests for orchestrator.py module."""

import os
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import sh
import yaml

from arc_sandbox.config import CredentialsError
from arc_sandbox.orchestrator import run_cleanup, run_setup, watch_sidecar_logs
from tests.helpers import helm_calls, make_error, submitted_values


@pytest.fixture
def cluster_mocks(mock_sh, mock_subprocess, mock_docker):
    """Combined fixture for running setup without a cluster."""
    mock_subprocess.return_value = MagicMock(returncode=0, stdout="Running", stderr="")
    return {"sh": mock_sh, "subprocess": mock_subprocess, "docker": mock_docker}


def _assert_no_mutation(mock_sh, mock_subprocess):
    minikube_cmds = [c.args[0] for c in mock_sh.minikube.call_args_list]
    assert "start" not in minikube_cmds
    assert "image" not in minikube_cmds and "-p" not in minikube_cmds
    mock_sh.helm.assert_not_called()
    mock_sh.kubectl.assert_not_called()
    mock_subprocess.assert_not_called()


class TestSetupPreflight:
    """Tests for checks that must run before any cluster mutation."""

    @pytest.mark.parametrize(
        "missing",
        ["GITHUB_CONFIG_URL", "GITHUB_APP_ID", "GITHUB_APP_INSTALLATION_ID", "GITHUB_APP_PRIVATE_KEY_FILE"],
    )
    def test_missing_credential(self, credentials, cluster_mocks, missing):
        """Test a missing credential aborts before provisioning."""
        del os.environ[missing]

        with pytest.raises(CredentialsError, match=f"Set {missing}"):
            run_setup(skip_listener_wait=True)

        _assert_no_mutation(cluster_mocks["sh"], cluster_mocks["subprocess"])

    def test_missing_private_key(self, credentials, cluster_mocks, tmp_path):
        """Test a missing key file aborts with its path."""
        key = tmp_path / "gone.pem"
        os.environ["GITHUB_APP_PRIVATE_KEY_FILE"] = str(key)

        with pytest.raises(CredentialsError) as exc_info:
            run_setup(skip_listener_wait=True)

        assert str(key) in str(exc_info.value)
        _assert_no_mutation(cluster_mocks["sh"], cluster_mocks["subprocess"])

    def test_missing_tool(self, credentials, cluster_mocks):
        """Test a tool missing from PATH is named and nothing runs."""
        def _which(cmd):
            if cmd == "helm":
                raise make_error("which helm")
            return f"/usr/bin/{cmd}"

        cluster_mocks["sh"].which.side_effect = _which

        with pytest.raises(RuntimeError, match="Missing: helm"):
            run_setup(skip_listener_wait=True)

        _assert_no_mutation(cluster_mocks["sh"], cluster_mocks["subprocess"])

    def test_checks_all_required_tools(self, credentials, cluster_mocks):
        """Test every external tool is looked up."""
        run_setup(skip_listener_wait=True)

        checked = [c.args[0] for c in cluster_mocks["sh"].which.call_args_list]
        assert checked == ["minikube", "kubectl", "helm", "docker"]


class TestSetupFlow:
    """Tests for the full setup sequence."""

    def test_without_sidecar(self, credentials, cluster_mocks):
        """Test the runner-only deployment skips the image load."""
        mock_sh = cluster_mocks["sh"]

        run_setup(skip_listener_wait=True)

        assert not any(c.args[:1] == ("-p",) for c in mock_sh.minikube.call_args_list)
        assert len(submitted_values(mock_sh)["template"]["spec"]["containers"]) == 1
        cluster_mocks["docker"].images.get.assert_not_called()

    def test_with_sidecar_from_env(self, credentials, cluster_mocks):
        """Test SIDECAR_IMAGE loads the image and adds the sidecar."""
        os.environ["SIDECAR_IMAGE"] = "exporter:dev"
        mock_sh = cluster_mocks["sh"]

        run_setup(skip_listener_wait=True)

        mock_sh.minikube.assert_any_call("-p", "arc-minikube", "image", "load", "exporter:dev")
        containers = submitted_values(mock_sh)["template"]["spec"]["containers"]
        assert [c["name"] for c in containers] == ["runner", "step-exporter"]
        assert containers[1]["image"] == "exporter:dev"
        assert containers[1]["imagePullPolicy"] == "Never"

    def test_sidecar_override_argument(self, credentials, cluster_mocks):
        """Test the explicit sidecar argument wins over the environment."""
        os.environ["SIDECAR_IMAGE"] = "from-env:1"

        run_setup(sidecar_image="from-cli:2", skip_listener_wait=True)

        containers = submitted_values(cluster_mocks["sh"])["template"]["spec"]["containers"]
        assert containers[1]["image"] == "from-cli:2"

    def test_step_order(self, credentials, cluster_mocks):
        """Test the controller is installed before the secret and runner set."""
        mock_sh = cluster_mocks["sh"]

        run_setup(skip_listener_wait=True)

        names = [name for name, *_ in mock_sh.mock_calls if name in ("helm", "kubectl")]
        assert names == ["helm", "kubectl", "helm"]
        assert helm_calls(mock_sh, "arc")
        assert helm_calls(mock_sh, "arc-runner-set")

    def test_existing_cluster_not_recreated(self, credentials, cluster_mocks):
        """Test re-running against an existing profile skips minikube start."""
        run_setup(skip_listener_wait=True)
        run_setup(skip_listener_wait=True)

        assert not any(c.args[0] == "start" for c in cluster_mocks["sh"].minikube.call_args_list)

    def test_rerun_replaces_secret(self, credentials, cluster_mocks):
        """Test each run deletes the secret before recreating it."""
        run_setup(skip_listener_wait=True)
        run_setup(skip_listener_wait=True)

        kubectl_args = [c.args[0][1:3] for c in cluster_mocks["subprocess"].call_args_list]
        assert kubectl_args.count(["delete", "secret"]) == 2
        creates = [c for c in cluster_mocks["sh"].kubectl.call_args_list if c.args[:2] == ("create", "secret")]
        assert len(creates) == 2

    def test_waits_for_listener(self, credentials, cluster_mocks):
        """Test the listener poll runs unless skipped."""
        run_setup()

        polled = [c.args[0][1:3] for c in cluster_mocks["subprocess"].call_args_list]
        assert ["get", "pods"] in polled

    def test_monitoring_variant(self, credentials, cluster_mocks):
        """Test monitoring installs the chart, RBAC and wires the endpoint."""
        os.environ["SIDECAR_IMAGE"] = "exporter:dev"
        mock_sh = cluster_mocks["sh"]

        run_setup(monitoring_enabled=True, skip_listener_wait=True)

        assert helm_calls(mock_sh, "prometheus")
        applies = [c for c in mock_sh.kubectl.call_args_list if c.args == ("apply", "-f", "-")]
        assert len(applies) == 1
        _, binding = yaml.safe_load_all(applies[0].kwargs["_in"])
        assert {"kind": "ServiceAccount", "name": "arc-runner-set-gha-rs-no-permission",
                "namespace": "arc-runners"} in binding["subjects"]
        sidecar = submitted_values(mock_sh)["template"]["spec"]["containers"][1]
        env = {e["name"]: e for e in sidecar["env"]}
        assert env["METRICS_ENDPOINT"]["value"].startswith("http://prometheus-prometheus-pushgateway.monitoring")

    def test_monitoring_off_by_default(self, credentials, cluster_mocks):
        """Test no monitoring release or RBAC without the flag."""
        mock_sh = cluster_mocks["sh"]

        run_setup(skip_listener_wait=True)

        assert not helm_calls(mock_sh, "prometheus")
        assert not any(c.args[:1] == ("apply",) for c in mock_sh.kubectl.call_args_list)

    def test_credentials_from_env_file(self, private_key, cluster_mocks, tmp_path):
        """Test credentials are picked up from .env in the working directory."""
        (tmp_path / ".env").write_text(
            "# credentials\n"
            "GITHUB_CONFIG_URL=https://github.com/env-org\n"
            "GITHUB_APP_ID=1\n"
            "GITHUB_APP_INSTALLATION_ID=2\n"
            f"GITHUB_APP_PRIVATE_KEY_FILE={private_key}\n"
        )

        run_setup(env_file=Path(".env"), skip_listener_wait=True)

        assert submitted_values(cluster_mocks["sh"])["githubConfigUrl"] == "https://github.com/env-org"

    def test_helm_failure_stops_sequence(self, credentials, cluster_mocks):
        """Test a failed controller install skips the remaining steps."""
        mock_sh = cluster_mocks["sh"]
        mock_sh.helm.side_effect = make_error("helm upgrade", stderr=b"timed out waiting for the condition")

        with pytest.raises(sh.ErrorReturnCode):
            run_setup(skip_listener_wait=True)

        mock_sh.kubectl.assert_not_called()
        assert not helm_calls(mock_sh, "arc-runner-set")


class TestCleanupAndWatch:
    """Tests for cleanup and log watching."""

    def test_cleanup_deletes_profile(self, mock_sh):
        """Test cleanup issues a single minikube delete."""
        run_cleanup()

        mock_sh.minikube.assert_called_once_with("delete", "--profile=arc-minikube")

    def test_cleanup_then_setup(self, credentials, cluster_mocks):
        """Test setup after cleanup starts a fresh cluster."""
        mock_sh = cluster_mocks["sh"]

        def _minikube(*args, **kwargs):
            if args[0] == "status":
                raise make_error("minikube status", stderr=b"Profile not found")

        mock_sh.minikube.side_effect = _minikube

        run_cleanup()
        run_setup(skip_listener_wait=True)

        cmds = [c.args[0] for c in mock_sh.minikube.call_args_list]
        assert cmds[0] == "delete"
        assert "start" in cmds
        assert len(submitted_values(mock_sh)["template"]["spec"]["containers"]) == 1

    def test_watch_follows_sidecar_logs(self, mock_sh):
        """Test watch tails the step-exporter container of the scale set."""
        watch_sidecar_logs()

        call = mock_sh.kubectl.call_args
        assert call.args[0] == "logs"
        assert "actions.github.com/scale-set-name=arc-runner-set" in call.args
        assert "step-exporter" in call.args
        assert "--follow" in call.args
        assert call.kwargs == {"_fg": True}
