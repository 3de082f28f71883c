"""Helpers shared by the arc-sandbox tests."""

import sh
import yaml


def make_error(cmd="cmd", stderr=b"", stdout=b""):
    """Build a real exit-status-1 sh error for side_effect use."""
    return sh.ErrorReturnCode_1(cmd, stdout, stderr)


def helm_calls(sh_mock, release):
    """Return the ``helm upgrade --install <release>`` calls."""
    return [
        c for c in sh_mock.helm.call_args_list
        if c.args[:3] == ("upgrade", "--install", release)
    ]


def submitted_values(sh_mock, release="arc-runner-set"):
    """Parse the values document piped into the runner scale set install."""
    calls = helm_calls(sh_mock, release)
    assert calls, f"no helm install for {release}"
    return yaml.safe_load(calls[-1].kwargs["_in"])
