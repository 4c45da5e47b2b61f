"""
Command-line entry point and settings
"""
import json
from pathlib import Path

import pytest

from meshcheck import cli
from meshcheck.models import CheckResult, RunSummary
from meshcheck.settings import HarnessSettings, InjectionMode


class StubRunner:
    """Replaces AcceptanceRunner; returns a prepared summary."""

    summary = RunSummary(namespace="istio-bookinfo-cli")
    created_with = []

    def __init__(self, settings):
        StubRunner.created_with.append(settings)

    def run(self):
        return StubRunner.summary


@pytest.fixture
def stub_runner(monkeypatch):
    StubRunner.created_with = []
    StubRunner.summary = RunSummary(namespace="istio-bookinfo-cli")
    monkeypatch.setattr(cli, "AcceptanceRunner", StubRunner)
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)
    return StubRunner


@pytest.mark.cli
class TestSettings:
    """Environment driven configuration"""

    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        settings = HarnessSettings()

        assert settings.kubectl == "kubectl"
        assert settings.mesh_cli == "istioctl"
        assert settings.namespace is None
        assert settings.keep_environment is False
        assert settings.injection == InjectionMode.AUTO
        assert settings.retry_attempts == 5
        assert settings.retry_interval == 10
        assert settings.propagation_interval == 30
        assert settings.split_samples == 100
        assert settings.split_tolerance == 10

    def test_environment_variables(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("MESHCHECK_KUBECTL", "/usr/local/bin/kubectl")
        monkeypatch.setenv("MESHCHECK_INJECTION", "manual")
        monkeypatch.setenv("MESHCHECK_RETRY_ATTEMPTS", "3")
        monkeypatch.setenv("MESHCHECK_LOG_LEVEL", "debug")

        settings = HarnessSettings()

        assert settings.kubectl == "/usr/local/bin/kubectl"
        assert settings.injection == InjectionMode.MANUAL
        assert settings.retry_attempts == 3
        assert settings.log_level == "DEBUG"

    def test_home_is_expanded(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))

        settings = HarnessSettings(kubeconfig="~/.kube/config")

        assert settings.kubeconfig == tmp_path / ".kube" / "config"

    @pytest.mark.parametrize("namespace", ["Bad_Name", "-leading", "trailing-"])
    def test_invalid_namespace_rejected(self, namespace):
        with pytest.raises(ValueError):
            HarnessSettings(namespace=namespace)


@pytest.mark.cli
class TestParser:
    """Argument parsing"""

    def test_flags(self):
        args = cli.build_parser().parse_args(
            ["-i", "/opt/kubectl", "-s", "-n", "my-ns", "--mesh-cli", "/opt/istioctl"]
        )

        assert args.kubectl == "/opt/kubectl"
        assert args.keep_environment is True
        assert args.namespace == "my-ns"
        assert args.mesh_cli == "/opt/istioctl"

    def test_no_flags_leave_settings_alone(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("MESHCHECK_KEEP_ENVIRONMENT", "true")

        settings = cli.settings_from_args(cli.build_parser().parse_args([]))

        assert settings.keep_environment is True
        assert settings.kubectl == "kubectl"

    def test_flags_override_environment(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("MESHCHECK_NAMESPACE", "from-env")

        settings = cli.settings_from_args(cli.build_parser().parse_args(["-n", "from-flag"]))

        assert settings.namespace == "from-flag"


@pytest.mark.cli
class TestMain:
    """Exit codes and printed outcome"""

    def test_passed(self, stub_runner, capsys, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        stub_runner.summary.record(CheckResult.success("default_route"))

        assert cli.main(["-n", "istio-bookinfo-cli"]) == 0

        out = capsys.readouterr().out
        assert "TESTS HAVE PASSED" in out
        assert "default_route" in out
        assert stub_runner.created_with[0].namespace == "istio-bookinfo-cli"

    def test_failed(self, stub_runner, capsys, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        stub_runner.summary.record(CheckResult.failure("version_routing", "wrong page", failures=2))
        stub_runner.summary.record(CheckResult.failure("traffic_split", "skewed"))

        assert cli.main([]) == 1

        assert "3 TESTS HAVE FAILED" in capsys.readouterr().out

    def test_keep_does_not_mask_failures(self, stub_runner, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        stub_runner.summary.record(CheckResult.failure("traffic_split", "skewed"))

        assert cli.main(["-s"]) == 1
        assert stub_runner.created_with[0].keep_environment is True

    def test_aborted(self, stub_runner, capsys, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        stub_runner.summary.aborted = True
        stub_runner.summary.abort_reason = "Cannot get ingress ip."

        assert cli.main([]) == 1

        out = capsys.readouterr().out
        assert "RUN ABORTED: Cannot get ingress ip." in out
        assert "TESTS HAVE PASSED" not in out

    def test_invalid_configuration(self, stub_runner, capsys):
        assert cli.main(["-n", "Not_A_Namespace"]) == 2

        assert "Invalid configuration" in capsys.readouterr().err
        assert stub_runner.created_with == []

    def test_report_file(self, stub_runner, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        stub_runner.summary.record(CheckResult.success("default_route", attempts=1))
        report = tmp_path / "reports" / "summary.json"

        cli.main(["--report", str(report)])

        data = json.loads(Path(report).read_text())
        assert data["namespace"] == "istio-bookinfo-cli"
        assert data["exit_code"] == 0
        assert data["results"][0]["details"] == {"attempts": 1}
