"""Pytest configuration and shared fixtures for the acceptance harness tests.

Nothing here talks to a cluster: the cluster CLI and the Kubernetes API are
MagicMocks and the product page is a scripted fake.
"""

import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest

from meshcheck import render
from meshcheck.checks import CheckContext
from meshcheck.cluster.api import ClusterApi
from meshcheck.cluster.kubectl import Kubectl
from meshcheck.models import FetchResult, TestEnvironment
from meshcheck.rules import RuleManager
from meshcheck.settings import HarnessSettings

NAMESPACE = "istio-bookinfo-test"

# Distinct bodies per expected productpage
BODIES = {
    "productpage-normal-user-v1.html": b"<html>reviews v1, no stars</html>\n",
    "productpage-normal-user-v3.html": b"<html>reviews v3, red stars</html>\n",
    "productpage-test-user-v2.html": b"<html>reviews v2, black stars</html>\n",
    "productpage-test-user-v1-review-timeout.html": b"<html>reviews unavailable</html>\n",
}

ISTIO_MANIFEST = """\
apiVersion: v1
kind: ServiceAccount
metadata:
  name: istio-pilot
---
apiVersion: rbac.authorization.k8s.io/v1
kind: ClusterRoleBinding
metadata:
  name: istio-pilot
roleRef:
  apiGroup: rbac.authorization.k8s.io
  kind: ClusterRole
  name: istio-pilot
subjects:
- kind: ServiceAccount
  name: istio-pilot
  namespace: istio-system
---
apiVersion: apps/v1
kind: Deployment
metadata:
  name: istiod
spec:
  template:
    spec:
      containers:
      - name: discovery
        image: ${HUB}/pilot:${TAG}
"""


class FakeProductPage:
    """Scripted stand-in for ProductPageClient.

    statuses and per-user responses are queues; the last entry repeats once
    the queue is down to one element. A response is (body, elapsed) or
    (body, elapsed, status); a status of None is a connection error.
    """

    def __init__(self, base_url: str = "http://10.0.0.1"):
        self.base_url = base_url
        self.statuses: List[Optional[int]] = [200]
        self.responses: Dict[str, List[Tuple]] = {}
        self.fetches: List[str] = []

    @staticmethod
    def _next(queue):
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def status(self) -> Optional[int]:
        return self._next(self.statuses)

    def fetch(self, user: str, output_file: Optional[Path] = None) -> FetchResult:
        self.fetches.append(user)
        body, elapsed, status_code = (self._next(self.responses[user]) + (200,))[:3]

        if status_code is None:
            if output_file is not None:
                output_file.unlink(missing_ok=True)
            return FetchResult(
                elapsed_seconds=elapsed, error="connection refused", output_file=output_file
            )

        if output_file is not None:
            output_file.parent.mkdir(parents=True, exist_ok=True)
            output_file.write_bytes(body)
        return FetchResult(
            status_code=status_code, body=body, elapsed_seconds=elapsed, output_file=output_file
        )


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "setup: Environment setup and teardown tests")
    config.addinivalue_line("markers", "checks: Traffic management check tests")
    config.addinivalue_line("markers", "cli: Command-line entry point tests")


@pytest.fixture(autouse=True)
def sleeps(monkeypatch) -> List[float]:
    """Make time.sleep instant and record the requested durations."""
    calls: List[float] = []
    monkeypatch.setattr(time, "sleep", lambda seconds: calls.append(seconds))
    return calls


@pytest.fixture
def fixtures_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "fixtures"
    directory.mkdir()
    for name, body in BODIES.items():
        (directory / name).write_bytes(body)
    return directory


@pytest.fixture
def istio_manifest(tmp_path: Path) -> Path:
    manifest = tmp_path / "istio-install.yaml"
    manifest.write_text(ISTIO_MANIFEST)
    return manifest


@pytest.fixture
def settings(fixtures_dir: Path, istio_manifest: Path) -> HarnessSettings:
    return HarnessSettings(
        fixtures_dir=fixtures_dir,
        istio_manifest=istio_manifest,
        hub="example.io/istio",
        tag="test",
        ready_timeout=5,
    )


@pytest.fixture
def environment(tmp_path: Path) -> TestEnvironment:
    work_dir = tmp_path / "kubetest.work"
    work_dir.mkdir()
    return TestEnvironment(work_dir=work_dir, namespace=NAMESPACE)


@pytest.fixture
def rendered_rules(environment: TestEnvironment) -> List[Path]:
    variables = render.template_variables(NAMESPACE, "example.io/istio", "test")
    return render.generate_rules_yaml(environment.rules_dir, NAMESPACE, variables)


@pytest.fixture
def mock_kubectl() -> MagicMock:
    kubectl = MagicMock(spec=Kubectl)
    kubectl.get_ingress_ip.return_value = "10.0.0.1"
    kubectl.describe.return_value = "<debug output>"
    return kubectl


@pytest.fixture
def mock_cluster() -> MagicMock:
    cluster = MagicMock(spec=ClusterApi)
    cluster.wait_for_pods.return_value = True
    cluster.not_ready_pods.return_value = []
    return cluster


@pytest.fixture
def rule_manager(mock_kubectl: MagicMock, environment: TestEnvironment, rendered_rules) -> RuleManager:
    return RuleManager(mock_kubectl, environment.rules_dir)


@pytest.fixture
def product_page() -> FakeProductPage:
    return FakeProductPage()


@pytest.fixture
def ctx(settings, environment, mock_kubectl, rule_manager, product_page) -> CheckContext:
    return CheckContext(
        settings=settings,
        environment=environment,
        kubectl=mock_kubectl,
        rules=rule_manager,
        client=product_page,
    )


@pytest.fixture
def bodies() -> Dict[str, bytes]:
    """Expected productpage bodies keyed by fixture file name."""
    return BODIES
