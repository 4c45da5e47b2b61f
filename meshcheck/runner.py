"""Acceptance run: setup, the checks in order, teardown."""

import logging
import shutil
from datetime import datetime
from typing import Callable, List, Optional

from meshcheck import checks
from meshcheck.checks import CheckContext, RunAborted
from meshcheck.cluster.api import ClusterApi, load_core_api
from meshcheck.cluster.kubectl import Kubectl
from meshcheck.environment import EnvironmentManager, SetupError, create_environment, provisioned
from meshcheck.http import ProductPageClient
from meshcheck.models import CheckResult, RunSummary, TestEnvironment
from meshcheck.rules import RuleManager
from meshcheck.settings import HarnessSettings

logger = logging.getLogger(__name__)

Check = Callable[[CheckContext], CheckResult]

# Run order; each step records its result and the run continues on failure.
CHECKS: List[Check] = [
    checks.default_route_check,
    checks.version_routing_check,
    checks.fault_injection_check,
    checks.fault_removal_check,
    checks.traffic_split_check,
]


class AcceptanceRunner:
    """Run every check against a freshly provisioned environment."""

    def __init__(
        self,
        settings: HarnessSettings,
        environment: Optional[TestEnvironment] = None,
        kubectl: Optional[Kubectl] = None,
        cluster: Optional[ClusterApi] = None,
        client_factory: Callable[[str], ProductPageClient] | None = None,
        checks_to_run: Optional[List[Check]] = None,
    ):
        self.settings = settings
        self.environment = environment or create_environment(settings.namespace)
        self.kubectl = kubectl or Kubectl(
            binary=settings.kubectl,
            namespace=self.environment.namespace,
            kubeconfig=settings.kubeconfig,
        )
        self._cluster = cluster
        self.client_factory = client_factory or (
            lambda url: ProductPageClient(url, timeout=settings.request_timeout)
        )
        self.checks = checks_to_run if checks_to_run is not None else CHECKS
        self.rules = RuleManager(self.kubectl, self.environment.rules_dir)

    @property
    def cluster(self) -> ClusterApi:
        if self._cluster is None:
            try:
                self._cluster = ClusterApi(load_core_api(self.settings.kubeconfig))
            except Exception as e:
                raise SetupError(f"Cannot load Kubernetes configuration: {e}") from e
        return self._cluster

    def run(self) -> RunSummary:
        summary = RunSummary(namespace=self.environment.namespace)

        try:
            manager = EnvironmentManager(
                self.settings, self.environment, self.kubectl, self.cluster, self.rules
            )
        except SetupError as e:
            # Nothing was deployed yet, only the work dir exists
            if not self.settings.keep_environment:
                shutil.rmtree(self.environment.work_dir, ignore_errors=True)
            return self._abort(summary, str(e))

        try:
            with provisioned(manager, keep=self.settings.keep_environment) as env:
                ctx = CheckContext(
                    settings=self.settings,
                    environment=env,
                    kubectl=self.kubectl,
                    rules=self.rules,
                    client=self.client_factory(env.url),
                )
                self._run_checks(ctx, summary)
        except SetupError as e:
            return self._abort(summary, str(e))
        except RunAborted as e:
            summary.record(e.result)
            return self._abort(summary, e.result.message)
        except KeyboardInterrupt:
            return self._abort(summary, "Interrupted")

        summary.finished_at = datetime.utcnow()
        return summary

    def _abort(self, summary: RunSummary, reason: str) -> RunSummary:
        logger.error("Run aborted: %s", reason)
        summary.aborted = True
        summary.abort_reason = reason
        summary.finished_at = datetime.utcnow()
        return summary

    def _run_checks(self, ctx: CheckContext, summary: RunSummary) -> None:
        for check in self.checks:
            result = summary.record(check(ctx))
            if not result.passed:
                logger.warning("%s failed: %s", result.name, result.message)
