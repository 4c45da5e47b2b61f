"""Provision the mesh and sample application, and tear them down again."""

import logging
import shutil
import signal
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from meshcheck import render
from meshcheck.cluster.api import INJECTION_LABEL, ClusterApi
from meshcheck.cluster.kubectl import CommandError, Kubectl, generate_namespace
from meshcheck.common.paths import paths
from meshcheck.models import TestEnvironment
from meshcheck.polling import poll_until
from meshcheck.rules import RuleManager
from meshcheck.settings import HarnessSettings, InjectionMode

logger = logging.getLogger(__name__)

WORK_DIR_PREFIX = "kubetest."
BOOKINFO_MANIFEST = "bookinfo.yaml"


class SetupError(RuntimeError):
    """The environment could not be brought up; the run cannot continue."""


def create_environment(namespace: Optional[str] = None, base_dir: Optional[Path] = None) -> TestEnvironment:
    """Allocate a unique work directory and pick the namespace."""
    work_dir = Path(tempfile.mkdtemp(prefix=WORK_DIR_PREFIX, dir=base_dir))
    return TestEnvironment(work_dir=work_dir, namespace=namespace or generate_namespace())


class EnvironmentManager:
    """Drives setup and teardown of one TestEnvironment."""

    def __init__(
        self,
        settings: HarnessSettings,
        environment: TestEnvironment,
        kubectl: Kubectl,
        cluster: ClusterApi,
        rules: RuleManager,
    ):
        self.settings = settings
        self.environment = environment
        self.kubectl = kubectl
        self.cluster = cluster
        self.rules = rules

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def render_manifests(self) -> None:
        missing = paths.validate()
        if missing:
            raise SetupError(f"Packaged manifests missing: {', '.join(missing)}")

        env = self.environment
        variables = render.template_variables(env.namespace, self.settings.hub, self.settings.tag)
        try:
            render.generate_istio_yaml(env.istio_dir, self.settings.istio_manifest, env.namespace, variables)
            render.generate_bookinfo_yaml(env.bookinfo_dir, env.namespace, variables)
            render.generate_rules_yaml(env.rules_dir, env.namespace, variables)
        except (render.RenderError, OSError) as e:
            raise SetupError(f"Cannot render manifests: {e}") from e

    def create_namespace(self) -> None:
        labels = {}
        if self.settings.injection == InjectionMode.AUTO:
            labels[INJECTION_LABEL] = "enabled"
        try:
            self.cluster.create_namespace(self.environment.namespace, labels)
        except Exception as e:
            raise SetupError(f"Cannot create namespace {self.environment.namespace}: {e}") from e

    def _wait_ready(self, what: str) -> None:
        namespace = self.environment.namespace
        logger.info("Waiting for %s pods in %s to become ready...", what, namespace)
        if not self.cluster.wait_for_pods(namespace, timeout=self.settings.ready_timeout):
            not_ready = self.cluster.not_ready_pods(namespace)
            raise SetupError(f"{what} pods not ready after {self.settings.ready_timeout}s: {not_ready}")

    def deploy_istio(self) -> None:
        manifest = self.environment.istio_dir / render.ISTIO_MANIFEST_NAME
        try:
            self.kubectl.apply(manifest)
        except CommandError as e:
            raise SetupError(f"Cannot deploy mesh control plane: {e}") from e
        self._wait_ready("control plane")

    def _inject(self, manifest: Path) -> str:
        """Run the mesh CLI's kube-inject over manifest and return the result."""
        injector = Kubectl(
            binary=self.settings.mesh_cli,
            namespace=self.environment.namespace,
            kubeconfig=self.settings.kubeconfig,
        )
        return injector.run(["kube-inject", "-f", str(manifest)]).stdout

    def deploy_bookinfo(self) -> None:
        bookinfo_dir = self.environment.bookinfo_dir
        app_manifest = bookinfo_dir / BOOKINFO_MANIFEST
        try:
            if self.settings.injection == InjectionMode.MANUAL:
                self.kubectl.apply_stdin(self._inject(app_manifest))
            else:
                self.kubectl.apply(app_manifest)
            for manifest in sorted(bookinfo_dir.glob("*.yaml")):
                if manifest.name != BOOKINFO_MANIFEST:
                    self.kubectl.apply(manifest)
        except CommandError as e:
            raise SetupError(f"Cannot deploy sample application: {e}") from e
        self._wait_ready("sample application")

    def resolve_ingress(self) -> str:
        """Poll the ingress service until it reports a load balancer address."""

        def _ingress_ip() -> str:
            try:
                return self.kubectl.get_ingress_ip(self.settings.ingress_service)
            except CommandError as e:
                logger.warning("Cannot read ingress service: %s", e)
                return ""

        ok, address, _ = poll_until(
            _ingress_ip,
            bool,
            attempts=self.settings.retry_attempts,
            interval=self.settings.retry_interval,
            description="Ingress address assigned",
        )
        if not ok:
            raise SetupError("Cannot get ingress ip.")

        # jsonpath joins multiple addresses with spaces
        return f"http://{address.split()[0]}"

    def setup(self) -> TestEnvironment:
        """Render, create the namespace, deploy the mesh then the app."""
        logger.info(
            "Setting up namespace %s in %s", self.environment.namespace, self.environment.work_dir
        )
        self.render_manifests()
        self.create_namespace()
        self.deploy_istio()
        self.deploy_bookinfo()
        self.environment.url = self.resolve_ingress()
        logger.info("Sample application reachable at %s", self.environment.url)
        return self.environment

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def teardown(self) -> None:
        """Remove rules, the app, the control plane, the namespace and the work dir.

        Every step runs even if an earlier one fails; errors are logged.
        """
        env = self.environment
        steps = [
            ("remove route rules", self.rules.cleanup_all_rules),
            ("delete sample application", lambda: self._delete_dir(env.bookinfo_dir)),
            ("delete control plane", lambda: self._delete_dir(env.istio_dir)),
            ("delete namespace", lambda: self.cluster.delete_namespace(env.namespace)),
        ]
        for description, step in steps:
            try:
                step()
            except Exception as e:
                logger.error("Teardown: failed to %s: %s", description, e)

        shutil.rmtree(env.work_dir, ignore_errors=True)
        logger.info("Teardown complete for namespace %s", env.namespace)

    def _delete_dir(self, directory: Path) -> None:
        for manifest in sorted(directory.glob("*.yaml")):
            self.kubectl.delete(manifest)


def _raise_on_sigterm(signum, frame):
    raise SystemExit(128 + signum)


@contextmanager
def provisioned(manager: EnvironmentManager, keep: bool = False) -> Iterator[TestEnvironment]:
    """Set up the environment and guarantee teardown on every exit path.

    Covers normal return, SetupError, aborted runs, Ctrl-C and SIGTERM.
    With keep=True nothing is cleaned up so the environment can be inspected.
    """
    previous = signal.signal(signal.SIGTERM, _raise_on_sigterm)
    try:
        yield manager.setup()
    finally:
        signal.signal(signal.SIGTERM, previous)
        if keep:
            logger.info(
                "Keeping namespace %s and work dir %s",
                manager.environment.namespace,
                manager.environment.work_dir,
            )
        else:
            manager.teardown()
