"""Thin wrapper around the cluster CLI."""

import logging
import subprocess
import uuid
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

NAMESPACE_PREFIX = "istio-bookinfo"


def generate_namespace(prefix: str = NAMESPACE_PREFIX) -> str:
    """Generate a unique, DNS-1123 compliant namespace name."""
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


class CommandError(RuntimeError):
    """A CLI invocation exited non-zero."""

    def __init__(self, cmd: List[str], returncode: int, stderr: str):
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"Command failed ({returncode}): {' '.join(cmd)}: {stderr.strip()}"
        )


class Kubectl:
    """Execute cluster CLI commands against a single namespace."""

    def __init__(
        self,
        binary: str = "kubectl",
        namespace: Optional[str] = None,
        kubeconfig: Optional[Path] = None,
        timeout: int = 120,
    ):
        self.binary = binary
        self.namespace = namespace
        self.kubeconfig = kubeconfig
        self.timeout = timeout

    def _command(self, args: List[str], namespaced: bool) -> List[str]:
        cmd = [self.binary]
        if self.kubeconfig:
            cmd.append(f"--kubeconfig={self.kubeconfig}")
        if namespaced and self.namespace:
            cmd.extend(["-n", self.namespace])
        cmd.extend(args)
        return cmd

    def run(
        self,
        args: List[str],
        check: bool = True,
        namespaced: bool = True,
        input_text: Optional[str] = None,
    ) -> subprocess.CompletedProcess:
        """Run a CLI command, raising CommandError on failure when check is set."""
        cmd = self._command(args, namespaced)
        logger.debug("Running: %s", " ".join(cmd))

        try:
            result = subprocess.run(
                cmd,
                input=input_text,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise CommandError(cmd, 127, f"{self.binary} not found") from e
        except subprocess.TimeoutExpired as e:
            raise CommandError(cmd, -1, f"timed out after {self.timeout}s") from e

        if check and result.returncode != 0:
            raise CommandError(cmd, result.returncode, result.stderr or "")
        return result

    def apply(self, manifest: Path) -> subprocess.CompletedProcess:
        return self.run(["apply", "-f", str(manifest)])

    def apply_stdin(self, manifest_text: str) -> subprocess.CompletedProcess:
        return self.run(["apply", "-f", "-"], input_text=manifest_text)

    def delete(self, manifest: Path) -> subprocess.CompletedProcess:
        """Delete the objects in a manifest; absent objects are not an error."""
        return self.run(["delete", "-f", str(manifest), "--ignore-not-found=true"])

    def get_jsonpath(self, resource: str, name: str, jsonpath: str) -> str:
        result = self.run(["get", resource, name, "-o", f"jsonpath={jsonpath}"])
        return result.stdout.strip()

    def get_ingress_ip(self, service: str) -> str:
        """Load balancer address(es) of a service, empty until one is assigned."""
        return self.get_jsonpath("svc", service, "{.status.loadBalancer.ingress[*].ip}")

    def describe(self, *args: str) -> str:
        """Best-effort output for diagnostics; failures are returned as text."""
        result = self.run(list(args), check=False)
        if result.returncode != 0:
            return f"<{' '.join(args)} failed: {result.stderr.strip()}>"
        return result.stdout
