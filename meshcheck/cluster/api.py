"""Kubernetes API access for namespace lifecycle and pod readiness."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from kubernetes import client, config as k8s_config
from kubernetes.client import V1Namespace, V1ObjectMeta
from kubernetes.client.rest import ApiException

from meshcheck.polling import wait_with_deadline

logger = logging.getLogger(__name__)

INJECTION_LABEL = "istio-injection"


def load_core_api(kubeconfig: Optional[Path] = None) -> client.CoreV1Api:
    """Load kubeconfig (or in-cluster config) and return a CoreV1Api."""
    try:
        k8s_config.load_kube_config(config_file=str(kubeconfig) if kubeconfig else None)
    except k8s_config.ConfigException:
        k8s_config.load_incluster_config()
    return client.CoreV1Api()


def _pod_ready(pod: Any) -> bool:
    if pod.status.phase == "Succeeded":
        return True
    if not pod.status.conditions:
        return False
    ready_condition = next(
        (c for c in pod.status.conditions if c.type == "Ready"), None
    )
    return bool(ready_condition and ready_condition.status == "True")


class ClusterApi:
    """Namespace and pod operations through the Kubernetes API."""

    def __init__(self, core: client.CoreV1Api):
        self.core = core

    def create_namespace(self, name: str, labels: Optional[Dict[str, str]] = None) -> bool:
        """Create a namespace.

        Returns:
            True if created, False if it already existed.
        """
        namespace = V1Namespace(metadata=V1ObjectMeta(name=name, labels=labels or {}))
        try:
            self.core.create_namespace(namespace)
            logger.info("Created namespace %s", name)
            return True
        except ApiException as e:
            if e.status == 409:  # Already exists
                logger.info("Namespace %s already exists", name)
                if labels:
                    self.core.patch_namespace(name, {"metadata": {"labels": labels}})
                return False
            raise

    def delete_namespace(self, name: str) -> bool:
        """Delete a namespace; a missing namespace is not an error."""
        try:
            self.core.delete_namespace(name)
            logger.info("Deleted namespace %s", name)
            return True
        except ApiException as e:
            if e.status == 404:  # Ignore if namespace doesn't exist
                return False
            raise

    def pods_ready(self, namespace: str, label_selector: str = "") -> bool:
        """True when at least one pod matches and all matching pods are ready."""
        pods = self.core.list_namespaced_pod(
            namespace=namespace, label_selector=label_selector
        )
        if not pods.items:
            return False
        return all(_pod_ready(pod) for pod in pods.items)

    def not_ready_pods(self, namespace: str) -> List[str]:
        pods = self.core.list_namespaced_pod(namespace=namespace)
        return [
            f"{pod.metadata.name} ({pod.status.phase})"
            for pod in pods.items
            if not _pod_ready(pod)
        ]

    def wait_for_pods(
        self, namespace: str, label_selector: str = "", timeout: float = 300
    ) -> bool:
        """Wait for pods to be ready.

        Args:
            namespace: Kubernetes namespace
            label_selector: Label selector (e.g., "app=productpage")
            timeout: Timeout in seconds

        Returns:
            True if all pods are ready, False otherwise
        """

        def _check() -> bool:
            try:
                return self.pods_ready(namespace, label_selector)
            except ApiException as e:
                logger.warning("Error listing pods in %s: %s", namespace, e.reason)
                return False

        return wait_with_deadline(_check, timeout=timeout)
