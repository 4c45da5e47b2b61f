"""Cluster access: the CLI wrapper and the Kubernetes API client."""

from meshcheck.cluster.api import ClusterApi, load_core_api
from meshcheck.cluster.kubectl import CommandError, Kubectl, generate_namespace

__all__ = [
    "ClusterApi",
    "CommandError",
    "Kubectl",
    "generate_namespace",
    "load_core_api",
]
