"""Render control plane, sample application and traffic rule manifests.

Templates are plain Kubernetes YAML with ``${HUB}``, ``${TAG}`` and
``${NAMESPACE}`` placeholders. Every rendered document is also pinned to the
run's namespace so nothing lands in ``default`` by accident.
"""

import logging
from pathlib import Path
from string import Template
from typing import Any, Dict, List

import yaml

from meshcheck.common.paths import paths

logger = logging.getLogger(__name__)

# Kinds that must not carry metadata.namespace
CLUSTER_SCOPED_KINDS = {
    "APIService",
    "ClusterRole",
    "ClusterRoleBinding",
    "CustomResourceDefinition",
    "MutatingWebhookConfiguration",
    "Namespace",
    "PersistentVolume",
    "PriorityClass",
    "StorageClass",
    "ValidatingWebhookConfiguration",
}

BINDING_KINDS = {"RoleBinding", "ClusterRoleBinding"}

ISTIO_MANIFEST_NAME = "istio.yaml"


class RenderError(RuntimeError):
    """A manifest template could not be rendered."""


def substitute(text: str, variables: Dict[str, str]) -> str:
    """Fill ${NAME} placeholders; unknown placeholders are left untouched."""
    return Template(text).safe_substitute(variables)


def pin_namespace(document: Dict[str, Any], namespace: str) -> Dict[str, Any]:
    """Place a namespaced object in namespace and point bindings at it."""
    kind = document.get("kind", "")
    metadata = document.setdefault("metadata", {})

    if kind not in CLUSTER_SCOPED_KINDS:
        metadata["namespace"] = namespace

    if kind in BINDING_KINDS:
        for subject in document.get("subjects") or []:
            if subject.get("kind") == "ServiceAccount":
                subject["namespace"] = namespace

    return document


def render_documents(text: str, namespace: str, variables: Dict[str, str]) -> List[Dict[str, Any]]:
    """Substitute placeholders and pin every YAML document to namespace."""
    try:
        documents = list(yaml.safe_load_all(substitute(text, variables)))
    except yaml.YAMLError as e:
        raise RenderError(f"Invalid manifest: {e}") from e

    return [pin_namespace(doc, namespace) for doc in documents if doc]


def render_file(source: Path, target: Path, namespace: str, variables: Dict[str, str]) -> Path:
    """Render one template file into target."""
    if not source.is_file():
        raise RenderError(f"Template not found: {source}")

    documents = render_documents(source.read_text(), namespace, variables)
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w") as f:
        yaml.safe_dump_all(documents, f, sort_keys=False)

    logger.debug("Rendered %s -> %s (%d documents)", source.name, target, len(documents))
    return target


def render_directory(
    source_dir: Path, target_dir: Path, namespace: str, variables: Dict[str, str]
) -> List[Path]:
    """Render every *.yaml in source_dir (non-recursive) into target_dir."""
    sources = sorted(source_dir.glob("*.yaml"))
    if not sources:
        raise RenderError(f"No manifests found in {source_dir}")
    return [
        render_file(source, target_dir / source.name, namespace, variables)
        for source in sources
    ]


def template_variables(namespace: str, hub: str, tag: str) -> Dict[str, str]:
    return {"NAMESPACE": namespace, "HUB": hub, "TAG": tag}


def generate_istio_yaml(
    target_dir: Path, istio_manifest: Path | None, namespace: str, variables: Dict[str, str]
) -> Path:
    """Render the mesh control plane install manifest into target_dir."""
    if istio_manifest is None:
        raise RenderError("No mesh control plane manifest configured (MESHCHECK_ISTIO_MANIFEST)")
    return render_file(istio_manifest, target_dir / ISTIO_MANIFEST_NAME, namespace, variables)


def generate_bookinfo_yaml(
    target_dir: Path,
    namespace: str,
    variables: Dict[str, str],
    source_dir: Path = paths.bookinfo_manifests,
) -> List[Path]:
    """Render the sample application manifests into target_dir."""
    return render_directory(source_dir, target_dir, namespace, variables)


def generate_rules_yaml(
    target_dir: Path,
    namespace: str,
    variables: Dict[str, str],
    source_dir: Path = paths.rule_manifests,
) -> List[Path]:
    """Render the traffic rule manifests into target_dir."""
    return render_directory(source_dir, target_dir, namespace, variables)
