"""Diagnostic dump written when a check fails."""

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from meshcheck.cluster.kubectl import Kubectl

logger = logging.getLogger(__name__)

# (title, kubectl args) collected on every dump
DEBUG_COMMANDS: List[Tuple[str, List[str]]] = [
    ("pods", ["get", "pods", "-o", "wide"]),
    ("services", ["get", "svc"]),
    ("virtual services", ["get", "virtualservices", "-o", "yaml"]),
    ("destination rules", ["get", "destinationrules", "-o", "yaml"]),
    ("events", ["get", "events", "--sort-by=.lastTimestamp"]),
    ("productpage logs", ["logs", "-l", "app=productpage", "--all-containers", "--tail=50"]),
]


def dump_debug(kubectl: Kubectl, debug_dir: Optional[Path], label: str) -> Optional[Path]:
    """Collect cluster state for a failed check.

    Output is logged and, when debug_dir is given, written to a timestamped
    file there so it survives the run (with -s).
    """
    sections = []
    for title, args in DEBUG_COMMANDS:
        sections.append(f"===== {title} =====\n{kubectl.describe(*args)}")
    report = "\n".join(sections)

    logger.warning("Diagnostics for %s:\n%s", label, report)

    if debug_dir is None:
        return None

    debug_dir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S_%f")
    dump_file = debug_dir / f"{label}_{stamp}.txt"
    dump_file.write_text(report)
    return dump_file
