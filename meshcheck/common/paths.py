"""Centralized path configuration for the harness.

This module provides a single source of truth for packaged manifests,
expected-output fixtures and the layout of a per-run work directory.
"""

from pathlib import Path


class ProjectPaths:
    """Project directory structure paths."""

    def __init__(self, base_path: Path | None = None):
        """Initialize project paths.

        Args:
            base_path: Optional base path for the project root.
                      If None, auto-detects from this file's location.
        """
        if base_path is None:
            # Auto-detect: go up from meshcheck/common/paths.py to repository root
            self.root = Path(__file__).parent.parent.parent
        else:
            self.root = base_path

        # Package directories
        self.package = self.root / "meshcheck"
        self.manifests = self.package / "manifests"
        self.bookinfo_manifests = self.manifests / "bookinfo"
        self.rule_manifests = self.manifests / "rules"

        # Expected productpage bodies, one per user/version pair
        self.fixtures = self.root / "fixtures" / "bookinfo" / "output"

    def validate(self) -> list[str]:
        """Validate that packaged manifest directories exist.

        Returns:
            List of missing critical paths (empty if all exist).
        """
        critical_paths = [
            ("Bookinfo manifests", self.bookinfo_manifests),
            ("Rule manifests", self.rule_manifests),
        ]

        missing = []
        for name, path in critical_paths:
            if not path.exists():
                missing.append(f"{name}: {path}")

        return missing


# Global singleton instance
paths = ProjectPaths()
