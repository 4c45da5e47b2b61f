"""Traffic rule lifecycle: create, delete and clean up route rules."""

import logging
from pathlib import Path

from meshcheck.cluster.kubectl import Kubectl
from meshcheck.models import TrafficRule

logger = logging.getLogger(__name__)

# Rule files rendered into the rules directory
ROUTE_ALL_V1 = "route-rule-all-v1.yaml"
ROUTE_REVIEWS_TEST_V2 = "route-rule-reviews-test-v2.yaml"
ROUTE_DELAY = "route-rule-delay.yaml"
ROUTE_REVIEWS_50_V3 = "route-rule-reviews-50-v3.yaml"


class RuleManager:
    """Apply and remove traffic rules from a rendered rules directory.

    Deleting is always idempotent: removing a rule that was never applied,
    or cleaning up twice, is a no-op.
    """

    def __init__(self, kubectl: Kubectl, rules_dir: Path):
        self.kubectl = kubectl
        self.rules_dir = rules_dir

    def rule(self, filename: str) -> TrafficRule:
        return TrafficRule.from_path(self.rules_dir / filename)

    def create_rule(self, rule: TrafficRule) -> None:
        logger.info("Creating rule %s", rule.name)
        self.kubectl.apply(rule.path)

    def delete_rule(self, rule: TrafficRule) -> None:
        logger.info("Deleting rule %s", rule.name)
        self.kubectl.delete(rule.path)

    def cleanup_all_rules(self) -> None:
        """Delete every rule in the rules directory, applied or not."""
        for path in sorted(self.rules_dir.glob("*.yaml")):
            self.kubectl.delete(path)
        logger.info("All route rules removed")
