"""Traffic management checks against the deployed sample application.

Each check returns a CheckResult instead of bumping a shared counter; the
runner folds them into a RunSummary. Only the default route check can stop a
run early (RunAborted), every other failure is recorded and the run moves on.
"""

import logging
import math
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List

from meshcheck import rules as rule_files
from meshcheck.cluster.kubectl import Kubectl
from meshcheck.compare import compare_output, fixture_name
from meshcheck.diagnostics import dump_debug
from meshcheck.http import ProductPageClient
from meshcheck.models import CheckResult, FetchResult, SplitTally, TestEnvironment
from meshcheck.polling import poll_until
from meshcheck.rules import RuleManager
from meshcheck.settings import HarnessSettings

logger = logging.getLogger(__name__)

NORMAL_USER = "normal-user"
TEST_USER = "test-user"


class RunAborted(RuntimeError):
    """A check failed badly enough that later checks are meaningless."""

    def __init__(self, result: CheckResult):
        self.result = result
        super().__init__(result.message)


@dataclass
class CheckContext:
    """Everything a check needs to talk to the running application."""

    settings: HarnessSettings
    environment: TestEnvironment
    kubectl: Kubectl
    rules: RuleManager
    client: ProductPageClient

    def fixture(self, user: str, version: str, review_timeout: bool = False) -> Path:
        return self.settings.fixtures_dir / fixture_name(user, version, review_timeout)

    def response_file(self, user: str, version: str) -> Path:
        return self.environment.responses_dir / fixture_name(user, version)

    def wait_for_propagation(self, message: str = "Waiting for rules to propagate...") -> None:
        # Rule changes expose no readiness signal, so this is a fixed wait.
        logger.info("%s (%ss)", message, self.settings.propagation_interval)
        time.sleep(self.settings.propagation_interval)

    def dump_debug(self, label: str) -> None:
        dump_debug(self.kubectl, self.environment.debug_dir, label)


def print_block(message: str) -> None:
    """Print a banner separating the phases of a run."""
    print(f"\n{'=' * 60}")
    print(message)
    print(f"{'=' * 60}")


def delay_within_window(delay_seconds: int, min_delay: int, max_delay: int) -> bool:
    """Inclusive window check on a whole-second round trip."""
    return min_delay <= delay_seconds <= max_delay


def split_bounds(samples: int, target: float, tolerance: float) -> tuple[int, int]:
    """Allowed number of first-fixture matches for a target percentage."""
    lower = math.floor(max(target - tolerance, 0) * samples / 100)
    upper = math.ceil(min(target + tolerance, 100) * samples / 100)
    return lower, upper


def split_within_tolerance(tally: SplitTally, target: float, tolerance: float) -> bool:
    """Every response is one of the two versions and the first one's share is in bounds."""
    if tally.unmatched:
        return False
    lower, upper = split_bounds(tally.samples, target, tolerance)
    return lower <= tally.matched_first <= upper


# ============================================================================
# Default route
# ============================================================================


def default_route_check(ctx: CheckContext) -> CheckResult:
    """Poll the product page until it answers 200.

    Raises:
        RunAborted: the page never answered 200 within the retry budget.
    """
    name = "default_route"
    print_block(f"Testing default route behavior on {ctx.client.base_url} ...")

    ok, status, attempts = poll_until(
        ctx.client.status,
        lambda code: code == 200,
        attempts=ctx.settings.retry_attempts,
        interval=ctx.settings.retry_interval,
        description="Product page reachable",
    )
    if ok:
        logger.info("Success! Product page answered 200 after %d attempt(s)", attempts)
        return CheckResult.success(name, "Default routes resolved", attempts=attempts)

    ctx.dump_debug(name)
    raise RunAborted(
        CheckResult.failure(
            name,
            "Failed to resolve default routes",
            attempts=attempts,
            last_status=status,
        )
    )


# ============================================================================
# Version routing
# ============================================================================


def version_routing_response(ctx: CheckContext, user: str, version: str) -> CheckResult:
    """Fetch as user and compare against the fixture for version."""
    name = f"{user}-{version}"
    logger.info("Injecting traffic for user=%s, expecting productpage-%s-%s...", user, user, version)

    output_file = ctx.response_file(user, version)
    ctx.client.fetch(user, output_file)
    if compare_output(ctx.fixture(user, version), output_file, user):
        return CheckResult.success(name)

    ctx.dump_debug(f"version_routing_{user}")
    return CheckResult.failure(name, f"user={user} did not get productpage {version}")


def version_routing_check(ctx: CheckContext) -> CheckResult:
    print_block("Testing version routing...")
    ctx.rules.create_rule(ctx.rules.rule(rule_files.ROUTE_ALL_V1))
    ctx.rules.create_rule(ctx.rules.rule(rule_files.ROUTE_REVIEWS_TEST_V2))
    ctx.wait_for_propagation()

    return CheckResult.combine(
        "version_routing",
        [
            version_routing_response(ctx, NORMAL_USER, "v1"),
            version_routing_response(ctx, TEST_USER, "v2"),
        ],
    )


# ============================================================================
# Fault injection
# ============================================================================


def fault_delay_check(
    ctx: CheckContext, user: str, version: str, min_delay: int, max_delay: int
) -> CheckResult:
    """Retry a timed request until its round trip falls in [min_delay, max_delay].

    Once in the window, the body must match the review-timeout fixture when a
    delay was expected, the normal fixture otherwise.
    """
    name = f"{user}-{version}-delay-{min_delay}-{max_delay}"
    attempts = ctx.settings.retry_attempts
    output_file = ctx.response_file(user, version)
    result: FetchResult | None = None

    for attempt in range(1, attempts + 1):
        logger.info(
            "Injecting traffic for user=%s, expecting productpage-%s-%s in %d to %d seconds",
            user, user, version, min_delay, max_delay,
        )
        result = ctx.client.fetch(user, output_file)

        if not result.ok:
            logger.warning(
                "Productpage did not answer 200 for user=%s (status=%s, error=%s)",
                user, result.status_code, result.error,
            )
        elif delay_within_window(result.whole_seconds, min_delay, max_delay):
            logger.info("Success! Responded in %d seconds", result.whole_seconds)
            expected = ctx.fixture(user, version, review_timeout=min_delay > 0)
            if compare_output(expected, output_file, user):
                return CheckResult.success(name, delay_seconds=result.whole_seconds, attempts=attempt)
            ctx.dump_debug(f"fault_delay_{user}")
            return CheckResult.failure(
                name,
                f"user={user} responded in time but content differs from {expected.name}",
                delay_seconds=result.whole_seconds,
                attempts=attempt,
            )

        if attempt < attempts:
            time.sleep(ctx.settings.retry_interval)

    delay = result.whole_seconds if result else None
    if result is not None and not result.ok:
        message = (
            f"Productpage did not answer 200 (status={result.status_code}, "
            f"error={result.error}) for user={user} in fault injection phase"
        )
    else:
        message = (
            f"Productpage took {delay} seconds to respond (expected between {min_delay} "
            f"and {max_delay}) for user={user} in fault injection phase"
        )
    logger.error(message)
    ctx.dump_debug(f"fault_delay_{user}")
    return CheckResult.failure(
        name,
        message,
        delay_seconds=delay,
        attempts=attempts,
        status_code=result.status_code if result else None,
    )


def fault_injection_check(ctx: CheckContext) -> CheckResult:
    print_block("Testing fault injection...")
    ctx.rules.create_rule(ctx.rules.rule(rule_files.ROUTE_DELAY))

    results: List[CheckResult] = [
        fault_delay_check(ctx, NORMAL_USER, "v1", 0, 2),
        fault_delay_check(ctx, TEST_USER, "v1", 5, 8),
    ]
    return CheckResult.combine("fault_injection", results)


def fault_removal_check(ctx: CheckContext) -> CheckResult:
    """Remove the delay rule and verify test-user is fast again."""
    print_block("Deleting fault injection...")
    ctx.rules.delete_rule(ctx.rules.rule(rule_files.ROUTE_DELAY))
    ctx.wait_for_propagation("Waiting for rule clean up to propagate...")

    result = fault_delay_check(ctx, TEST_USER, "v2", 0, 2)
    if result.passed:
        logger.info("Fault injection was successfully cleared up")
        return CheckResult.success("fault_removal", "Fault injection was successfully cleared up")

    logger.error("Fault injection persisted")
    return CheckResult.failure(
        "fault_removal",
        "Fault injection persisted",
        failures=result.failures,
        delay=result.model_dump(mode="json"),
    )


# ============================================================================
# Weighted traffic split
# ============================================================================


def tally_split(ctx: CheckContext, user: str, first: Path, second: Path) -> SplitTally:
    """Issue split_samples requests and classify each body."""
    first_body = first.read_bytes()
    second_body = second.read_bytes()
    tally = SplitTally(samples=ctx.settings.split_samples)

    for _ in range(ctx.settings.split_samples):
        body = ctx.client.fetch(user).body
        if body == first_body:
            tally.matched_first += 1
        elif body == second_body:
            tally.matched_second += 1
        else:
            tally.unmatched += 1

    return tally


def traffic_split_check(ctx: CheckContext) -> CheckResult:
    """Split reviews 50/50 between v1 and v3 and measure the outcome."""
    name = "traffic_split"
    ctx.rules.cleanup_all_rules()
    print_block("Testing gradual migration...")

    first = ctx.fixture(NORMAL_USER, "v1")
    second = ctx.fixture(NORMAL_USER, "v3")
    for fixture in (first, second):
        if not fixture.is_file():
            ctx.dump_debug(name)
            return CheckResult.failure(name, f"Expected output {fixture} does not exist")

    ctx.rules.create_rule(ctx.rules.rule(rule_files.ROUTE_REVIEWS_50_V3))
    ctx.wait_for_propagation()

    target = ctx.settings.split_target
    tolerance = ctx.settings.split_tolerance
    print(f"Expected percentage based routing is {target:g}% to v1 and {100 - target:g}% to v3.")

    tally = tally_split(ctx, NORMAL_USER, first, second)
    lower, upper = split_bounds(tally.samples, target, tolerance)
    summary = (
        f"{tally.matched_first}/{tally.samples} to v1, {tally.matched_second} to v3, "
        f"{tally.unmatched} unmatched (allowed v1 range {lower}-{upper})"
    )
    details = tally.model_dump(mode="json")

    if split_within_tolerance(tally, target, tolerance):
        logger.info("Traffic split within tolerance: %s", summary)
        return CheckResult.success(name, summary, **details)

    logger.error("Traffic split outside tolerance: %s", summary)
    ctx.dump_debug(name)
    return CheckResult.failure(name, summary, **details)
