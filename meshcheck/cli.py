#!/usr/bin/env python3
"""
Bookinfo Acceptance Test Runner

Deploys the mesh control plane and the Bookinfo sample application into a
fresh namespace, then checks default routing, version routing, fault
injection, fault removal and weighted traffic splitting.

Usage:
    meshcheck -n my-namespace -s
    MESHCHECK_ISTIO_MANIFEST=istio.yaml python -m meshcheck
"""
import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from tabulate import tabulate

from meshcheck.models import RunSummary
from meshcheck.runner import AcceptanceRunner
from meshcheck.settings import HarnessSettings

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="meshcheck",
        description="Service mesh Bookinfo acceptance tests",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument(
        "-i",
        dest="kubectl",
        metavar="PATH",
        help="Cluster CLI binary (default: kubectl)",
    )

    parser.add_argument(
        "-s",
        dest="keep_environment",
        action="store_true",
        default=None,
        help="Keep the environment after the run (no teardown)",
    )

    parser.add_argument(
        "-n",
        dest="namespace",
        metavar="NAMESPACE",
        help="Namespace to deploy into (default: generated)",
    )

    parser.add_argument(
        "--mesh-cli",
        metavar="PATH",
        help="Mesh CLI binary used for manual sidecar injection (default: istioctl)",
    )

    parser.add_argument(
        "--istio-manifest",
        type=Path,
        help="Mesh control plane install manifest",
    )

    parser.add_argument(
        "--fixtures-dir",
        type=Path,
        help="Directory with expected productpage bodies",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--report",
        type=Path,
        help="Write the run summary as JSON to this file",
    )

    return parser


def settings_from_args(args: argparse.Namespace) -> HarnessSettings:
    """Environment/.env settings, overridden by any flag given on the command line."""
    overrides: Dict[str, Any] = {
        key: value
        for key, value in {
            "kubectl": args.kubectl,
            "keep_environment": args.keep_environment,
            "namespace": args.namespace,
            "mesh_cli": args.mesh_cli,
            "istio_manifest": args.istio_manifest,
            "fixtures_dir": args.fixtures_dir,
            "log_level": args.log_level,
        }.items()
        if value is not None
    }
    return HarnessSettings(**overrides)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def print_summary(summary: RunSummary) -> None:
    rows = [["Check", "Status", "Failures", "Message"]]
    for result in summary.results:
        rows.append([result.name, result.status.value.upper(), result.failures, result.message])

    print("\n" + "=" * 60)
    print("TEST SUMMARY")
    print("=" * 60)
    if summary.results:
        print(tabulate(rows, headers="firstrow", tablefmt="grid"))
    print(f"\nNamespace: {summary.namespace}")
    print(f"Total Duration: {summary.duration_seconds:.2f} seconds")

    if summary.aborted:
        print(f"\nRUN ABORTED: {summary.abort_reason}")

    if summary.failure_count > 0:
        print(f"{summary.failure_count} TESTS HAVE FAILED")
    elif not summary.aborted:
        print("TESTS HAVE PASSED")


def write_report(summary: RunSummary, report: Path) -> None:
    report.parent.mkdir(parents=True, exist_ok=True)
    report.write_text(summary.model_dump_json(indent=2))
    print(f"\nRun summary saved to: {report}")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = settings_from_args(args)
    except ValidationError as e:
        print(f"Invalid configuration:\n{e}", file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    print("\n" + "=" * 60)
    print("BOOKINFO ACCEPTANCE TESTS")
    print("=" * 60)
    print(f"Cluster CLI: {settings.kubectl}")
    print(f"Namespace: {settings.namespace or '(generated)'}")
    print(f"Control plane manifest: {settings.istio_manifest}")
    print(f"Fixtures: {settings.fixtures_dir}")
    print(f"Teardown: {'disabled' if settings.keep_environment else 'enabled'}")
    print("=" * 60)

    summary = AcceptanceRunner(settings).run()

    print_summary(summary)
    if args.report:
        write_report(summary, args.report)

    return summary.exit_code


if __name__ == "__main__":
    sys.exit(main())
