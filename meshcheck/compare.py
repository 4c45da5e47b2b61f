"""Compare captured response bodies against expected-output fixtures."""

import difflib
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# Diff lines logged on mismatch
MAX_DIFF_LINES = 40


def fixture_name(user: str, version: str, review_timeout: bool = False) -> str:
    """File name of the expected productpage body for a user/version pair."""
    suffix = "-review-timeout" if review_timeout else ""
    return f"productpage-{user}-{version}{suffix}.html"


def _read(path: Path) -> bytes | None:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None


def compare_output(expected_file: Path, actual_file: Path, label: str) -> bool:
    """Byte-compare actual_file against expected_file.

    Logs a short unified diff on mismatch. A missing file is a mismatch.
    """
    expected = _read(expected_file)
    if expected is None:
        logger.error("[%s] expected output %s does not exist", label, expected_file)
        return False

    actual = _read(actual_file)
    if actual is None:
        logger.error("[%s] no response captured at %s", label, actual_file)
        return False

    if expected == actual:
        logger.info("[%s] output matches %s", label, expected_file.name)
        return True

    diff = list(
        difflib.unified_diff(
            expected.decode(errors="replace").splitlines(),
            actual.decode(errors="replace").splitlines(),
            fromfile=str(expected_file),
            tofile=str(actual_file),
            lineterm="",
        )
    )
    logger.error(
        "[%s] output differs from %s:\n%s",
        label,
        expected_file.name,
        "\n".join(diff[:MAX_DIFF_LINES]),
    )
    return False
