"""Pydantic models for the acceptance run: environment, rules and results."""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


class CheckStatus(str, Enum):
    """Outcome of a single check."""

    PASSED = "passed"
    FAILED = "failed"


class TestEnvironment(BaseModel):
    """Per-run working directory and cluster namespace."""

    __test__ = False  # keep pytest from collecting this class

    work_dir: Path = Field(description="Temporary directory for this run")
    namespace: str = Field(description="Cluster namespace", pattern="^[a-z0-9-]+$")
    url: Optional[str] = Field(default=None, description="Ingress base URL, set after setup")

    @computed_field
    @property
    def istio_dir(self) -> Path:
        """Rendered control plane manifests."""
        return self.work_dir / "istio"

    @computed_field
    @property
    def bookinfo_dir(self) -> Path:
        """Rendered sample application manifests."""
        return self.work_dir / "bookinfo"

    @computed_field
    @property
    def rules_dir(self) -> Path:
        """Rendered traffic rules."""
        return self.bookinfo_dir / "rules"

    @computed_field
    @property
    def responses_dir(self) -> Path:
        """Captured response bodies."""
        return self.work_dir / "responses"

    @computed_field
    @property
    def debug_dir(self) -> Path:
        """Diagnostic dumps."""
        return self.work_dir / "debug"


class TrafficRule(BaseModel):
    """A rendered traffic rule manifest."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Rule file stem, e.g. route-rule-delay")
    path: Path = Field(description="Rendered manifest path")

    @classmethod
    def from_path(cls, path: Path) -> "TrafficRule":
        return cls(name=path.stem, path=path)


class FetchResult(BaseModel):
    """A single productpage request."""

    status_code: Optional[int] = Field(default=None, description="HTTP status, None on connection error")
    body: bytes = Field(default=b"", description="Raw response body")
    elapsed_seconds: float = Field(ge=0, description="Wall-clock round trip")
    output_file: Optional[Path] = Field(default=None, description="Where the body was captured")
    error: Optional[str] = Field(default=None, description="Transport error, if any")

    @computed_field
    @property
    def whole_seconds(self) -> int:
        """Round trip truncated to whole seconds."""
        return int(self.elapsed_seconds)

    @computed_field
    @property
    def ok(self) -> bool:
        """The page answered 200 without a transport error."""
        return self.error is None and self.status_code == 200


class SplitTally(BaseModel):
    """Empirical classification of responses for a weighted split."""

    samples: int = Field(ge=0, description="Requests issued")
    matched_first: int = Field(default=0, ge=0, description="Responses equal to the first fixture")
    matched_second: int = Field(default=0, ge=0, description="Responses equal to the second fixture")
    unmatched: int = Field(default=0, ge=0, description="Responses equal to neither fixture")

    @computed_field
    @property
    def first_percent(self) -> float:
        """Share of samples matching the first fixture."""
        if self.samples == 0:
            return 0.0
        return (self.matched_first / self.samples) * 100

    @computed_field
    @property
    def second_percent(self) -> float:
        """Share of samples matching the second fixture."""
        if self.samples == 0:
            return 0.0
        return (self.matched_second / self.samples) * 100


class CheckResult(BaseModel):
    """Result of one check, folded into the run summary."""

    name: str = Field(description="Check name")
    status: CheckStatus = Field(description="Check outcome")
    failures: int = Field(default=0, ge=0, description="Failed assertions contributed")
    message: str = Field(default="", description="Human readable outcome")
    details: Dict[str, Any] = Field(default_factory=dict, description="Check specific data")

    @computed_field
    @property
    def passed(self) -> bool:
        return self.status == CheckStatus.PASSED

    @classmethod
    def success(cls, name: str, message: str = "", **details: Any) -> "CheckResult":
        return cls(name=name, status=CheckStatus.PASSED, message=message, details=details)

    @classmethod
    def failure(
        cls, name: str, message: str, failures: int = 1, **details: Any
    ) -> "CheckResult":
        return cls(
            name=name,
            status=CheckStatus.FAILED,
            failures=failures,
            message=message,
            details=details,
        )

    @classmethod
    def combine(cls, name: str, results: List["CheckResult"]) -> "CheckResult":
        """Fold sub-results (e.g. one per user) into a single check result."""
        failures = sum(r.failures for r in results)
        return cls(
            name=name,
            status=CheckStatus.FAILED if failures else CheckStatus.PASSED,
            failures=failures,
            message="; ".join(r.message for r in results if r.message),
            details={r.name: r.model_dump(mode="json") for r in results},
        )


class RunSummary(BaseModel):
    """Summary of an acceptance run."""

    namespace: Optional[str] = Field(default=None, description="Namespace used")
    started_at: datetime = Field(default_factory=datetime.utcnow, description="Run start")
    finished_at: Optional[datetime] = Field(default=None, description="Run end")
    results: List[CheckResult] = Field(default_factory=list, description="Check results in run order")
    aborted: bool = Field(default=False, description="Whether the run stopped early")
    abort_reason: Optional[str] = Field(default=None, description="Why the run stopped early")

    def record(self, result: CheckResult) -> CheckResult:
        self.results.append(result)
        return result

    @computed_field
    @property
    def failure_count(self) -> int:
        """Total failed assertions across the run."""
        return sum(r.failures for r in self.results)

    @computed_field
    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    @computed_field
    @property
    def exit_code(self) -> int:
        """0 iff nothing failed and the run completed."""
        return 1 if self.failure_count > 0 or self.aborted else 0
