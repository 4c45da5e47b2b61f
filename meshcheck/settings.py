"""Harness settings and configuration management."""

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from meshcheck.common.paths import paths


class InjectionMode(str, Enum):
    """How sidecar proxies get into the sample application pods."""

    AUTO = "auto"  # namespace label, injected by the mesh webhook
    MANUAL = "manual"  # istioctl kube-inject before applying


class HarnessSettings(BaseSettings):
    """Harness settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="MESHCHECK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # External tools
    kubectl: str = Field(
        default="kubectl",
        description="Cluster CLI binary",
    )
    mesh_cli: str = Field(
        default="istioctl",
        description="Mesh CLI binary, used for manual sidecar injection",
    )
    kubeconfig: Optional[Path] = Field(
        default=None,
        description="Path to kubeconfig file (default: client lookup rules)",
    )

    # Manifests and fixtures
    istio_manifest: Optional[Path] = Field(
        default=None,
        description="Mesh control plane install manifest to render",
    )
    fixtures_dir: Path = Field(
        default=paths.fixtures,
        description="Directory holding expected productpage bodies",
    )
    hub: str = Field(
        default="docker.io/istio",
        description="Image hub for the sample application",
    )
    tag: str = Field(
        default="1.20.2",
        description="Image tag for the sample application",
    )
    injection: InjectionMode = Field(
        default=InjectionMode.AUTO,
        description="Sidecar injection mode",
    )
    ingress_service: str = Field(
        default="istio-ingressgateway",
        description="Service exposing the mesh ingress",
    )

    # Run behaviour
    namespace: Optional[str] = Field(
        default=None,
        description="Namespace to deploy into (generated when unset)",
        pattern="^[a-z0-9]([-a-z0-9]*[a-z0-9])?$",
    )
    keep_environment: bool = Field(
        default=False,
        description="Skip teardown so the environment can be inspected",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )

    # Timing
    propagation_interval: float = Field(
        default=30,
        ge=0,
        description="Seconds to wait after a rule change",
    )
    retry_attempts: int = Field(
        default=5,
        ge=1,
        description="Attempts for polled checks",
    )
    retry_interval: float = Field(
        default=10,
        ge=0,
        description="Seconds between attempts",
    )
    ready_timeout: float = Field(
        default=300,
        gt=0,
        description="Seconds to wait for deployed pods to become ready",
    )
    request_timeout: float = Field(
        default=30,
        gt=0,
        description="HTTP request timeout in seconds",
    )

    # Weighted split
    split_samples: int = Field(
        default=100,
        ge=1,
        description="Requests issued by the traffic split check",
    )
    split_target: float = Field(
        default=50,
        ge=0,
        le=100,
        description="Expected percentage routed to the first version",
    )
    split_tolerance: float = Field(
        default=10,
        ge=0,
        le=100,
        description="Allowed deviation from the target, in percentage points",
    )

    @field_validator("kubeconfig", "istio_manifest", "fixtures_dir", mode="before")
    @classmethod
    def expand_path(cls, v):
        """Expand ~ in paths."""
        if isinstance(v, str):
            return Path(v).expanduser()
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept any casing for the log level."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level
