"""Collector settings loaded from the environment."""

import os
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from dsar.services.scrape_dispatcher import ENDPOINTS

DEFAULT_PORTS = ["9000", "9300"]


def _split(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class CollectorSettings(BaseModel):
    """Settings of one collector run."""

    hosts: list[str] = Field(..., min_length=1, description="Hosts to scrape")
    ports: list[str] = Field(default_factory=lambda: list(DEFAULT_PORTS), min_length=1)
    endpoints: list[str] = Field(default_factory=lambda: list(ENDPOINTS), min_length=1)
    interval_seconds: float = Field(1.0, gt=0, description="Seconds between rounds")
    parallel: int = Field(3, ge=1, description="Maximum concurrent fetches")
    connect_timeout_seconds: float = Field(0.2, gt=0)
    round_timeout_seconds: Optional[float] = Field(
        None, gt=0, description="Deadline for one round, unset for none"
    )
    keep_history: bool = False
    metrics_port: Optional[int] = Field(
        None, ge=1, le=65535, description="Port serving the collector's own metrics"
    )

    model_config = {"frozen": True}

    @field_validator("hosts", "ports", "endpoints", mode="before")
    @classmethod
    def parse_list(cls, v):
        """Accept comma separated strings as well as lists."""
        if isinstance(v, str):
            return _split(v)
        if isinstance(v, (list, tuple)):
            return [str(item).strip() for item in v if str(item).strip()]
        return v

    @classmethod
    def from_env(cls) -> "CollectorSettings":
        """Build settings from DSAR_* environment variables.

        Raises:
            pydantic.ValidationError: A variable is missing or invalid
        """
        values = {
            "hosts": os.getenv("DSAR_HOSTS", ""),
            "ports": os.getenv("DSAR_PORTS", ",".join(DEFAULT_PORTS)),
            "endpoints": os.getenv("DSAR_ENDPOINTS", ",".join(ENDPOINTS)),
            "interval_seconds": os.getenv("DSAR_INTERVAL", "1.0"),
            "parallel": os.getenv("DSAR_PARALLEL", "3"),
            "connect_timeout_seconds": os.getenv("DSAR_CONNECT_TIMEOUT", "0.2"),
            "keep_history": os.getenv("DSAR_KEEP_HISTORY", "false").lower() == "true",
        }
        metrics_port = os.getenv("DSAR_METRICS_PORT")
        if metrics_port:
            values["metrics_port"] = metrics_port
        round_timeout = os.getenv("DSAR_ROUND_TIMEOUT")
        if round_timeout:
            values["round_timeout_seconds"] = round_timeout
        return cls(**values)
