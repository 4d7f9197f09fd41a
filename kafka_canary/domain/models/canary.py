"""Canary configuration and status payloads."""
from __future__ import annotations

from datetime import timedelta
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field

# Reported instead of a percentage while the window holds no produced records.
NO_DATA_PERCENTAGE = -1.0


class CanaryConfig(BaseModel):
    """Immutable canary settings, built once at startup."""

    model_config = ConfigDict(frozen=True)

    topic: str = Field(..., pattern=r"^[\w\-.]+$", examples=["__kafka_canary"])
    partitions: int = Field(default=1, ge=1)
    replication_factor: int = Field(default=3, ge=1)
    topic_config: Dict[str, str] = Field(default_factory=dict)
    consumer_group: str = "kafka-canary-group"
    client_id: str = "kafka-canary"
    status_check_interval: timedelta = timedelta(seconds=30)
    status_time_window: timedelta = timedelta(seconds=300)

    @property
    def ring_capacity(self) -> int:
        """Number of status-check ticks needed to cover the time window."""
        return max(1, int(self.status_time_window // self.status_check_interval))


class ConsumingStatus(BaseModel):
    timeWindow: timedelta
    percentage: float  # -1 while there is not enough data


class Status(BaseModel):
    consuming: ConsumingStatus
