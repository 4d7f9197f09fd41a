"""Topic metadata and reconcile models used by the topic service."""
from __future__ import annotations

from enum import Enum
from typing import Dict, List

from pydantic import BaseModel, Field


class ReconcileState(str, Enum):
    """Where the topic service currently stands in its reconcile cycle."""

    UNINITIALIZED = "uninitialized"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    TOPIC_MISSING = "topic_missing"
    TOPIC_CREATING = "topic_creating"
    TOPIC_CONFIGURING = "topic_configuring"
    STEADY = "steady"
    DISCONNECTED = "disconnected"


class TopicSpec(BaseModel):
    """Desired definition of a topic to create."""

    name: str = Field(..., pattern=r"^[\w\-.]+$")
    partitions: int = Field(..., ge=1)
    replication_factor: int = Field(..., ge=1)
    configs: Dict[str, str] = Field(default_factory=dict)


class PartitionMetadata(BaseModel):
    id: int
    leader: int | None = None
    replicas: List[int] = Field(default_factory=list)
    isr: List[int] = Field(default_factory=list)


class TopicMetadata(BaseModel):
    """Described state of a topic as reported by the cluster."""

    name: str
    partitions: List[PartitionMetadata] = Field(default_factory=list)
    authorized_operations: List[str] | None = None

    def partition_ids(self) -> List[int]:
        return sorted(p.id for p in self.partitions)

    def leaders(self) -> Dict[int, int]:
        """Partition id -> leader broker id, for partitions with a live leader."""
        return {
            p.id: p.leader
            for p in self.partitions
            if p.leader is not None and p.leader >= 0
        }

    @property
    def replication_factor(self) -> int:
        return len(self.partitions[0].replicas) if self.partitions else 0


class TopicReconcileResult(BaseModel):
    """Outcome of one successful reconcile cycle."""

    # partition ids of the canary topic
    assignments: List[int] = Field(default_factory=list)
    # partition -> leader broker
    leaders: Dict[int, int] = Field(default_factory=dict)
    # set when producer/consumer clients should refresh cached metadata
    refresh_producer_metadata: bool = False
