"""Shared fakes for the canary test suite."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

import pytest

from kafka_canary.core.exceptions import TopicDoesNotExistError
from kafka_canary.domain.models.canary import CanaryConfig
from kafka_canary.domain.models.topic import PartitionMetadata, TopicMetadata, TopicSpec
from kafka_canary.domain.services.metric_service import CanaryMetrics


class FakeAdmin:
    """In-memory stand-in for KafkaAdminFacade.

    ``errors`` maps a method name to a list of exceptions raised on successive
    calls (``None`` entries let the call through).
    """

    def __init__(self, topics: dict[str, TopicMetadata] | None = None) -> None:
        self.topics: dict[str, TopicMetadata] = dict(topics or {})
        self.errors: dict[str, list[Exception | None]] = {}
        self.calls: list[tuple[str, Any]] = []
        self.configs: dict[str, dict[str, str]] = {}
        self.closed = False

    def _maybe_raise(self, name: str) -> None:
        queue = self.errors.get(name)
        if queue:
            exc = queue.pop(0)
            if exc is not None:
                raise exc

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)

    def get_topic(self, topic: str, include_auth: bool = False) -> TopicMetadata:
        self.calls.append(("get_topic", topic))
        self._maybe_raise("get_topic")
        if topic not in self.topics:
            raise TopicDoesNotExistError(topic)
        return self.topics[topic]

    def create_topic(self, spec: TopicSpec) -> None:
        self.calls.append(("create_topic", spec))
        self._maybe_raise("create_topic")
        self.topics[spec.name] = TopicMetadata(
            name=spec.name,
            partitions=[
                PartitionMetadata(
                    id=i,
                    leader=i % 3,
                    replicas=list(range(spec.replication_factor)),
                    isr=list(range(spec.replication_factor)),
                )
                for i in range(spec.partitions)
            ],
        )

    def update_topic_config(self, topic, entries, validate_only=False) -> dict[str, str]:
        self.calls.append(("update_topic_config", dict(entries)))
        self._maybe_raise("update_topic_config")
        current = self.configs.setdefault(topic, {})
        changed = {k: v for k, v in entries.items() if current.get(k) != v}
        if not validate_only:
            current.update(entries)
        return changed

    def close(self) -> None:
        self.calls.append(("close", None))
        self._maybe_raise("close")
        self.closed = True


def topic_metadata(name: str, partitions: int = 3) -> TopicMetadata:
    return TopicMetadata(
        name=name,
        partitions=[
            PartitionMetadata(id=i, leader=100 + i, replicas=[100, 101, 102], isr=[100, 101, 102])
            for i in range(partitions)
        ],
    )


@pytest.fixture
def canary() -> CanaryConfig:
    return CanaryConfig(
        topic="__canary_test",
        partitions=3,
        replication_factor=3,
        topic_config={"retention.ms": "600000", "min.insync.replicas": "2"},
        status_check_interval=timedelta(seconds=10),
        status_time_window=timedelta(seconds=50),
    )


@pytest.fixture
def metrics() -> CanaryMetrics:
    return CanaryMetrics()
