# kafka_canary/services/consumer_service.py
from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, Callable, Optional

from kafka import KafkaConsumer

from kafka_canary.domain.models.canary import CanaryConfig
from kafka_canary.domain.services.metric_service import CanaryMetrics
from kafka_canary.infra.kafka.connection import client_kwargs
from kafka_canary.services.sample_ring import SampleRing

logger = logging.getLogger(__name__)

ConsumerFactory = Callable[[], KafkaConsumer]


def _decode(raw: bytes | None) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return None


def build_consumer(canary: CanaryConfig) -> KafkaConsumer:
    return KafkaConsumer(
        canary.topic,
        **client_kwargs(),
        group_id=canary.consumer_group,
        auto_offset_reset="latest",
        enable_auto_commit=True,
        value_deserializer=_decode,
    )


class CanaryConsumer:
    """
    Polls the canary topic and keeps a running total of marker records
    written by this canary's own producer.
    """

    def __init__(
        self,
        canary: CanaryConfig,
        ring: SampleRing,
        metrics: CanaryMetrics,
        consumer_factory: Optional[ConsumerFactory] = None,
        poll_timeout_ms: int = 1000,
    ) -> None:
        self._canary = canary
        self._ring = ring
        self._metrics = metrics
        self._factory = consumer_factory or (lambda: build_consumer(canary))
        self._poll_timeout_ms = poll_timeout_ms
        self._consumer: KafkaConsumer | None = None
        self._lock = threading.Lock()
        self._consumed = 0

    @property
    def records_consumed(self) -> int:
        with self._lock:
            return self._consumed

    def _ensure_consumer(self) -> KafkaConsumer:
        if self._consumer is None:
            self._consumer = self._factory()
            logger.info("Canary consumer created. topic=%s group=%s",
                        self._canary.topic, self._canary.consumer_group)
        return self._consumer

    def consume_once(self) -> int:
        """Poll once; returns the number of canary records counted."""
        consumer = self._ensure_consumer()
        batches = consumer.poll(timeout_ms=self._poll_timeout_ms)
        now_ms = int(time.time() * 1000)
        topic = self._canary.topic
        latency = self._metrics.records_consumed_latency.labels(topic=topic)

        counted = 0
        for _tp, records in (batches or {}).items():
            for rec in records:
                value = rec.value
                if not isinstance(value, dict) or value.get("producerId") != self._canary.client_id:
                    continue
                counted += 1
                ts = value.get("timestamp")
                if isinstance(ts, int):
                    latency.observe(max(0, now_ms - ts))

        if counted:
            with self._lock:
                self._consumed += counted
            self._metrics.records_consumed.labels(topic=topic).inc(counted)
        return counted

    def sample(self) -> None:
        """Append the current running total to the consumed-records ring."""
        self._ring.append(self.records_consumed)

    def reset(self) -> None:
        """Close the client; the next poll recreates it (rejoins the group)."""
        self.close()

    def close(self) -> None:
        consumer, self._consumer = self._consumer, None
        if consumer is None:
            return
        try:
            consumer.close()
            logger.info("Canary consumer closed")
        except Exception:
            logger.exception("consumer.close failed")
