# kafka_canary/services/producer_service.py
from __future__ import annotations

import json
import logging
import threading
import time
from typing import Callable, Iterable, List, Optional

from kafka import KafkaProducer
from kafka.errors import KafkaError

from kafka_canary.domain.models.canary import CanaryConfig
from kafka_canary.domain.services.metric_service import CanaryMetrics
from kafka_canary.infra.kafka.connection import client_kwargs
from kafka_canary.services.sample_ring import SampleRing

logger = logging.getLogger(__name__)

ProducerFactory = Callable[[], KafkaProducer]


def build_producer() -> KafkaProducer:
    return KafkaProducer(
        **client_kwargs(),
        value_serializer=lambda v: json.dumps(v).encode("utf-8"),
        acks="all",
        linger_ms=0,
        retries=0,  # a lost canary record must show up in the percentage
        max_in_flight_requests_per_connection=1,
    )


class CanaryProducer:
    """
    Sends one marker record per canary partition on every `produce()` call and
    keeps a running total of acknowledged records.

    Delivery callbacks run on kafka-python's I/O thread, hence the lock.
    """

    def __init__(
        self,
        canary: CanaryConfig,
        ring: SampleRing,
        metrics: CanaryMetrics,
        producer_factory: Optional[ProducerFactory] = None,
    ) -> None:
        self._canary = canary
        self._ring = ring
        self._metrics = metrics
        self._factory = producer_factory or build_producer
        self._producer: KafkaProducer | None = None
        self._lock = threading.Lock()
        # held while sending and while closing, so reset never closes a client mid-send
        self._client_lock = threading.Lock()
        self._produced = 0
        self._failed = 0
        self._message_id = 0

    @property
    def records_produced(self) -> int:
        with self._lock:
            return self._produced

    @property
    def records_failed(self) -> int:
        with self._lock:
            return self._failed

    def _ensure_producer(self) -> KafkaProducer:
        if self._producer is None:
            self._producer = self._factory()
            logger.info("Canary producer created for topic %s", self._canary.topic)
        return self._producer

    def produce(self, partitions: Iterable[int]) -> int:
        """Send one record to each partition; returns how many were handed to the client."""
        partitions = list(partitions)
        if not partitions:
            logger.debug("No partitions assigned yet; skipping produce")
            return 0

        with self._client_lock:
            return self._send_all(self._ensure_producer(), partitions)

    def _send_all(self, producer: KafkaProducer, partitions: List[int]) -> int:
        topic = self._canary.topic
        sent = 0
        for partition in partitions:
            self._message_id += 1
            value = {
                "producerId": self._canary.client_id,
                "messageId": self._message_id,
                "timestamp": int(time.time() * 1000),
            }
            try:
                future = producer.send(topic, value=value, partition=partition)
            except KafkaError as exc:
                self._on_error(exc)
                continue
            future.add_callback(self._on_success)
            future.add_errback(self._on_error)
            sent += 1
        return sent

    def _on_success(self, _metadata) -> None:
        with self._lock:
            self._produced += 1
        self._metrics.records_produced.labels(topic=self._canary.topic).inc()

    def _on_error(self, exc: BaseException) -> None:
        with self._lock:
            self._failed += 1
        self._metrics.records_produced_failed.labels(topic=self._canary.topic).inc()
        logger.warning("Error producing canary record to %s: %s", self._canary.topic, exc)

    def sample(self) -> None:
        """Append the current running total to the produced-records ring."""
        self._ring.append(self.records_produced)

    def reset(self) -> None:
        """Drop the client; the next `produce()` builds a fresh one with fresh metadata."""
        self.close()

    def close(self) -> None:
        with self._client_lock:
            producer, self._producer = self._producer, None
        if producer is None:
            return
        try:
            producer.flush(timeout=5)
        except KafkaError:
            logger.warning("Flushing canary producer failed", exc_info=True)
        finally:
            producer.close()
        logger.info("Canary producer closed")
