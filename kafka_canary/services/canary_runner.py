# kafka_canary/services/canary_runner.py
from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Callable, List, Optional

from kafka_canary.core.exceptions import AdminCloseError, CanaryError
from kafka_canary.domain.models.topic import TopicReconcileResult
from kafka_canary.domain.services.topic_service import TopicService
from kafka_canary.services.consumer_service import CanaryConsumer
from kafka_canary.services.producer_service import CanaryProducer

logger = logging.getLogger(__name__)


class CanaryRunner:
    """
    Owns the periodic tasks of the canary:

    - reconcile loop (topic service), one attempt per interval, each bounded by a deadline
    - produce loop and consume loop (blocking kafka-python calls run in worker threads)
    - one sampling loop per ring, appending the running totals every status-check tick

    No exception escapes a loop except a failed admin close, which ends the process.
    """

    def __init__(
        self,
        topics: TopicService,
        producer: CanaryProducer,
        consumer: CanaryConsumer,
        *,
        reconcile_interval: float,
        reconcile_timeout: float,
        produce_interval: float,
        status_check_interval: float,
    ) -> None:
        self._topics = topics
        self._producer = producer
        self._consumer = consumer
        self._reconcile_interval = reconcile_interval
        self._reconcile_timeout = reconcile_timeout
        self._produce_interval = produce_interval
        self._status_check_interval = status_check_interval
        self._tasks: List[asyncio.Task] = []
        self.last_result: Optional[TopicReconcileResult] = None

    @property
    def assignments(self) -> List[int]:
        return list(self.last_result.assignments) if self.last_result else []

    # ---- lifecycle ----
    def start(self) -> None:
        self._tasks = [
            asyncio.create_task(self._reconcile_loop(), name="canary-reconcile"),
            asyncio.create_task(self._produce_loop(), name="canary-produce"),
            asyncio.create_task(self._consume_loop(), name="canary-consume"),
            asyncio.create_task(
                self._every(self._status_check_interval, self._sample_produced),
                name="canary-sample-produced",
            ),
            asyncio.create_task(
                self._every(self._status_check_interval, self._sample_consumed),
                name="canary-sample-consumed",
            ),
        ]
        logger.info("Canary started for topic %s", self._topics.topic)

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks = []
        await asyncio.to_thread(self._producer.close)
        await asyncio.to_thread(self._consumer.close)
        await asyncio.to_thread(self._topics.close)
        logger.info("Canary stopped")

    # ---- reconcile ----
    async def reconcile_once(self) -> Optional[TopicReconcileResult]:
        """One reconcile attempt; failures are logged and reported as None."""
        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(self._topics.reconcile), timeout=self._reconcile_timeout
            )
        except AdminCloseError:
            logger.critical("Cluster admin could not be closed; exiting")
            raise SystemExit(1)
        except asyncio.TimeoutError:
            logger.warning("Reconcile of topic %s timed out after %.1fs",
                           self._topics.topic, self._reconcile_timeout)
            return None
        except CanaryError as exc:
            logger.warning("Reconcile of topic %s failed: %s", self._topics.topic, exc)
            return None
        except Exception:
            logger.exception("Unexpected error reconciling topic %s", self._topics.topic)
            return None

        self.last_result = result
        if result.refresh_producer_metadata:
            logger.info("Topic %s changed; refreshing producer metadata", self._topics.topic)
            try:
                await asyncio.to_thread(self._producer.reset)
            except Exception:
                logger.exception("error resetting canary producer")
        return result

    async def _reconcile_loop(self) -> None:
        while True:
            await self.reconcile_once()
            await asyncio.sleep(self._reconcile_interval)

    # ---- produce / consume ----
    async def _produce_loop(self) -> None:
        while True:
            try:
                await asyncio.to_thread(self._producer.produce, self.assignments)
            except Exception:
                logger.exception("error producing canary records; recreating producer")
                await asyncio.to_thread(self._producer.reset)
            await asyncio.sleep(self._produce_interval)

    async def _consume_loop(self) -> None:
        while True:
            if not self.assignments:
                # topic not reconciled yet, nothing to subscribe to
                await asyncio.sleep(self._produce_interval)
                continue
            try:
                await asyncio.to_thread(self._consumer.consume_once)
            except Exception:
                logger.exception("error in poll; recreating consumer")
                await asyncio.to_thread(self._consumer.reset)
                await asyncio.sleep(self._produce_interval)

    # ---- sampling ----
    def _sample_produced(self) -> None:
        self._producer.sample()

    def _sample_consumed(self) -> None:
        self._consumer.sample()

    @staticmethod
    async def _every(interval: float, fn: Callable[[], None]) -> None:
        while True:
            await asyncio.sleep(interval)
            fn()
