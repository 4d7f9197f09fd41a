"""Reconciliation of the canary topic against the cluster."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Union

from kafka_canary.core.exceptions import (
    AdminCloseError,
    AdminConnectionError,
    BrokerAdminError,
    ReconcileInProgressError,
    TopicConfigurationError,
    TopicCreationError,
    TopicDescribeError,
    TopicDoesNotExistError,
    TransientNetworkError,
)
from kafka_canary.domain.models.canary import CanaryConfig
from kafka_canary.domain.models.topic import (
    ReconcileState,
    TopicMetadata,
    TopicReconcileResult,
    TopicSpec,
)
from kafka_canary.domain.services.metric_service import CanaryMetrics
from kafka_canary.infra.kafka.admin import KafkaAdminFacade

logger = logging.getLogger(__name__)

AdminFactory = Callable[[], KafkaAdminFacade]


@dataclass(frozen=True)
class Disconnected:
    """No admin connection is held."""


@dataclass(frozen=True)
class Connected:
    admin: KafkaAdminFacade


AdminConnection = Union[Disconnected, Connected]


class TopicService:
    """Keeps the canary topic present and configured.

    ``reconcile()`` is meant to be called periodically and is idempotent:

    1. connect the admin client if no connection is held;
    2. describe the topic, dropping the connection on a transient network
       error so the next cycle reconnects from scratch;
    3. create the topic when it does not exist;
    4. describe it again for authoritative metadata;
    5. apply the configured topic entries, once per process lifetime.

    Failures are raised to the caller, which retries on its next tick. A
    transient network error in any later step also drops the connection and
    is reported with ``transient=True``. Only
    one reconcile may run at a time; a concurrent call fails fast with
    ``ReconcileInProgressError``.
    """

    def __init__(
        self,
        canary: CanaryConfig,
        admin_factory: AdminFactory,
        metrics: CanaryMetrics,
    ) -> None:
        self._canary = canary
        self._admin_factory = admin_factory
        self._metrics = metrics
        self._conn: AdminConnection = Disconnected()
        self._initialized = False
        self._state = ReconcileState.UNINITIALIZED
        self._assignments: List[int] = []
        self._lock = threading.Lock()
        # guards _conn; close() runs outside the reconcile lock
        self._conn_lock = threading.Lock()
        self._close_generation = 0

    # ------------------------------------------------------------------ #
    # Introspection                                                       #
    # ------------------------------------------------------------------ #
    @property
    def topic(self) -> str:
        return self._canary.topic

    @property
    def state(self) -> ReconcileState:
        return self._state

    @property
    def initialized(self) -> bool:
        """True once the topic configuration has been applied."""
        return self._initialized

    @property
    def connected(self) -> bool:
        return isinstance(self._conn, Connected)

    @property
    def assignments(self) -> List[int]:
        return list(self._assignments)

    # ------------------------------------------------------------------ #
    # Commands                                                            #
    # ------------------------------------------------------------------ #
    def reconcile(self) -> TopicReconcileResult:
        if not self._lock.acquire(blocking=False):
            raise ReconcileInProgressError(self.topic, "a reconcile is already running")
        try:
            return self._reconcile()
        finally:
            self._lock.release()

    def close(self) -> None:
        """Release the admin connection. Safe to call when already closed.

        Raises
        ------
        AdminCloseError
            If the admin client refuses to close.
        """
        logger.info("Closing topic service")
        with self._conn_lock:
            self._close_generation += 1
            conn = self._conn
            if isinstance(conn, Disconnected):
                return
            self._conn = Disconnected()
            self._set_state(ReconcileState.DISCONNECTED)
        try:
            conn.admin.close()
        except Exception as exc:
            logger.critical("Error closing cluster admin: %s", exc)
            raise AdminCloseError(f"failed to close cluster admin: {exc}") from exc

    # ------------------------------------------------------------------ #
    # Internals                                                           #
    # ------------------------------------------------------------------ #
    def _reconcile(self) -> TopicReconcileResult:
        topic = self.topic
        admin = self._ensure_admin()
        created = False

        try:
            admin.get_topic(topic)
        except TransientNetworkError as exc:
            # lost the connection: reset so the next cycle reconnects
            logger.warning("Transient error describing topic %s, resetting admin connection: %s",
                           topic, exc)
            self.close()
            raise
        except TopicDoesNotExistError:
            self._set_state(ReconcileState.TOPIC_MISSING)
            self._create_topic(admin)
            created = True
        except BrokerAdminError as exc:
            # the authoritative describe below decides whether this cycle fails
            logger.debug("Preliminary describe of topic %s failed: %s", topic, exc)

        metadata = self._describe_topic(admin)
        self._configure_topic(admin)

        self._assignments = metadata.partition_ids()
        self._set_state(ReconcileState.STEADY)
        return TopicReconcileResult(
            assignments=self._assignments,
            leaders=metadata.leaders(),
            refresh_producer_metadata=created,
        )

    def _ensure_admin(self) -> KafkaAdminFacade:
        with self._conn_lock:
            conn = self._conn
            if isinstance(conn, Connected):
                return conn.admin
            generation = self._close_generation
            self._set_state(ReconcileState.CONNECTING)

        try:
            admin = self._admin_factory()
        except Exception as exc:
            self._set_state(ReconcileState.DISCONNECTED)
            logger.error("Error creating cluster admin client: %s", exc)
            raise AdminConnectionError(self.topic, f"cannot connect admin client: {exc}") from exc

        with self._conn_lock:
            if generation == self._close_generation:
                self._conn = Connected(admin)
                self._set_state(ReconcileState.CONNECTED)
                return admin

        # close() ran while connecting: the new client must not outlive it
        logger.info("Topic service closed while connecting; discarding new admin client")
        try:
            admin.close()
        except Exception as exc:
            logger.critical("Error closing cluster admin: %s", exc)
            raise AdminCloseError(f"failed to close cluster admin: {exc}") from exc
        raise AdminConnectionError(self.topic, "topic service closed while connecting")

    def _create_topic(self, admin: KafkaAdminFacade) -> None:
        topic = self.topic
        self._set_state(ReconcileState.TOPIC_CREATING)
        spec = TopicSpec(
            name=topic,
            partitions=self._canary.partitions,
            replication_factor=self._canary.replication_factor,
            configs={},
        )
        try:
            admin.create_topic(spec)
        except BrokerAdminError as exc:
            self._metrics.topic_creation_failed.labels(topic=topic).inc()
            logger.error("Error creating the topic %s: %s", topic, exc)
            raise TopicCreationError(
                topic, f"cannot create topic '{topic}': {exc}", self._drop_if_transient(exc)
            ) from exc
        logger.info("The canary topic %s was created", topic)

    def _describe_topic(self, admin: KafkaAdminFacade) -> TopicMetadata:
        topic = self.topic
        try:
            return admin.get_topic(topic)
        except BrokerAdminError as exc:
            self._metrics.describe_topic_error.labels(topic=topic).inc()
            logger.error("Error describing topic %s: %s", topic, exc)
            raise TopicDescribeError(
                topic, f"cannot describe topic '{topic}': {exc}", self._drop_if_transient(exc)
            ) from exc

    def _configure_topic(self, admin: KafkaAdminFacade) -> None:
        if self._initialized:
            return
        topic = self.topic
        entries = self._canary.topic_config
        self._set_state(ReconcileState.TOPIC_CONFIGURING)
        if entries:
            try:
                changed = admin.update_topic_config(topic, entries, validate_only=False)
            except BrokerAdminError as exc:
                self._metrics.alter_topic_configuration_error.labels(topic=topic).inc()
                logger.error("Error altering topic %s configuration: %s", topic, exc)
                raise TopicConfigurationError(
                    topic, f"cannot configure topic '{topic}': {exc}", self._drop_if_transient(exc)
                ) from exc
            logger.info("Configured topic %s (%d entries changed)", topic, len(changed))
        self._initialized = True

    def _drop_if_transient(self, exc: BaseException) -> bool:
        if not isinstance(exc, TransientNetworkError):
            return False
        logger.warning("Transient error on topic %s, resetting admin connection", self.topic)
        self.close()
        return True

    def _set_state(self, state: ReconcileState) -> None:
        if state is not self._state:
            logger.debug("Topic service %s: %s -> %s", self.topic, self._state.value, state.value)
            self._state = state
