from __future__ import annotations

import threading

import pytest

from conftest import FakeAdmin, topic_metadata
from kafka_canary.core.exceptions import (
    AdminCloseError,
    AdminConnectionError,
    BrokerAdminError,
    ReconcileInProgressError,
    TopicConfigurationError,
    TopicCreationError,
    TopicDescribeError,
    TransientNetworkError,
)
from kafka_canary.domain.models.topic import ReconcileState
from kafka_canary.domain.services.topic_service import TopicService


class _Factory:
    """Hands out a fresh FakeAdmin per connect, sharing cluster state."""

    def __init__(self, admin: FakeAdmin) -> None:
        self.template = admin
        self.created: list[FakeAdmin] = []
        self.fail_with: list[Exception] = []

    def __call__(self) -> FakeAdmin:
        if self.fail_with:
            raise self.fail_with.pop(0)
        admin = FakeAdmin()
        admin.topics = self.template.topics
        admin.configs = self.template.configs
        admin.errors = self.template.errors
        self.created.append(admin)
        return admin


def _service(canary, metrics, admin: FakeAdmin | None = None) -> tuple[TopicService, _Factory]:
    factory = _Factory(admin or FakeAdmin())
    return TopicService(canary, factory, metrics), factory


def test_missing_topic_is_created_described_and_configured_once(canary, metrics) -> None:
    svc, factory = _service(canary, metrics)
    assert svc.state is ReconcileState.UNINITIALIZED

    result = svc.reconcile()

    admin = factory.created[0]
    created = [spec for name, spec in admin.calls if name == "create_topic"]
    assert len(created) == 1
    assert created[0].name == canary.topic
    assert created[0].partitions == 3
    assert created[0].replication_factor == 3
    assert created[0].configs == {}
    assert admin.calls[-1] == ("update_topic_config", canary.topic_config)
    assert admin.configs[canary.topic] == canary.topic_config

    assert result.assignments == [0, 1, 2]
    assert result.leaders == {0: 0, 1: 1, 2: 2}
    assert result.refresh_producer_metadata is True
    assert svc.initialized is True
    assert svc.state is ReconcileState.STEADY


def test_existing_configured_topic_is_left_alone(canary, metrics) -> None:
    cluster = FakeAdmin({canary.topic: topic_metadata(canary.topic, partitions=4)})
    svc, factory = _service(canary, metrics, cluster)

    results = [svc.reconcile() for _ in range(5)]

    admin = factory.created[0]
    assert len(factory.created) == 1
    assert admin.count("create_topic") == 0
    assert admin.count("update_topic_config") == 1
    assert {tuple(r.assignments) for r in results} == {(0, 1, 2, 3)}
    assert all(not r.refresh_producer_metadata for r in results)
    assert results[0].leaders == {0: 100, 1: 101, 2: 102, 3: 103}


def test_configuration_applies_once_across_many_cycles(canary, metrics) -> None:
    svc, factory = _service(canary, metrics)
    for _ in range(10):
        svc.reconcile()
    assert factory.created[0].count("update_topic_config") == 1
    assert factory.created[0].count("create_topic") == 1


def test_empty_topic_config_latches_without_broker_call(canary, metrics) -> None:
    canary = canary.model_copy(update={"topic_config": {}})
    svc, factory = _service(canary, metrics)
    svc.reconcile()
    assert svc.initialized is True
    assert factory.created[0].count("update_topic_config") == 0


def test_transient_describe_error_drops_connection_and_reconnects(canary, metrics) -> None:
    cluster = FakeAdmin({canary.topic: topic_metadata(canary.topic)})
    cluster.errors["get_topic"] = [TransientNetworkError("connection reset")]
    svc, factory = _service(canary, metrics, cluster)

    with pytest.raises(TransientNetworkError):
        svc.reconcile()

    first = factory.created[0]
    assert first.closed is True
    assert svc.connected is False
    assert svc.state is ReconcileState.DISCONNECTED
    assert first.count("create_topic") == 0

    result = svc.reconcile()
    assert len(factory.created) == 2
    second = factory.created[1]
    # the new connection is used before anything else happens
    assert second.calls[0] == ("get_topic", canary.topic)
    assert result.assignments == [0, 1, 2]
    assert svc.connected is True


def test_connection_failure_is_reported_and_retried(canary, metrics) -> None:
    svc, factory = _service(canary, metrics)
    factory.fail_with = [TransientNetworkError("no brokers")]

    with pytest.raises(AdminConnectionError):
        svc.reconcile()
    assert svc.state is ReconcileState.DISCONNECTED
    assert factory.created == []

    svc.reconcile()
    assert svc.state is ReconcileState.STEADY


def test_creation_failure_is_counted_and_keeps_connection(canary, metrics) -> None:
    svc, factory = _service(canary, metrics)
    factory.template.errors["create_topic"] = [BrokerAdminError("policy violation")]

    with pytest.raises(TopicCreationError) as excinfo:
        svc.reconcile()

    assert excinfo.value.topic == canary.topic
    assert metrics.value("kafka_canary_topic_creation_failed_total", topic=canary.topic) == 1.0
    assert svc.connected is True
    assert svc.initialized is False

    svc.reconcile()
    assert len(factory.created) == 1
    assert factory.created[0].count("create_topic") == 2


def test_authoritative_describe_failure_is_counted(canary, metrics) -> None:
    cluster = FakeAdmin({canary.topic: topic_metadata(canary.topic)})
    cluster.errors["get_topic"] = [None, BrokerAdminError("authorization failed")]
    svc, _ = _service(canary, metrics, cluster)

    with pytest.raises(TopicDescribeError):
        svc.reconcile()
    assert metrics.value("kafka_canary_topic_describe_error_total", topic=canary.topic) == 1.0
    assert svc.connected is True


def test_preliminary_describe_error_falls_through_to_authoritative_describe(canary, metrics) -> None:
    cluster = FakeAdmin({canary.topic: topic_metadata(canary.topic)})
    cluster.errors["get_topic"] = [BrokerAdminError("leader not available")]
    svc, _ = _service(canary, metrics, cluster)

    result = svc.reconcile()
    assert result.assignments == [0, 1, 2]
    assert metrics.value("kafka_canary_topic_describe_error_total", topic=canary.topic) == 0.0


def test_configuration_failure_leaves_latch_open_for_retry(canary, metrics) -> None:
    cluster = FakeAdmin({canary.topic: topic_metadata(canary.topic)})
    cluster.errors["update_topic_config"] = [BrokerAdminError("invalid config")]
    svc, factory = _service(canary, metrics, cluster)

    with pytest.raises(TopicConfigurationError):
        svc.reconcile()
    assert svc.initialized is False
    assert metrics.value(
        "kafka_canary_topic_alter_configuration_error_total", topic=canary.topic
    ) == 1.0

    svc.reconcile()
    svc.reconcile()
    assert svc.initialized is True
    assert factory.created[0].count("update_topic_config") == 2


def test_concurrent_reconcile_is_rejected(canary, metrics) -> None:
    entered = threading.Event()
    release = threading.Event()
    cluster = FakeAdmin({canary.topic: topic_metadata(canary.topic)})

    class _SlowAdmin(FakeAdmin):
        def get_topic(self, topic, include_auth=False):
            entered.set()
            release.wait(timeout=5)
            return super().get_topic(topic, include_auth)

    slow = _SlowAdmin(cluster.topics)
    svc = TopicService(canary, lambda: slow, metrics)

    worker = threading.Thread(target=svc.reconcile)
    worker.start()
    try:
        assert entered.wait(timeout=5)
        with pytest.raises(ReconcileInProgressError):
            svc.reconcile()
    finally:
        release.set()
        worker.join(timeout=5)
    assert svc.state is ReconcileState.STEADY


def test_close_is_idempotent(canary, metrics) -> None:
    svc, factory = _service(canary, metrics)
    svc.close()  # never connected
    svc.reconcile()
    svc.close()
    svc.close()
    assert factory.created[0].count("close") == 1
    assert svc.connected is False


def test_close_failure_is_fatal(canary, metrics) -> None:
    svc, factory = _service(canary, metrics)
    svc.reconcile()
    factory.template.errors["close"] = [BrokerAdminError("socket stuck")]

    with pytest.raises(AdminCloseError):
        svc.close()
    assert svc.connected is False


def test_transient_error_after_first_describe_drops_connection(canary, metrics) -> None:
    cluster = FakeAdmin({canary.topic: topic_metadata(canary.topic)})
    cluster.errors["get_topic"] = [None, TransientNetworkError("connection reset")]
    svc, factory = _service(canary, metrics, cluster)

    with pytest.raises(TopicDescribeError) as excinfo:
        svc.reconcile()

    assert excinfo.value.transient is True
    assert metrics.value("kafka_canary_topic_describe_error_total", topic=canary.topic) == 1.0
    assert svc.connected is False
    assert factory.created[0].closed is True

    svc.reconcile()
    assert len(factory.created) == 2
    assert svc.state is ReconcileState.STEADY


def test_broker_errors_are_not_flagged_transient(canary, metrics) -> None:
    svc, factory = _service(canary, metrics)
    factory.template.errors["create_topic"] = [BrokerAdminError("policy violation")]

    with pytest.raises(TopicCreationError) as excinfo:
        svc.reconcile()
    assert excinfo.value.transient is False


def test_close_while_connecting_discards_new_admin(canary, metrics) -> None:
    entered = threading.Event()
    release = threading.Event()
    created: list[FakeAdmin] = []

    def factory() -> FakeAdmin:
        entered.set()
        release.wait(timeout=5)
        admin = FakeAdmin({canary.topic: topic_metadata(canary.topic)})
        created.append(admin)
        return admin

    svc = TopicService(canary, factory, metrics)
    errors: list[Exception] = []

    def run() -> None:
        try:
            svc.reconcile()
        except Exception as exc:
            errors.append(exc)

    worker = threading.Thread(target=run)
    worker.start()
    try:
        assert entered.wait(timeout=5)
        svc.close()
    finally:
        release.set()
        worker.join(timeout=5)

    assert svc.connected is False
    assert created[0].closed is True
    assert len(errors) == 1 and isinstance(errors[0], AdminConnectionError)

    # a later cycle connects normally
    svc.reconcile()
    assert svc.connected is True
    assert created[1].closed is False
