"""Shared kafka-python client settings and error classification."""
from __future__ import annotations

from kafka.errors import (
    KafkaConnectionError,
    KafkaError,
    KafkaTimeoutError,
    NoBrokersAvailable,
    NodeNotReadyError,
    RequestTimedOutError,
    UnknownTopicOrPartitionError,
)

from kafka_canary.core.config import Settings, settings as default_settings
from kafka_canary.core.exceptions import (
    BrokerAdminError,
    TopicDoesNotExistError,
    TransientNetworkError,
)

TRANSIENT_ERRORS = (
    KafkaTimeoutError,
    NoBrokersAvailable,
    NodeNotReadyError,
    KafkaConnectionError,
    RequestTimedOutError,
)


def client_kwargs(cfg: Settings | None = None) -> dict:
    """Connection kwargs common to admin, producer and consumer clients."""
    cfg = cfg or default_settings
    kw = dict(
        bootstrap_servers=[s.strip() for s in cfg.kafka_bootstrap.split(",") if s.strip()],
        client_id=cfg.client_id,
        request_timeout_ms=cfg.request_timeout_ms,
        metadata_max_age_ms=cfg.metadata_max_age_ms,
        api_version_auto_timeout_ms=cfg.api_version_auto_timeout_ms,
        security_protocol=cfg.security_protocol,
    )
    if cfg.kafka_api_version:
        kw["api_version"] = tuple(int(p) for p in cfg.kafka_api_version.split("."))
    if cfg.security_protocol.startswith("SASL"):
        kw.update(
            sasl_mechanism=cfg.sasl_mechanism,
            sasl_plain_username=cfg.sasl_plain_username,
            sasl_plain_password=cfg.sasl_plain_password,
        )
    if cfg.security_protocol.endswith("SSL"):
        kw.update(ssl_cafile=cfg.ssl_cafile)
    return kw


def is_transient(exc: BaseException) -> bool:
    return isinstance(exc, TRANSIENT_ERRORS)


def translate_error(exc: Exception, topic: str | None = None) -> BrokerAdminError:
    """Map a kafka-python error onto the canary taxonomy."""
    if isinstance(exc, BrokerAdminError):
        return exc
    if is_transient(exc):
        return TransientNetworkError(f"transient network error: {exc!r}")
    if isinstance(exc, UnknownTopicOrPartitionError) and topic is not None:
        return TopicDoesNotExistError(topic)
    if isinstance(exc, KafkaError):
        return BrokerAdminError(f"broker admin call failed: {exc!r}")
    return BrokerAdminError(f"unexpected admin failure: {exc!r}")
