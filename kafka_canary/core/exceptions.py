"""Exception taxonomy for the canary engine.

Broker-facing failures are translated into these types by the admin facade
(`kafka_canary.infra.kafka.admin`) so that the domain services never depend
on kafka-python error classes directly.
"""
from __future__ import annotations


class CanaryError(Exception):
    """Base class for every error raised by the canary."""


# --------------------------------------------------------------------------- #
# Broker admin collaborator                                                   #
# --------------------------------------------------------------------------- #
class BrokerAdminError(CanaryError):
    """An admin call failed for a reason other than absence or transience."""


class TransientNetworkError(BrokerAdminError):
    """Broker unreachable or connection reset; expected to heal on reconnect."""


class TopicDoesNotExistError(BrokerAdminError):
    """The requested topic is not known to the cluster."""

    def __init__(self, topic: str) -> None:
        super().__init__(f"Topic '{topic}' does not exist")
        self.topic = topic


# --------------------------------------------------------------------------- #
# Reconcile cycle                                                             #
# --------------------------------------------------------------------------- #
class ReconcileError(CanaryError):
    """A reconcile cycle failed; the next scheduled cycle retries.

    ``transient`` is set when the underlying cause was a network failure; the
    admin connection has then already been dropped.
    """

    def __init__(self, topic: str, message: str, transient: bool = False) -> None:
        super().__init__(message)
        self.topic = topic
        self.transient = transient


class AdminConnectionError(ReconcileError):
    """The admin connection could not be established."""


class TopicDescribeError(ReconcileError):
    """The canary topic metadata could not be read."""


class TopicCreationError(ReconcileError):
    """The canary topic could not be created."""


class TopicConfigurationError(ReconcileError):
    """The canary topic configuration could not be applied."""


class ReconcileInProgressError(ReconcileError):
    """Another reconcile is already running on the same service."""


class AdminCloseError(CanaryError):
    """The admin connection refused to close. Fatal for the process."""


# --------------------------------------------------------------------------- #
# Sampling                                                                    #
# --------------------------------------------------------------------------- #
class NoDataSamplesError(CanaryError):
    """Not enough samples to compute a delivery percentage yet."""

    def __init__(self, message: str = "no data samples available") -> None:
        super().__init__(message)
