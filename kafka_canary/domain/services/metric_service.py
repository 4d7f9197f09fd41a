"""Prometheus counters incremented by the canary services."""
from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

METRICS_NAMESPACE = "kafka_canary"

# end-to-end latency buckets (ms)
LATENCY_BUCKETS_MS = (5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000)


class CanaryMetrics:
    """Metrics sink handed to the services.

    Each instance owns its registry so services can be built and tested in
    isolation without clashing on the process-global default registry.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()
        ns = METRICS_NAMESPACE
        reg = self.registry

        self.topic_creation_failed = Counter(
            "topic_creation_failed_total",
            "Total number of errors while creating the canary topic",
            ["topic"], namespace=ns, registry=reg,
        )
        self.describe_cluster_error = Counter(
            "topic_describe_cluster_error_total",
            "Total number of errors while describing cluster",
            namespace=ns, registry=reg,
        )
        self.describe_topic_error = Counter(
            "topic_describe_error_total",
            "Total number of errors while getting canary topic metadata",
            ["topic"], namespace=ns, registry=reg,
        )
        self.alter_topic_assignments_error = Counter(
            "topic_alter_assignments_error_total",
            "Total number of errors while altering partitions assignments for the canary topic",
            ["topic"], namespace=ns, registry=reg,
        )
        self.alter_topic_configuration_error = Counter(
            "topic_alter_configuration_error_total",
            "Total number of errors while altering configuration for the canary topic",
            ["topic"], namespace=ns, registry=reg,
        )

        # producer / consumer side
        self.records_produced = Counter(
            "records_produced_total",
            "Total number of canary records produced",
            ["topic"], namespace=ns, registry=reg,
        )
        self.records_produced_failed = Counter(
            "records_produced_failed_total",
            "Total number of canary records that failed to be produced",
            ["topic"], namespace=ns, registry=reg,
        )
        self.records_consumed = Counter(
            "records_consumed_total",
            "Total number of canary records consumed",
            ["topic"], namespace=ns, registry=reg,
        )
        self.records_consumed_latency = Histogram(
            "records_consumed_latency_ms",
            "End-to-end latency between producing and consuming a canary record (ms)",
            ["topic"], namespace=ns, registry=reg, buckets=LATENCY_BUCKETS_MS,
        )

    def value(self, name: str, **labels: str) -> float:
        """Current value of a sample, 0.0 if it was never touched."""
        v = self.registry.get_sample_value(name, labels or None)
        return v if v is not None else 0.0

    def render(self) -> bytes:
        return generate_latest(self.registry)
