"""Kafka canary: produces and consumes marker records to measure delivery completeness."""

__version__ = "1.0.0"
