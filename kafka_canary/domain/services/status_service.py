"""Delivery percentage and status snapshot for the canary topic."""
from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal

from kafka_canary.core.exceptions import NoDataSamplesError
from kafka_canary.domain.models.canary import (
    NO_DATA_PERCENTAGE,
    CanaryConfig,
    ConsumingStatus,
    Status,
)
from kafka_canary.services.sample_ring import SampleRing

logger = logging.getLogger(__name__)

_TWO_PLACES = Decimal("0.01")


def compute_delivery_percentage(produced: SampleRing, consumed: SampleRing) -> float:
    """Percentage of records produced in the window that were also consumed.

    Raises
    ------
    NoDataSamplesError
        If sampling has not started yet, or nothing was produced in the window.
    """
    prod = produced.snapshot()
    if prod.count == 0:
        raise NoDataSamplesError("sampling of produced records has not started yet")

    cons = consumed.snapshot()
    produced_delta = prod.delta
    consumed_delta = cons.delta
    if produced_delta == 0:
        raise NoDataSamplesError("no records produced in the current time window")

    ratio = Decimal(consumed_delta * 100) / Decimal(produced_delta)
    percentage = float(ratio.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP))
    if percentage < 0:
        # only possible if a counter went backwards
        logger.error(
            "Negative delivery percentage %.2f (produced delta=%d, consumed delta=%d)",
            percentage, produced_delta, consumed_delta,
        )
    return percentage


class StatusService:
    """Builds point-in-time status snapshots from the two sample rings."""

    def __init__(self, canary: CanaryConfig, produced: SampleRing, consumed: SampleRing) -> None:
        self._canary = canary
        self._produced = produced
        self._consumed = consumed

    def build_status(self) -> Status:
        time_window = self._canary.status_check_interval * self._consumed.count
        try:
            percentage = compute_delivery_percentage(self._produced, self._consumed)
        except NoDataSamplesError as exc:
            logger.info("Consumed records percentage not available: %s", exc)
            percentage = NO_DATA_PERCENTAGE
        else:
            logger.debug("Status consumed percentage = %.2f", percentage)
        return Status(consuming=ConsumingStatus(timeWindow=time_window, percentage=percentage))
