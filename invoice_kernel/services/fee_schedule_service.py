"""
Service layer for fee schedules.

Schedule parameters are validated here, at creation time, so accrual never
meets a schedule it cannot evaluate.  A schedule referenced by a charge is
frozen; a rate change means a new schedule.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from invoice_kernel.db.types import scale_rate
from invoice_kernel.domain.dtos import FeeScheduleInfo
from invoice_kernel.exceptions import InvalidScheduleError
from invoice_kernel.logging_config import get_logger
from invoice_kernel.models.fee_schedule import FeeSchedule
from invoice_kernel.services.base import BaseService

logger = get_logger("services.fee_schedule")


class FeeScheduleService(BaseService[FeeSchedule]):

    def create(self, interest_rate: Decimal | str | int, compounding_period: int) -> FeeScheduleInfo:
        """
        Args:
            interest_rate: Per-period fraction ("0.01", Decimal("0.01")), or
                an int already scaled by RATE_SCALE.
            compounding_period: Seconds per compounding period.

        Raises:
            InvalidScheduleError: non-positive period, negative or
                over-precise rate.
        """
        if isinstance(compounding_period, bool) or not isinstance(compounding_period, int):
            raise InvalidScheduleError(
                "compounding_period", repr(compounding_period), "must be an integer number of seconds"
            )
        if compounding_period <= 0:
            raise InvalidScheduleError(
                "compounding_period", str(compounding_period), "must be a positive number of seconds"
            )
        if isinstance(interest_rate, float):
            raise InvalidScheduleError(
                "interest_rate", repr(interest_rate), "pass a Decimal or string, not a float"
            )
        try:
            scaled = scale_rate(interest_rate)
        except ValueError as exc:
            raise InvalidScheduleError("interest_rate", str(interest_rate), str(exc)) from exc

        schedule = FeeSchedule(compounding_period=compounding_period, interest_rate=scaled)
        self.session.add(schedule)
        self.session.flush()

        logger.info(
            "fee_schedule_created",
            extra={
                "fee_schedule_id": schedule.id,
                "interest_rate": scaled,
                "compounding_period": compounding_period,
            },
        )
        return FeeScheduleInfo.from_model(schedule)

    def get(self, reference: Any) -> FeeScheduleInfo:
        return FeeScheduleInfo.from_model(self._load(FeeSchedule, reference))
