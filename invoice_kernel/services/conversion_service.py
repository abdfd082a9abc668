"""
Service layer for the Conversion Table.

Responsibility:
    Record conversion rates (the value of a denomination relative to a unit
    of account) and answer conversion questions at a point in time.

Time scoping:
    Rates are append-only.  The applicable rate for a pair is the one with
    the latest ``effective_at <= as_of``; rates recorded for the same instant
    are ordered by insertion, the latest winning.

Quoter:
    An optional external rate source.  It is either a callable
    ``quoter(unit_code, denomination_code, as_of) -> basis | None`` or an
    object with a ``quote`` method of the same shape.  When a rate is
    missing and a quoter is configured, the quote is recorded once
    (effective ``as_of``) and then used.  Quotes are cached values, not live
    prices; nothing here refreshes on its own.

Failure modes:
    - ConversionRateNotFoundError when no rate applies and no quoter can
      supply one.
    - InvalidConversionRateError for a zero, negative or non-integer basis.
"""

from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal, localcontext
from math import gcd
from typing import Any

from sqlalchemy import select

from invoice_kernel.db.types import ACCRUAL_PRECISION, BASIS_SCALE, DEFAULT_ROUNDING, round_minor
from invoice_kernel.domain.dtos import ConversionRateInfo
from invoice_kernel.exceptions import ConversionRateNotFoundError, InvalidConversionRateError
from invoice_kernel.logging_config import get_logger
from invoice_kernel.models.denomination import ConversionRate, Denomination
from invoice_kernel.services.base import BaseService
from invoice_kernel.services.denomination_service import DenominationService

logger = get_logger("services.conversion")

Quoter = Callable[[str, str, int], int | None]


def _validate_basis(basis: Any) -> int:
    if isinstance(basis, bool) or not isinstance(basis, int):
        raise InvalidConversionRateError(repr(basis), f"basis must be an integer over {BASIS_SCALE}")
    if basis <= 0:
        raise InvalidConversionRateError(str(basis), "basis must be positive")
    return basis


def call_quoter(quoter: Any, unit_code: str, denomination_code: str, as_of: int) -> int | None:
    fetch = getattr(quoter, "quote", quoter)
    return fetch(unit_code, denomination_code, as_of)


class ConversionService(BaseService[ConversionRate]):
    """
    Conversion Table reads and writes.

    ``quoter`` is injected once per service; ``refresh`` may also be given
    one explicitly.
    """

    def __init__(self, session, quoter: Any | None = None):
        super().__init__(session)
        self.quoter = quoter
        self._denominations = DenominationService(session)

    def record_rate(
        self,
        unit_of_account: Any,
        denomination: Any,
        basis: int,
        effective_at: int,
    ) -> ConversionRateInfo:
        """Append a rate: value_in_unit = amount * basis / BASIS_SCALE."""
        basis = _validate_basis(basis)
        unit = self._denominations.resolve(unit_of_account)
        denom = self._denominations.resolve(denomination)

        rate = ConversionRate(
            unit_of_account=unit.id,
            denomination_id=denom.id,
            basis=basis,
            effective_at=int(effective_at),
        )
        self.session.add(rate)
        self.session.flush()

        logger.info(
            "conversion_rate_recorded",
            extra={
                "unit_of_account": unit.code,
                "denomination": denom.code,
                "basis": basis,
                "effective_at": rate.effective_at,
            },
        )
        return ConversionRateInfo.from_model(rate)

    def latest(self, denomination: Any, unit_of_account: Any, as_of: int) -> ConversionRateInfo | None:
        """The applicable rate at ``as_of``, or None."""
        stmt = (
            select(ConversionRate)
            .where(
                ConversionRate.unit_of_account == self._denominations.resolve(unit_of_account).id,
                ConversionRate.denomination_id == self._denominations.resolve(denomination).id,
                ConversionRate.effective_at <= as_of,
            )
            .order_by(ConversionRate.effective_at.desc(), ConversionRate.id.desc())
            .limit(1)
        )
        row = self.session.execute(stmt).scalar_one_or_none()
        return ConversionRateInfo.from_model(row) if row is not None else None

    def rates(self, denomination: Any | None = None) -> list[ConversionRateInfo]:
        stmt = select(ConversionRate).order_by(ConversionRate.id)
        if denomination is not None:
            stmt = stmt.where(
                ConversionRate.denomination_id == self._denominations.resolve(denomination).id
            )
        return [ConversionRateInfo.from_model(row) for row in self.session.execute(stmt).scalars()]

    def basis_of(self, denomination: Any, unit_of_account: Any, as_of: int) -> int:
        """
        Basis of ``denomination`` against ``unit_of_account`` at ``as_of``.

        A denomination is always worth BASIS_SCALE of itself.
        """
        denom = self._denominations.resolve(denomination)
        unit = self._denominations.resolve(unit_of_account)
        if denom.id == unit.id:
            return BASIS_SCALE

        rate = self.latest(denom.id, unit.id, as_of)
        if rate is not None:
            return rate.basis

        if self.quoter is not None:
            quoted = call_quoter(self.quoter, unit.code, denom.code, as_of)
            if quoted is not None:
                return self.record_rate(unit.id, denom.id, quoted, as_of).basis

        logger.warning(
            "conversion_rate_missing",
            extra={"unit_of_account": unit.code, "denomination": denom.code, "as_of": as_of},
        )
        raise ConversionRateNotFoundError(unit.code, denom.code, as_of)

    def factor(
        self,
        from_denomination: Any,
        to_denomination: Any,
        unit_of_account: Any | None,
        as_of: int,
    ) -> tuple[int, int]:
        """
        Integer factor (numerator, denominator) with
        ``to_units = from_units * numerator / denominator``.

        Without a unit of account the target denomination is its own pivot,
        so a direct (to, from) rate is required.
        """
        source = self._denominations.resolve(from_denomination)
        target = self._denominations.resolve(to_denomination)
        if source.id == target.id:
            return 1, 1

        if unit_of_account is None:
            numerator, denominator = self.basis_of(source.id, target.id, as_of), BASIS_SCALE
        else:
            unit = self._denominations.resolve(unit_of_account)
            numerator = self.basis_of(source.id, unit.id, as_of)
            denominator = self.basis_of(target.id, unit.id, as_of)

        common = gcd(numerator, denominator)
        return numerator // common, denominator // common

    def convert(
        self,
        amount: int,
        from_denomination: Any,
        to_denomination: Any,
        unit_of_account: Any | None,
        as_of: int,
        rounding: str = DEFAULT_ROUNDING,
    ) -> int:
        numerator, denominator = self.factor(from_denomination, to_denomination, unit_of_account, as_of)
        if numerator == denominator:
            return amount
        with localcontext() as ctx:
            ctx.prec = ACCRUAL_PRECISION
            return round_minor(Decimal(amount) * numerator / denominator, rounding)

    def refresh(
        self,
        unit_of_account: Any,
        as_of: int,
        quoter: Quoter | Any | None = None,
    ) -> list[ConversionRateInfo]:
        """Pull a quote for every other registered denomination and append it."""
        quoter = quoter if quoter is not None else self.quoter
        if quoter is None:
            raise ValueError("refresh requires a quoter")

        unit = self._denominations.resolve(unit_of_account)
        recorded: list[ConversionRateInfo] = []
        denominations = self.session.execute(
            select(Denomination).where(Denomination.id != unit.id).order_by(Denomination.id)
        ).scalars().all()
        for denom in denominations:
            quoted = call_quoter(quoter, unit.code, denom.code, as_of)
            if quoted is None:
                continue
            recorded.append(self.record_rate(unit.id, denom.id, quoted, as_of))

        logger.info(
            "conversion_rates_refreshed",
            extra={"unit_of_account": unit.code, "as_of": as_of, "count": len(recorded)},
        )
        return recorded
