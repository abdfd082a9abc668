"""
Tests for the Fee Accrual Engine.

Covers:
- Plain charges (no fee terms, zero rate)
- Whole-period compounding and the step function between boundaries
- Partial payments never forgive interest
- Payment of the full accrued balance retires the charge
- Historical recomputation ignores later applications
- Schedule validation
"""

import pytest

from invoice_engines.accrual import (
    AppliedAmount,
    FeeAccrualEngine,
    FeeTerms,
    compounding_periods,
)
from invoice_kernel.exceptions import InvalidScheduleError

DAY = 86_400
MONTH = 30 * DAY
DUE = 1_704_110_400

ONE_PERCENT = 10_000


class TestCompoundingPeriods:

    def test_zero_before_due(self):
        assert compounding_periods(DUE, MONTH, DUE - DAY) == 0

    def test_zero_at_due(self):
        assert compounding_periods(DUE, MONTH, DUE) == 0

    def test_partial_period_does_not_count(self):
        assert compounding_periods(DUE, MONTH, DUE + MONTH - 1) == 0

    def test_whole_periods(self):
        assert compounding_periods(DUE, MONTH, DUE + 61 * DAY) == 2

    @pytest.mark.parametrize("period", [0, -1])
    def test_non_positive_period_rejected(self, period):
        with pytest.raises(InvalidScheduleError) as exc_info:
            compounding_periods(DUE, period, DUE)
        assert exc_info.value.field == "compounding_period"


class TestFeeTerms:

    def test_negative_rate_rejected(self):
        with pytest.raises(InvalidScheduleError) as exc_info:
            FeeTerms(compounding_period=MONTH, interest_rate=-1)
        assert exc_info.value.field == "interest_rate"

    def test_zero_period_rejected(self):
        with pytest.raises(InvalidScheduleError):
            FeeTerms(compounding_period=0, interest_rate=ONE_PERCENT)


class TestPlainCharges:
    """Without fee terms outstanding is principal minus what was applied."""

    def setup_method(self):
        self.engine = FeeAccrualEngine()

    def outstanding(self, applications, as_of=DUE, terms=None, principal=10_000):
        return self.engine.accrued_outstanding(
            principal=principal,
            due_date=DUE,
            terms=terms,
            applications=applications,
            as_of=as_of,
        )

    def test_untouched(self):
        assert self.outstanding([]) == 10_000

    def test_two_payments(self):
        first = [AppliedAmount(4000, DUE)]
        assert self.outstanding(first) == 6000
        assert self.outstanding(first + [AppliedAmount(6000, DUE)]) == 0

    def test_time_does_not_matter(self):
        assert self.outstanding([], as_of=DUE + 365 * DAY) == 10_000

    def test_zero_rate_is_plain(self):
        terms = FeeTerms(compounding_period=MONTH, interest_rate=0)
        assert self.outstanding([AppliedAmount(2500, DUE)], DUE + 400 * DAY, terms) == 7500

    def test_overpayment_floors_at_zero(self):
        assert self.outstanding([AppliedAmount(12_000, DUE)]) == 0

    def test_later_application_ignored(self):
        applications = [AppliedAmount(4000, DUE + 100 * DAY)]
        assert self.outstanding(applications, as_of=DUE + 10 * DAY) == 10_000
        assert self.outstanding(applications, as_of=DUE + 100 * DAY) == 6000


class TestCompounding:

    def setup_method(self):
        self.engine = FeeAccrualEngine()
        self.terms = FeeTerms(compounding_period=MONTH, interest_rate=ONE_PERCENT)

    def outstanding(self, as_of, applications=(), principal=10_000, terms=None):
        return self.engine.accrued_outstanding(
            principal=principal,
            due_date=DUE,
            terms=terms or self.terms,
            applications=list(applications),
            as_of=as_of,
        )

    def test_two_periods(self):
        assert self.outstanding(DUE + 61 * DAY) == 10_201

    def test_constant_within_a_period(self):
        assert self.outstanding(DUE + 31 * DAY) == 10_100
        assert self.outstanding(DUE + 59 * DAY) == 10_100

    def test_nothing_accrues_before_due(self):
        assert self.outstanding(DUE - 10 * DAY) == 10_000

    def test_rounds_half_up_once(self):
        # 5000 * 1.01^2 = 5100.5
        assert self.outstanding(DUE + 61 * DAY, principal=5000) == 5101

    def test_partial_payment_keeps_interest(self):
        # 5050 paid after one period retires 5000 of principal
        payments = [AppliedAmount(5050, DUE + 31 * DAY)]
        assert self.outstanding(DUE + 31 * DAY, payments) == 5050
        assert self.outstanding(DUE + 61 * DAY, payments) == 5101

    def test_full_accrued_payment_zeroes(self):
        payments = [AppliedAmount(10_100, DUE + 31 * DAY)]
        assert self.outstanding(DUE + 31 * DAY, payments) == 0
        assert self.outstanding(DUE + 365 * DAY, payments) == 0

    def test_rounded_balance_payment_retires_residue(self):
        # 3 * 1.1 = 3.3 rounds to 3; paying 3 must not leave a residue that
        # compounds back into a visible balance later
        terms = FeeTerms(compounding_period=MONTH, interest_rate=100_000)
        payments = [AppliedAmount(3, DUE + MONTH)]
        assert self.outstanding(DUE + MONTH, principal=3, terms=terms) == 3
        assert self.outstanding(DUE + 20 * MONTH, payments, principal=3, terms=terms) == 0

    def test_applications_in_any_order(self):
        early = AppliedAmount(2000, DUE)
        late = AppliedAmount(3030, DUE + 31 * DAY)
        forward = self.outstanding(DUE + 91 * DAY, [early, late])
        backward = self.outstanding(DUE + 91 * DAY, [late, early])
        assert forward == backward

    def test_emits_engine_trace(self, captured_logs):
        self.outstanding(DUE + 61 * DAY)
        traces = [r for r in captured_logs() if r.get("trace_type") == "INVOICE_ENGINE_TRACE"]
        assert traces
        assert traces[-1]["engine_name"] == "fee_accrual"
        assert len(traces[-1]["input_fingerprint"]) == 16
        assert traces[-1]["result"] == 10_201
