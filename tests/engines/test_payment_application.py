"""
Tests for the Payment Application Engine.

Covers:
- FIFO and LIFO splits, tie-breaking by charge id
- Overpayment stays unapplied
- Strict (require_full) mode
- Conversion factors: floor in the charge denomination, ceiling in the
  payment denomination
- Error handling
"""

import pytest

from invoice_engines.application import (
    ApplicationLine,
    ApplicationTarget,
    PaymentApplicationEngine,
)
from invoice_kernel.domain.values import ApplicationOrder
from invoice_kernel.exceptions import NoOutstandingChargesError, UnderfundedApplicationError

T1 = 1_704_110_400
T2 = T1 + 86_400


def two_charges():
    return [
        ApplicationTarget(charge_id=1, due_date=T1, outstanding=5000),
        ApplicationTarget(charge_id=2, due_date=T2, outstanding=7000),
    ]


class TestOrdering:

    def setup_method(self):
        self.engine = PaymentApplicationEngine()

    def test_fifo_split(self):
        plan = self.engine.plan(amount=9000, targets=two_charges(), order=ApplicationOrder.FIFO)

        assert plan.lines == (
            ApplicationLine(charge_id=1, amount=5000, source_amount=5000, remaining=0),
            ApplicationLine(charge_id=2, amount=4000, source_amount=4000, remaining=3000),
        )
        assert plan.consumed == 9000
        assert plan.is_exhausted

    def test_lifo_split(self):
        plan = self.engine.plan(amount=9000, targets=two_charges(), order=ApplicationOrder.LIFO)

        assert plan.charge_ids == (2, 1)
        assert [line.amount for line in plan.lines] == [7000, 2000]
        assert plan.lines[0].is_satisfied
        assert plan.lines[1].remaining == 3000

    def test_order_accepts_strings(self):
        plan = self.engine.plan(amount=9000, targets=two_charges(), order="lifo")
        assert plan.order is ApplicationOrder.LIFO

    def test_input_order_is_irrelevant(self):
        forward = self.engine.plan(amount=9000, targets=two_charges(), order="FIFO")
        backward = self.engine.plan(amount=9000, targets=two_charges()[::-1], order="FIFO")
        assert forward.lines == backward.lines

    @pytest.mark.parametrize("order", ["FIFO", "LIFO"])
    def test_ties_broken_by_ascending_id(self, order):
        targets = [
            ApplicationTarget(charge_id=5, due_date=T1, outstanding=100),
            ApplicationTarget(charge_id=3, due_date=T1, outstanding=100),
        ]
        plan = self.engine.plan(amount=150, targets=targets, order=order)
        assert plan.charge_ids == (3, 5)
        assert [line.amount for line in plan.lines] == [100, 50]

    def test_unknown_order_rejected(self):
        with pytest.raises(ValueError):
            self.engine.plan(amount=100, targets=two_charges(), order="random")


class TestAmounts:

    def setup_method(self):
        self.engine = PaymentApplicationEngine()

    def test_overpayment_left_unapplied(self):
        plan = self.engine.plan(amount=15_000, targets=two_charges(), order="FIFO")
        assert plan.consumed == 12_000
        assert plan.unapplied == 3000
        assert all(line.is_satisfied for line in plan.lines)

    def test_satisfied_targets_get_no_line(self):
        targets = [
            ApplicationTarget(charge_id=1, due_date=T1, outstanding=0),
            ApplicationTarget(charge_id=2, due_date=T2, outstanding=7000),
        ]
        plan = self.engine.plan(amount=1000, targets=targets, order="FIFO")
        assert plan.charge_ids == (2,)

    def test_nothing_outstanding(self):
        targets = [ApplicationTarget(charge_id=1, due_date=T1, outstanding=0)]
        with pytest.raises(NoOutstandingChargesError) as exc_info:
            self.engine.plan(amount=1000, targets=targets, order="FIFO")
        assert exc_info.value.charge_ids == [1]

    def test_zero_amount_plans_nothing(self):
        plan = self.engine.plan(amount=0, targets=two_charges(), order="FIFO")
        assert plan.lines == ()
        assert plan.unapplied == 0

    def test_negative_amount_rejected(self):
        with pytest.raises(ValueError):
            self.engine.plan(amount=-1, targets=two_charges(), order="FIFO")

    def test_require_full_refuses_short_payment(self):
        with pytest.raises(UnderfundedApplicationError) as exc_info:
            self.engine.plan(
                amount=11_000, targets=two_charges(), order="FIFO", require_full=True, payment_id=9
            )
        assert exc_info.value.required == 12_000
        assert exc_info.value.available == 11_000
        assert exc_info.value.payment_id == 9

    def test_require_full_accepts_sufficient_payment(self):
        plan = self.engine.plan(amount=12_000, targets=two_charges(), order="FIFO", require_full=True)
        assert plan.is_exhausted
        assert all(line.is_satisfied for line in plan.lines)


class TestConversion:

    def setup_method(self):
        self.engine = PaymentApplicationEngine()

    def test_factor_applied(self):
        # 1 payment unit buys 1.1 charge units
        target = ApplicationTarget(charge_id=1, due_date=T1, outstanding=550, numerator=11, denominator=10)
        plan = self.engine.plan(amount=1000, targets=[target], order="FIFO")
        assert plan.lines[0].amount == 550
        assert plan.lines[0].source_amount == 500
        assert plan.unapplied == 500

    def test_cost_is_ceiled(self):
        target = ApplicationTarget(charge_id=1, due_date=T1, outstanding=100, numerator=3, denominator=1)
        plan = self.engine.plan(amount=1000, targets=[target], order="FIFO")
        assert plan.lines[0].amount == 100
        assert plan.lines[0].source_amount == 34

    def test_capacity_is_floored(self):
        target = ApplicationTarget(charge_id=1, due_date=T1, outstanding=100, numerator=1, denominator=3)
        plan = self.engine.plan(amount=10, targets=[target], order="FIFO")
        assert plan.lines[0].amount == 3
        assert plan.lines[0].source_amount == 9
        assert plan.unapplied == 1

    def test_too_little_to_buy_a_unit(self):
        target = ApplicationTarget(charge_id=1, due_date=T1, outstanding=100, numerator=1, denominator=3)
        plan = self.engine.plan(amount=2, targets=[target], order="FIFO")
        assert plan.lines == ()
        assert plan.unapplied == 2

    @pytest.mark.parametrize("numerator,denominator", [(0, 1), (1, 0), (-1, 2)])
    def test_non_positive_factor_rejected(self, numerator, denominator):
        with pytest.raises(ValueError):
            ApplicationTarget(
                charge_id=1, due_date=T1, outstanding=1, numerator=numerator, denominator=denominator
            )
