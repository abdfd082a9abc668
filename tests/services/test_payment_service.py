"""
Tests for PaymentService, PaymentSelector and PaymentApplicationService.

Covers:
- Recording payments: validation, uniqueness, references
- Incremental application across calls; excess stays unapplied
- Inactive payments cannot be applied and stop counting
- Inactive charges are treated as having nothing outstanding
- Write-offs use the identity conversion
"""

from types import SimpleNamespace

import pytest

from invoice_kernel.exceptions import (
    DuplicateDescriptionError,
    NoOutstandingChargesError,
    PaymentInactiveError,
    UnderfundedApplicationError,
    UnknownReferenceError,
)
from invoice_kernel.selectors.payment_selector import PaymentSelector
from invoice_kernel.services.charge_service import ChargeService
from invoice_kernel.services.conversion_service import ConversionService
from invoice_kernel.services.payment_service import PaymentService
from invoice_services.application_service import PaymentApplicationService
from invoice_services.outstanding_service import OutstandingService

DUE = 1_704_110_400


@pytest.fixture
def services(session):
    outstanding = OutstandingService(session, ConversionService(session))
    return SimpleNamespace(
        charges=ChargeService(session),
        payments=PaymentService(session),
        reads=PaymentSelector(session),
        outstanding=outstanding,
        application=PaymentApplicationService(session, outstanding),
    )


class TestRecordPayment:

    def test_fields(self, parties, services):
        payment = services.payments.record_payment(
            "Payment 1", 4000, parties.payor_account, parties.payee_account, DUE
        )
        assert payment.amount == 4000
        assert payment.applied == 0
        assert payment.unapplied == 4000
        assert not payment.is_writeoff

    def test_duplicate_description(self, parties, services):
        services.payments.record_payment("Payment 1", 1, parties.payor_account, parties.payee_account, DUE)
        with pytest.raises(DuplicateDescriptionError):
            services.payments.record_payment(
                "Payment 1", 1, parties.payor_account, parties.payee_account, DUE
            )

    def test_unknown_account(self, parties, services):
        with pytest.raises(UnknownReferenceError) as exc_info:
            services.payments.record_payment("Payment 1", 1, 999, parties.payee_account, DUE)
        assert exc_info.value.entity_type == "Account"

    @pytest.mark.parametrize("amount", [0, -5, 2.5])
    def test_amount_must_be_positive_int(self, parties, services, amount):
        with pytest.raises(ValueError):
            services.payments.record_payment(
                "Payment 1", amount, parties.payor_account, parties.payee_account, DUE
            )

    def test_overdrawn_lines_rejected(self, parties, services):
        charge = services.charges.add_charge(parties.relation, "Hug", {}, 1000, "USD", DUE)
        payment = services.payments.record_payment(
            "Payment 1", 100, parties.payor_account, parties.payee_account, DUE
        )
        line = SimpleNamespace(charge_id=charge.id, amount=200, source_amount=200)
        with pytest.raises(UnderfundedApplicationError):
            services.payments.record_applications(payment, [line], DUE)


class TestApply:

    def test_incremental_application(self, parties, services):
        first = services.charges.add_charge(parties.relation, "Hug #1", {}, 1000, "USD", DUE)
        payment = services.payments.record_payment(
            "Payment 1", 1500, parties.payor_account, parties.payee_account, DUE
        )

        applied = services.application.apply(payment, [first], "FIFO", DUE)
        assert [(a.charge_id, a.amount) for a in applied] == [(first.id, 1000)]
        assert services.payments.unapplied(payment) == 500

        second = services.charges.add_charge(parties.relation, "Hug #2", {}, 1000, "USD", DUE)
        applied = services.application.apply(payment, [first, second], "FIFO", DUE)
        assert [(a.charge_id, a.amount) for a in applied] == [(second.id, 500)]
        assert services.payments.unapplied(payment) == 0
        assert services.outstanding.accrued_outstanding(second, DUE) == 500

        info = services.reads.get(payment)
        assert info.applied == 1500

    def test_version_bumped_per_application(self, parties, services):
        charge = services.charges.add_charge(parties.relation, "Hug #1", {}, 1000, "USD", DUE)
        payment = services.payments.record_payment(
            "Payment 1", 100, parties.payor_account, parties.payee_account, DUE
        )
        services.application.apply(payment, [charge], "FIFO", DUE)
        (locked,) = services.charges.lock([charge])
        assert locked.version == 1

    def test_already_satisfied(self, parties, services):
        charge = services.charges.add_charge(parties.relation, "Hug #1", {}, 100, "USD", DUE)
        payment = services.payments.record_payment(
            "Payment 1", 500, parties.payor_account, parties.payee_account, DUE
        )
        services.application.apply(payment, [charge], "FIFO", DUE)
        with pytest.raises(NoOutstandingChargesError):
            services.application.apply(payment, [charge], "FIFO", DUE)

    def test_inactive_payment(self, parties, services):
        charge = services.charges.add_charge(parties.relation, "Hug #1", {}, 100, "USD", DUE)
        payment = services.payments.record_payment(
            "Payment 1", 500, parties.payor_account, parties.payee_account, DUE
        )
        services.payments.set_active(payment, False)
        with pytest.raises(PaymentInactiveError):
            services.application.apply(payment, [charge], "FIFO", DUE)

    def test_deactivated_payment_stops_counting(self, parties, services):
        charge = services.charges.add_charge(parties.relation, "Hug #1", {}, 1000, "USD", DUE)
        payment = services.payments.record_payment(
            "Payment 1", 400, parties.payor_account, parties.payee_account, DUE
        )
        services.application.apply(payment, [charge], "FIFO", DUE)
        assert services.outstanding.accrued_outstanding(charge, DUE) == 600

        services.payments.set_active(payment, False)
        assert services.outstanding.accrued_outstanding(charge, DUE) == 1000
        # the trail is history, not erased
        assert len(services.reads.applications(charge=charge)) == 1

        services.payments.set_active(payment, True)
        assert services.outstanding.accrued_outstanding(charge, DUE) == 600

    def test_inactive_charge_is_skipped(self, parties, services):
        archived = services.charges.add_charge(parties.relation, "Hug #1", {}, 1000, "USD", DUE)
        live = services.charges.add_charge(parties.relation, "Hug #2", {}, 1000, "USD", DUE + 1)
        services.charges.set_active([archived], False)
        payment = services.payments.record_payment(
            "Payment 1", 500, parties.payor_account, parties.payee_account, DUE
        )
        applied = services.application.apply(payment, [archived, live], "FIFO", DUE)
        assert [a.charge_id for a in applied] == [live.id]

    def test_strict_mode_writes_nothing(self, parties, services):
        charge = services.charges.add_charge(parties.relation, "Hug #1", {}, 1000, "USD", DUE)
        payment = services.payments.record_payment(
            "Payment 1", 500, parties.payor_account, parties.payee_account, DUE
        )
        with pytest.raises(UnderfundedApplicationError):
            services.application.apply(payment, [charge], "FIFO", DUE, require_full=True)
        assert services.reads.applications(payment=payment) == []

    def test_writeoff_payment(self, parties, services):
        charge = services.charges.add_charge(parties.relation, "Hug #1", {}, 2000, "USD", DUE)
        payment = services.payments.record_payment(
            "Write-off", 2000, parties.payee_account, parties.payee_account, DUE
        )
        assert payment.is_writeoff
        (application,) = services.application.apply(payment, [charge], "FIFO", DUE)
        assert application.amount == 2000
        assert services.outstanding.accrued_outstanding(charge, DUE) == 0


class TestPaymentSelector:

    def test_payments_by_entity(self, parties, services):
        mine = services.payments.record_payment(
            "Payment 1", 10, parties.payor_account, parties.payee_account, DUE
        )
        services.payments.record_payment("Refund 1", 5, parties.payee_account, parties.payor_account, DUE)
        assert [p.id for p in services.reads.payments(parties.payor)] == [mine.id]
        assert len(services.reads.payments()) == 2

    def test_active_only(self, parties, services):
        payment = services.payments.record_payment(
            "Payment 1", 10, parties.payor_account, parties.payee_account, DUE
        )
        services.payments.set_active(payment, False)
        assert services.reads.payments(active_only=True) == []

    def test_unknown_payment(self, services):
        with pytest.raises(UnknownReferenceError):
            services.reads.get(42)
