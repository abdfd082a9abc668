"""
Tests for charges, fee schedules and denominations at the service layer.

Covers:
- Charge creation, payload tagging, reference and uniqueness checks
- Fee schedule validation at creation time
- Archive / activate: idempotent, version bumped once per change
- Version compare-and-swap
- ChargeSelector listing and counted applications
"""

from decimal import Decimal

import pytest

from invoice_kernel.domain.values import LifecycleState, Payload
from invoice_kernel.exceptions import (
    DuplicateDescriptionError,
    InvalidScheduleError,
    OptimisticLockError,
    UnknownReferenceError,
)
from invoice_kernel.models.payment import PaymentApplication
from invoice_kernel.selectors.charge_selector import ChargeSelector
from invoice_kernel.services.charge_service import ChargeService
from invoice_kernel.services.denomination_service import DenominationService
from invoice_kernel.services.fee_schedule_service import FeeScheduleService
from invoice_kernel.services.payment_service import PaymentService

DUE = 1_704_110_400
MONTH = 2_592_000


class TestDenominations:

    def test_resolve_by_code_id_and_dto(self, session, parties):
        service = DenominationService(session)
        assert service.resolve("USD").id == parties.usd.id
        assert service.resolve(parties.usd.id).code == "USD"
        assert service.resolve(parties.usd).code == "USD"

    def test_duplicate_code(self, session, parties):
        with pytest.raises(DuplicateDescriptionError) as exc_info:
            DenominationService(session).create("Dollar again", "USD", "$")
        assert exc_info.value.field == "code"

    def test_find_by_code(self, session, parties):
        service = DenominationService(session)
        assert service.find_by_code("USD") == parties.usd
        assert service.find_by_code("XYZ") is None

    def test_unknown_code(self, session):
        with pytest.raises(UnknownReferenceError):
            DenominationService(session).resolve("XYZ")


class TestFeeSchedules:

    @pytest.mark.parametrize("rate,scaled", [("0.01", 10_000), (Decimal("0.05"), 50_000), (10_000, 10_000)])
    def test_rate_forms(self, session, rate, scaled):
        schedule = FeeScheduleService(session).create(rate, MONTH)
        assert schedule.interest_rate == scaled
        assert schedule.compounding_period == MONTH
        assert schedule.rate == Decimal(scaled) / 1_000_000

    @pytest.mark.parametrize("period", [0, -MONTH, 1.5, True])
    def test_bad_period(self, session, period):
        with pytest.raises(InvalidScheduleError) as exc_info:
            FeeScheduleService(session).create("0.01", period)
        assert exc_info.value.field == "compounding_period"

    @pytest.mark.parametrize("rate", ["-0.01", 0.01, "0.0000001", "lots"])
    def test_bad_rate(self, session, rate):
        with pytest.raises(InvalidScheduleError) as exc_info:
            FeeScheduleService(session).create(rate, MONTH)
        assert exc_info.value.field == "interest_rate"


class TestAddCharge:

    def test_fields(self, session, parties):
        schedule = FeeScheduleService(session).create("0.01", MONTH)
        charge = ChargeService(session).add_charge(
            parties.relation, "Hug #1", {"sku": "big-hug"}, 10_000, "USD", DUE, schedule
        )
        assert charge.relation_id == parties.relation.id
        assert charge.denomination_id == parties.usd.id
        assert charge.payload == Payload.of({"sku": "big-hug"})
        assert charge.fee_schedule_id == schedule.id
        assert charge.active
        assert charge.state is LifecycleState.ACTIVE
        assert charge.version == 0

    def test_payload_kind_preserved(self, session, parties):
        charge = ChargeService(session).add_charge(
            parties.relation, "Hug #1", Payload.of(["a"], "lines"), 1, "USD", DUE
        )
        assert charge.payload.kind == "lines"

    def test_duplicate_description(self, session, parties):
        service = ChargeService(session)
        service.add_charge(parties.relation, "Hug #1", {}, 100, "USD", DUE)
        with pytest.raises(DuplicateDescriptionError):
            service.add_charge(parties.relation, "Hug #1", {}, 200, "USD", DUE)

    @pytest.mark.parametrize(
        "relation,denomination,schedule",
        [(999, "USD", None), (None, "EUR", None), (None, "USD", 999)],
    )
    def test_unknown_references(self, session, parties, relation, denomination, schedule):
        with pytest.raises(UnknownReferenceError):
            ChargeService(session).add_charge(
                relation or parties.relation, "Hug", {}, 100, denomination, DUE, schedule
            )

    @pytest.mark.parametrize("amount", [-1, 1.5, "100", True])
    def test_bad_amount(self, session, parties, amount):
        with pytest.raises(ValueError):
            ChargeService(session).add_charge(parties.relation, "Hug", {}, amount, "USD", DUE)


class TestLifecycle:

    def test_archive_is_idempotent(self, session, parties, captured_logs):
        service = ChargeService(session)
        charge = service.add_charge(parties.relation, "Hug #1", {}, 100, "USD", DUE)

        first = service.set_active([charge], False)
        second = service.set_active([charge], False)

        assert not first[0].active
        assert first[0].version == 1
        assert second[0].version == 1
        archived = [r for r in captured_logs() if r["message"] == "charge_archived"]
        assert len(archived) == 1

    def test_activate(self, session, parties):
        service = ChargeService(session)
        charge = service.add_charge(parties.relation, "Hug #1", {}, 100, "USD", DUE)
        service.set_active([charge], False)
        (restored,) = service.set_active([charge.id], True)
        assert restored.active
        assert restored.version == 2

    def test_unknown_charge(self, session, parties):
        with pytest.raises(UnknownReferenceError):
            ChargeService(session).set_active([999], False)

    def test_stale_version_rejected(self, session, parties):
        service = ChargeService(session)
        charge = service.add_charge(parties.relation, "Hug #1", {}, 100, "USD", DUE)
        assert service.bump_version(charge.id, 0) == 1
        with pytest.raises(OptimisticLockError) as exc_info:
            service.bump_version(charge.id, 0)
        assert exc_info.value.entity_id == str(charge.id)


class TestChargeSelector:

    def test_listing(self, session, parties):
        service = ChargeService(session)
        first = service.add_charge(parties.relation, "Hug #1", {}, 100, "USD", DUE)
        second = service.add_charge(parties.relation, "Kiss #1", {}, 100, "USD", DUE)
        service.set_active([second], False)
        selector = ChargeSelector(session)

        assert [c.id for c in selector.charges(parties.relation)] == [first.id, second.id]
        assert [c.id for c in selector.charges(active_only=True)] == [first.id]
        assert [c.id for c in selector.charges(pattern="^Kiss")] == [second.id]

    def test_get_many_keeps_order(self, session, parties):
        service = ChargeService(session)
        first = service.add_charge(parties.relation, "Hug #1", {}, 100, "USD", DUE)
        second = service.add_charge(parties.relation, "Hug #2", {}, 100, "USD", DUE)
        infos = ChargeSelector(session).get_many([second, first, second.id])
        assert [c.id for c in infos] == [second.id, first.id]

    def test_counted_applications_skip_inactive_payments(self, session, parties):
        charge = ChargeService(session).add_charge(parties.relation, "Hug #1", {}, 1000, "USD", DUE)
        payments = PaymentService(session)
        kept = payments.record_payment("P1", 100, parties.payor_account, parties.payee_account, DUE)
        dropped = payments.record_payment("P2", 200, parties.payor_account, parties.payee_account, DUE)
        for payment, amount in ((kept, 100), (dropped, 200)):
            session.add(
                PaymentApplication(
                    charge_id=charge.id,
                    payment_id=payment.id,
                    amount=amount,
                    source_amount=amount,
                    date=DUE,
                    active=True,
                )
            )
        session.flush()
        payments.set_active(dropped, False)

        counted = ChargeSelector(session).counted_applications([charge])
        assert [a.payment_id for a in counted[charge.id]] == [kept.id]
