"""Tests for engine input fingerprints."""

from decimal import Decimal

from invoice_engines.accrual import AppliedAmount, FeeTerms
from invoice_engines.tracer import compute_input_fingerprint
from invoice_kernel.domain.values import ApplicationOrder

FIELDS = ("principal", "terms", "applications", "order")


def _fingerprint(**kwargs):
    return compute_input_fingerprint(FIELDS, kwargs)


def test_deterministic():
    inputs = dict(principal=10_000, terms=FeeTerms(2_592_000, 10_000), applications=[AppliedAmount(5, 1)])
    assert _fingerprint(**inputs) == _fingerprint(**inputs)
    assert len(_fingerprint(**inputs)) == 16


def test_dataclass_fields_matter():
    assert _fingerprint(terms=FeeTerms(2_592_000, 10_000)) != _fingerprint(terms=FeeTerms(2_592_000, 20_000))


def test_missing_and_none_are_the_same():
    assert _fingerprint(principal=1) == _fingerprint(principal=1, terms=None)


def test_enum_by_value():
    assert _fingerprint(order=ApplicationOrder.FIFO) == _fingerprint(order=ApplicationOrder.FIFO.value)


def test_decimal_normalized():
    assert _fingerprint(principal=Decimal("1.10")) == _fingerprint(principal=Decimal("1.1"))


def test_bool_is_not_int():
    assert _fingerprint(principal=True) != _fingerprint(principal=1)
