"""
Module: invoice_kernel.db.types
Responsibility: Annotated column type aliases and the fixed-point helpers
    every model, engine and service shares.  Centralizes the minor-unit,
    interest-rate and conversion-basis scales and the one sanctioned rounding
    rule so that no two call sites can disagree.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, selectors/ and invoice_engines.  MUST NOT import from any of
    those layers.

Invariants enforced:
    - No floats.  Amounts are integer minor units; rates and bases are
      integers over an implied scale.
    - round_minor() is the ONLY rounding function for monetary results
      (ROUND_HALF_UP to the minor unit).

Failure modes:
    - ValueError from scale_rate() when a rate is negative or not exactly
      representable at RATE_SCALE.  Callers translate this to their own
      typed error.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import BigInteger, String, Text

# Monetary amount as an integer count of minor units
Amount = Annotated[int, BigInteger]

# Epoch seconds
Timestamp = Annotated[int, BigInteger]

# Short identifier strings (denomination codes and symbols)
ShortCode = Annotated[str, String(50)]

# Descriptions and names (unique double-submit guards live here)
LongText = Annotated[str, String(4000)]

# Encrypted PII, base64 text
Ciphertext = Annotated[str, Text]


# Interest rates are integers over RATE_SCALE: "0.01" -> 10000
RATE_SCALE = 1_000_000

# Conversion bases are integers over BASIS_SCALE: value_in_unit = amount * basis / 1000
BASIS_SCALE = 1000

DEFAULT_ROUNDING = ROUND_HALF_UP

# Working precision for accrual arithmetic; rounding happens once at the end
ACCRUAL_PRECISION = 60


def round_minor(value: Decimal, rounding: str = DEFAULT_ROUNDING) -> int:
    """
    Round a Decimal to a whole number of minor units.

    This is the ONLY sanctioned rounding function for monetary results.
    """
    return int(value.quantize(Decimal(1), rounding=rounding))


def floor_div(numerator: int, denominator: int) -> int:
    """Integer division rounded toward negative infinity."""
    return numerator // denominator


def ceil_div(numerator: int, denominator: int) -> int:
    """Integer division rounded toward positive infinity."""
    return -((-numerator) // denominator)


def scale_rate(value: Decimal | str | int) -> int:
    """
    Convert an interest rate to its fixed-point integer form.

    Ints are taken as already scaled; Decimals and strings are fractions
    ("0.01" is one percent per period).

    Raises:
        ValueError: negative rate, unparseable input, or more precision than
            RATE_SCALE can hold.
    """
    if isinstance(value, bool):
        raise ValueError("interest rate must be numeric")
    if isinstance(value, int):
        scaled = value
    else:
        try:
            rate = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValueError(f"not a number: {value!r}") from exc
        if not rate.is_finite():
            raise ValueError(f"not a finite number: {value!r}")
        exact = rate * RATE_SCALE
        if exact != exact.to_integral_value():
            raise ValueError(
                f"more precision than 1/{RATE_SCALE} per period"
            )
        scaled = int(exact)
    if scaled < 0:
        raise ValueError("interest rate cannot be negative")
    return scaled


def unscale_rate(scaled: int) -> Decimal:
    """Fixed-point rate back to a Decimal fraction."""
    return Decimal(scaled) / Decimal(RATE_SCALE)
