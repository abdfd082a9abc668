"""
Reference and filter helpers shared by services, selectors and the facade.

Callers may pass a plain integer id, a DTO, an ORM row or a facade handle
wherever a record is expected; everything with an integer ``id`` works.
Name and description filters are Python regular expressions applied with
``re.search``.
"""

import re
from collections.abc import Iterable
from typing import Any


def ref_id(reference: Any) -> int:
    """Primary key of a reference."""
    if isinstance(reference, bool):
        raise TypeError("a boolean is not a record reference")
    if isinstance(reference, int):
        return reference
    value = getattr(reference, "id", None)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    raise TypeError(f"not a record reference: {reference!r}")


def ref_ids(references: Iterable[Any]) -> list[int]:
    return [ref_id(reference) for reference in references]


def compile_pattern(pattern: str | re.Pattern | None) -> re.Pattern | None:
    if pattern is None or isinstance(pattern, re.Pattern):
        return pattern
    return re.compile(pattern)
