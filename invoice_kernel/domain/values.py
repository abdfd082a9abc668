"""
Value objects for the invoice ledger.

Responsibility:
    Small immutable types that cross the ledger boundary: the tagged
    ``Payload`` used for charge payloads and every PII field, the
    ``LifecycleState`` of charges and payments, and the ``ApplicationOrder``
    used by the payment application engine.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Imported by services, engines and
    the facade.

Invariants enforced:
    - A Payload's data is JSON-compatible and normalized at construction
      (tuples become lists, keys become strings), so what you store is
      exactly what you read back.
    - Canonical JSON (sorted keys, compact separators) is the only wire form,
      which makes ciphertext inputs deterministic.

Failure modes:
    - ValueError on non-JSON data or an unknown application order.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class Payload:
    """
    Tagged structured value.

    ``kind`` names what the value is ("address", "identification",
    "counterparty", "sku", ...); ``data`` is opaque to the ledger.
    """

    data: Any
    kind: str = "json"
    _canonical: str = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.kind, str) or not self.kind:
            raise ValueError("Payload kind must be a non-empty string")
        try:
            canonical = json.dumps(
                self.data, sort_keys=True, separators=(",", ":"), allow_nan=False
            )
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Payload data is not JSON-compatible: {exc}") from exc
        object.__setattr__(self, "data", json.loads(canonical))
        object.__setattr__(self, "_canonical", canonical)

    def __hash__(self) -> int:
        return hash((self.kind, self._canonical))

    @classmethod
    def of(cls, value: Any, kind: str = "json") -> Payload:
        """Wrap a raw value; an existing Payload passes through unchanged."""
        if isinstance(value, Payload):
            return value
        return cls(data=value, kind=kind)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "data": self.data}

    @classmethod
    def from_dict(cls, value: dict[str, Any]) -> Payload:
        try:
            return cls(data=value["data"], kind=value["kind"])
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Not a tagged payload: {value!r}") from exc

    def to_json(self) -> str:
        return json.dumps(
            {"kind": self.kind, "data": self.data},
            sort_keys=True,
            separators=(",", ":"),
        )

    @classmethod
    def from_json(cls, text: str | bytes) -> Payload:
        try:
            return cls.from_dict(json.loads(text))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Payload is not valid JSON: {exc}") from exc

    def get(self, key: str, default: Any = None) -> Any:
        """Convenience lookup when data is a mapping."""
        if isinstance(self.data, dict):
            return self.data.get(key, default)
        return default


class LifecycleState(str, Enum):
    """Soft-delete state of a Charge or Payment."""

    ACTIVE = "active"
    INACTIVE = "inactive"

    @classmethod
    def of(cls, active: bool) -> LifecycleState:
        return cls.ACTIVE if active else cls.INACTIVE


class ApplicationOrder(str, Enum):
    """Order in which a payment walks its target charges."""

    FIFO = "fifo"  # Earliest due date first
    LIFO = "lifo"  # Latest due date first

    @classmethod
    def parse(cls, value: ApplicationOrder | str) -> ApplicationOrder:
        if isinstance(value, ApplicationOrder):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown application order {value!r}; expected FIFO or LIFO"
            ) from None
