"""
LedgerConfig schema.

The typed form of the construction options a Ledger accepts.  Persistent
settings come from YAML through the loader; runtime collaborators
(template, quoter) and the PII passphrase are only ever supplied in code.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any

MEMORY = ":memory:"

# Settings that may appear in a YAML file
FILE_KEYS = frozenset(
    {
        "storage_location",
        "key_path",
        "unit_of_account",
        "require_full_satisfaction",
        "log_level",
        "echo_sql",
    }
)

# Runtime-only collaborators and secrets
RUNTIME_KEYS = frozenset({"template", "quoter", "passphrase"})


@dataclass(frozen=True)
class LedgerConfig:
    """
    Ledger construction options.

    Attributes:
        storage_location: ":memory:", a filesystem path, or a SQLAlchemy URL.
        key_path: PEM private key for PII fields; None uses the default
            location when a key exists there.
        unit_of_account: Denomination code used as conversion pivot and
            default reporting denomination.
        require_full_satisfaction: Refuse payments that cannot satisfy
            every target charge.
        log_level: Passed to configure_logging(); None leaves logging alone.
        echo_sql: SQLAlchemy statement echo.
        template: Consumed by generate(); an object with ``render`` or a callable.
        quoter: External rate source for the conversion table.
        passphrase: PII secret, or a zero-argument callable returning it.
            Never read from a file.
    """

    storage_location: str = MEMORY
    key_path: str | None = None
    unit_of_account: str | None = None
    require_full_satisfaction: bool = False
    log_level: str | None = None
    echo_sql: bool = False
    template: Any = field(default=None, repr=False, compare=False)
    quoter: Any = field(default=None, repr=False, compare=False)
    passphrase: Any = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.require_full_satisfaction, bool):
            raise ValueError("require_full_satisfaction must be true or false")
        if not isinstance(self.echo_sql, bool):
            raise ValueError("echo_sql must be true or false")
        if not self.storage_location:
            raise ValueError("storage_location cannot be empty")

    @classmethod
    def option_names(cls) -> frozenset[str]:
        return frozenset(f.name for f in fields(cls))

    def with_overrides(self, **overrides: Any) -> LedgerConfig:
        """A copy with the given options replaced.  Unknown names raise ValueError."""
        unknown = set(overrides) - self.option_names()
        if unknown:
            raise ValueError(f"Unknown ledger option(s): {', '.join(sorted(unknown))}")
        return replace(self, **overrides)
