"""
Configuration Loader (``invoice_config.loader``).

Responsibility
--------------
Load a ledger configuration file (YAML) into a ``LedgerConfig``.

Invariants enforced
-------------------
* Unknown keys raise ``ValueError`` naming the key; there are no silent
  typos in a ledger configuration.
* Secrets and runtime collaborators (``passphrase``, ``template``,
  ``quoter``) are refused from files; they are supplied in code.
* Keyword overrides win over file values.

Failure modes
-------------
* Missing file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Top level not a mapping, unknown or forbidden keys  -> ``ValueError``.

Example file::

    storage_location: ~/.invoice/ledger.db
    key_path: ~/.invoice/keys/invoice_key
    unit_of_account: USD
    require_full_satisfaction: false
    log_level: INFO
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from invoice_config.schema import FILE_KEYS, RUNTIME_KEYS, LedgerConfig


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def parse_config(data: dict[str, Any], source: str = "<config>") -> LedgerConfig:
    forbidden = sorted(set(data) & RUNTIME_KEYS)
    if forbidden:
        raise ValueError(
            f"{source}: {', '.join(forbidden)} cannot be set from a file; pass it at runtime"
        )
    unknown = sorted(set(data) - FILE_KEYS)
    if unknown:
        raise ValueError(f"{source}: unknown configuration key(s): {', '.join(unknown)}")

    values = dict(data)
    for key in ("storage_location", "key_path"):
        if values.get(key) is not None and values[key] != ":memory:" and "://" not in str(values[key]):
            values[key] = str(Path(str(values[key])).expanduser())
    return LedgerConfig(**values)


def load_config(path: str | Path | None = None, **overrides: Any) -> LedgerConfig:
    """
    Build a LedgerConfig from an optional YAML file plus keyword overrides.

    Overrides may include runtime-only options (passphrase, template, quoter).
    """
    config = LedgerConfig()
    if path is not None:
        config = parse_config(load_yaml_file(Path(path)), source=str(path))
    if overrides:
        config = config.with_overrides(**overrides)
    return config
