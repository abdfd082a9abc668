"""
invoice_config -- ledger configuration.

``LedgerConfig`` is the typed set of construction options; ``load_config``
reads persistent settings from YAML and layers runtime overrides on top.
The kernel never imports from this package; the Ledger facade translates a
config into kernel collaborators.
"""

from invoice_config.loader import load_config, load_yaml_file, parse_config
from invoice_config.schema import LedgerConfig

__all__ = ["LedgerConfig", "load_config", "load_yaml_file", "parse_config"]
