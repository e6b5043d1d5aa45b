"""Incremental op.gg match-history collector with a local per-region cache."""

__version__ = "0.2.0"
