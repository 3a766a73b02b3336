"""Custody Tracker: asset custody movement ledger."""

__version__ = "1.0.0"
