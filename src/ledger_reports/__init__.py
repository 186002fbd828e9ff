"""Ledger report aggregation and WhatsApp delivery."""

__version__ = "0.1.0"
