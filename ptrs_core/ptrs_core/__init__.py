"""Compliance core for payment-times reporting: tenant-scoped persistence,
metrics derivation, and Small Business Identification reconciliation."""

__version__ = "0.4.0"
