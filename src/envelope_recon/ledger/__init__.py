"""Envelope balance ledger."""

from .envelope_ledger import EnvelopeLedger

__all__ = ["EnvelopeLedger"]
