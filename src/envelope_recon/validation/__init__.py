"""Allocation validation."""

from .allocations import (
    allocation_total,
    check_allocations,
    net_by_envelope,
    normalize_allocations,
    validate_allocations,
)

__all__ = [
    "allocation_total",
    "check_allocations",
    "net_by_envelope",
    "normalize_allocations",
    "validate_allocations",
]
