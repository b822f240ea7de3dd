"""Reconciliation workflows and status."""

from .engine import ReconciliationEngine
from .seed import DEMO_USER_ID, seed_demo_data
from .status import build_summary, classify_status, is_edited, needs_review

__all__ = [
    "ReconciliationEngine",
    "DEMO_USER_ID",
    "seed_demo_data",
    "build_summary",
    "classify_status",
    "is_edited",
    "needs_review",
]
