"""Duplicate detection for bank-sourced transactions."""

from .duplicates import DuplicateMatcher, compute_fingerprint, fingerprint_of
from .strategies import (
    MerchantSimilarity,
    SequenceRatioSimilarity,
    TokenSetSimilarity,
    get_similarity,
    normalize_merchant,
)

__all__ = [
    "DuplicateMatcher",
    "compute_fingerprint",
    "fingerprint_of",
    "MerchantSimilarity",
    "SequenceRatioSimilarity",
    "TokenSetSimilarity",
    "get_similarity",
    "normalize_merchant",
]
