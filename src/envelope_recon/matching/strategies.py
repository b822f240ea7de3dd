"""
Merchant similarity strategies for duplicate detection.
Each strategy scores two merchant strings between 0.0 and 1.0.
"""

from abc import ABC, abstractmethod
from difflib import SequenceMatcher
import re

from ..utils.exceptions import ConfigurationError


def normalize_merchant(merchant: str) -> str:
    """Lowercase, drop punctuation and collapse whitespace."""
    text = (merchant or "").lower()
    text = re.sub(r"[^a-z0-9\s]", "", text)
    return " ".join(text.split())


class MerchantSimilarity(ABC):
    """Abstract base class for merchant similarity strategies."""

    name = ""

    @abstractmethod
    def score(self, left: str, right: str) -> float:
        """
        Score how alike two merchant strings are.

        Args:
            left: First merchant text (raw)
            right: Second merchant text (raw)

        Returns:
            Similarity ratio from 0.0 (unrelated) to 1.0 (identical)
        """
        pass


class SequenceRatioSimilarity(MerchantSimilarity):
    """Character-level similarity using difflib's ratio."""

    name = "sequence"

    def score(self, left: str, right: str) -> float:
        a, b = normalize_merchant(left), normalize_merchant(right)
        if not a or not b:
            return 0.0
        return SequenceMatcher(None, a, b).ratio()


class TokenSetSimilarity(MerchantSimilarity):
    """
    Word-level Jaccard similarity.

    Less sensitive than the sequence ratio to banks appending branch or
    city names after the merchant.
    """

    name = "token_set"

    def score(self, left: str, right: str) -> float:
        a = set(normalize_merchant(left).split())
        b = set(normalize_merchant(right).split())
        if not a or not b:
            return 0.0
        return len(a & b) / len(a | b)


_STRATEGIES: dict[str, type[MerchantSimilarity]] = {
    SequenceRatioSimilarity.name: SequenceRatioSimilarity,
    TokenSetSimilarity.name: TokenSetSimilarity,
}


def get_similarity(name: str) -> MerchantSimilarity:
    """
    Build a similarity strategy by its configured name.

    Raises:
        ConfigurationError: If no strategy has that name
    """
    try:
        return _STRATEGIES[name]()
    except KeyError:
        known = ", ".join(sorted(_STRATEGIES))
        raise ConfigurationError(
            f"Unknown similarity strategy '{name}' (expected one of: {known})"
        ) from None
