"""Typed value validation and proximity scoring of field candidates"""
import math
import re
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence, Union

from .config import (
    AMBIGUITY_CONFIDENCE,
    AMBIGUITY_RATIO,
    BEFORE_ANCHOR_WEIGHT,
    MIN_TAX_YEAR,
    PROXIMITY_MAX_DISTANCE,
)

ID_LENGTH = 9


@dataclass(frozen=True)
class FieldCandidate:
    """A typed value found in the text, scored against a field anchor"""
    value: Union[str, int, float]
    position: int
    confidence: float = 0.0
    token: str = ""

    def __repr__(self):
        # Values may be identifiers; keep them out of reprs
        return f"FieldCandidate(position={self.position}, confidence={self.confidence:.3f})"


def max_tax_year() -> int:
    return date.today().year + 1


def is_valid_israeli_id(value: str) -> bool:
    """
    Weighted-digit checksum for 9-digit identifiers.

    Shorter digit strings are zero-padded to 9 digits. Digits are weighted
    1,2,1,2,...; products above 9 have 9 subtracted; the sum must be a
    multiple of 10.
    """
    padded = value.zfill(ID_LENGTH)
    if len(padded) != ID_LENGTH or not re.fullmatch(r"[0-9]{9}", padded):
        return False

    total = 0
    for i, ch in enumerate(padded):
        digit = int(ch) * ((i % 2) + 1)
        if digit > 9:
            digit -= 9
        total += digit
    return total % 10 == 0


def is_valid_tax_year(year: int) -> bool:
    return isinstance(year, int) and not isinstance(year, bool) and MIN_TAX_YEAR <= year <= max_tax_year()


def is_valid_money(value: float) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value >= 0
    )


def parse_israeli_id(text: str) -> Optional[str]:
    """Strip non-digits, zero-pad to 9 digits and verify the checksum."""
    digits = re.sub(r"[^0-9]", "", text)
    if not digits or len(digits) > ID_LENGTH:
        return None
    padded = digits.zfill(ID_LENGTH)
    return padded if is_valid_israeli_id(padded) else None


def parse_year(text: str) -> Optional[int]:
    match = re.search(r"\b(20[0-9]{2})\b", text)
    if not match:
        return None
    year = int(match.group(1))
    return year if is_valid_tax_year(year) else None


def parse_money(text: str) -> Optional[float]:
    """Parse 1,234.56 / 1234.56 / 1234 / 1,234. Negative or non-finite => None."""
    cleaned = text.replace(",", "").strip()
    if not re.fullmatch(r"[0-9]+(?:\.[0-9]+)?", cleaned):
        return None
    value = float(cleaned)
    return value if is_valid_money(value) else None


def proximity_score(anchor_pos: int,
                    anchor_len: int,
                    value_pos: int,
                    max_distance: int = PROXIMITY_MAX_DISTANCE,
                    before_weight: float = BEFORE_ANCHOR_WEIGHT) -> float:
    """
    Score in [0, 1] for a value relative to its anchor.

    Values after the anchor (the usual "Label: value" layout) score
    ``1 - distance / max_distance``. Values before it (right-to-left or
    boxed layouts) get ``before_weight`` of that. Zero beyond
    ``max_distance``.
    """
    anchor_end = anchor_pos + anchor_len
    if value_pos >= anchor_end:
        distance = value_pos - anchor_end
        weight = 1.0
    else:
        distance = anchor_pos - value_pos
        weight = before_weight

    if distance < 0 or distance > max_distance:
        return 0.0
    return (1.0 - distance / max_distance) * weight


class ScorerValidator:
    """Scores candidates against an anchor and selects the best one"""

    def __init__(self,
                 ambiguity_confidence: float = AMBIGUITY_CONFIDENCE,
                 ambiguity_ratio: float = AMBIGUITY_RATIO):
        self.ambiguity_confidence = ambiguity_confidence
        self.ambiguity_ratio = ambiguity_ratio

    def score_candidates(self,
                         candidates: Sequence[FieldCandidate],
                         anchor_pos: int,
                         anchor_len: int,
                         max_distance: int = PROXIMITY_MAX_DISTANCE) -> List[FieldCandidate]:
        """Attach proximity confidence, dropping candidates out of range."""
        scored = []
        for candidate in candidates:
            score = proximity_score(anchor_pos, anchor_len, candidate.position, max_distance)
            if score > 0:
                scored.append(FieldCandidate(
                    value=candidate.value,
                    position=candidate.position,
                    confidence=score,
                    token=candidate.token,
                ))
        return scored

    def select_best_candidate(self, scored: Sequence[FieldCandidate]) -> Optional[FieldCandidate]:
        """Highest confidence wins; the earliest position breaks ties."""
        if not scored:
            return None
        return max(scored, key=lambda c: (c.confidence, -c.position))

    def is_ambiguous(self, best: FieldCandidate, scored: Sequence[FieldCandidate]) -> bool:
        """
        Only a low-confidence winner can be ambiguous: it is when another
        candidate scores within ``ambiguity_ratio`` of it.
        """
        if best.confidence >= self.ambiguity_confidence:
            return False
        threshold = best.confidence * self.ambiguity_ratio
        return any(
            c.confidence >= threshold and c.position != best.position
            for c in scored
        )
