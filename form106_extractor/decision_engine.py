"""Field extraction strategies and the normalizer that runs them in order"""
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .candidate_generator import (
    EMPLOYEE_ID,
    EMPLOYER_ID,
    GROSS_INCOME,
    HEALTH_INSURANCE_DEDUCTED,
    ID_FIELDS,
    MANDATORY_FIELDS,
    SOCIAL_SECURITY_DEDUCTED,
    TAX_DEDUCTED,
    TAX_YEAR,
    CandidateGenerator,
)
from .config import PROXIMITY_MAX_DISTANCE, YEAR_MAX_DISTANCE
from .errors import ErrorCode, IngestionFailure, Stage
from .preprocessor import Preprocessor
from .scorer_validator import FieldCandidate, ScorerValidator, parse_israeli_id, parse_money
from .text_extractor import ExtractedText
from .versions import NORMALIZER_VERSION

logger = logging.getLogger(__name__)


@dataclass
class StrategyResult:
    """Either a complete record or, per missing field, why it was missed"""
    record: Optional[Dict[str, Any]] = None
    missing: Dict[str, ErrorCode] = field(default_factory=dict)
    strategy: Optional[str] = None

    @property
    def matched(self) -> bool:
        return self.record is not None


class FieldStrategy(ABC):
    """One way of reading all mandatory fields out of statement text"""

    name = "strategy"

    @abstractmethod
    def parse(self, text: str) -> StrategyResult:
        raise NotImplementedError


class LabeledLineStrategy(FieldStrategy):
    """Exact ``Label: value`` lines with English labels, all seven required"""

    name = "labeled_lines"

    LABELS = {
        EMPLOYEE_ID: re.compile(r"Employee ID:\s*([0-9]+)", re.IGNORECASE),
        EMPLOYER_ID: re.compile(r"Employer ID:\s*([0-9]+)", re.IGNORECASE),
        TAX_YEAR: re.compile(r"Tax Year:\s*([0-9]+)", re.IGNORECASE),
        GROSS_INCOME: re.compile(r"Gross Income:\s*([0-9,]+(?:\.[0-9]+)?)", re.IGNORECASE),
        TAX_DEDUCTED: re.compile(r"Tax Deducted:\s*([0-9,]+(?:\.[0-9]+)?)", re.IGNORECASE),
        SOCIAL_SECURITY_DEDUCTED: re.compile(r"Social Security:\s*([0-9,]+(?:\.[0-9]+)?)", re.IGNORECASE),
        HEALTH_INSURANCE_DEDUCTED: re.compile(r"Health Insurance:\s*([0-9,]+(?:\.[0-9]+)?)", re.IGNORECASE),
    }

    def parse(self, text: str) -> StrategyResult:
        raw = {}
        for field_name, pattern in self.LABELS.items():
            match = pattern.search(text)
            if not match:
                return StrategyResult(missing={field_name: ErrorCode.FIELD_NOT_FOUND})
            raw[field_name] = match.group(1)

        record: Dict[str, Any] = {}
        for field_name in ID_FIELDS:
            record[field_name] = parse_israeli_id(raw[field_name])
        # Year range is left to schema validation
        record[TAX_YEAR] = int(raw[TAX_YEAR]) if len(raw[TAX_YEAR]) <= 4 else None
        for field_name in (GROSS_INCOME, TAX_DEDUCTED, SOCIAL_SECURITY_DEDUCTED, HEALTH_INSURANCE_DEDUCTED):
            record[field_name] = parse_money(raw[field_name])

        invalid = {name: ErrorCode.FIELD_INVALID for name, value in record.items() if value is None}
        if invalid:
            return StrategyResult(missing=invalid)
        return StrategyResult(record=record)


class AnchorProximityStrategy(FieldStrategy):
    """
    Locate each field's label, then take the closest well-typed value.

    Values after the label outweigh values before it; this mirrors the
    label/value layout of this one form family and is not a general rule.
    """

    name = "anchor_proximity"

    def __init__(self,
                 generator: Optional[CandidateGenerator] = None,
                 scorer: Optional[ScorerValidator] = None):
        self.generator = generator or CandidateGenerator()
        self.scorer = scorer or ScorerValidator()

    def max_distance(self, field_name: str) -> int:
        return YEAR_MAX_DISTANCE if field_name == TAX_YEAR else PROXIMITY_MAX_DISTANCE

    def scored_candidates(self, text: str, field_name: str) -> Optional[List[FieldCandidate]]:
        """Candidates scored against the field's anchor; None when no anchor."""
        anchor = self.generator.find_anchor(text, field_name)
        if anchor is None:
            return None
        anchor_pos, anchor_len = anchor
        candidates = self.generator.generate_candidates(text, field_name)
        return self.scorer.score_candidates(candidates, anchor_pos, anchor_len, self.max_distance(field_name))

    def extract_field(self, text: str, field_name: str) -> Optional[FieldCandidate]:
        """
        Best candidate for one field, or None when there is no anchor or no
        candidate within range.

        Raises:
            IngestionFailure: FIELD_AMBIGUOUS
        """
        scored = self.scored_candidates(text, field_name)
        if not scored:
            return None
        best = self.scorer.select_best_candidate(scored)
        if self.scorer.is_ambiguous(best, scored):
            raise IngestionFailure(
                stage=Stage.NORMALIZE,
                code=ErrorCode.FIELD_AMBIGUOUS,
                message=f"Multiple candidates found for field '{field_name}' with similar confidence",
                cause={"field": field_name},
            )
        return best

    def parse(self, text: str) -> StrategyResult:
        record: Dict[str, Any] = {}
        missing: Dict[str, ErrorCode] = {}
        for field_name in MANDATORY_FIELDS:
            best = self.extract_field(text, field_name)
            if best is None:
                missing[field_name] = ErrorCode.FIELD_NOT_FOUND
            elif best.value is None:
                missing[field_name] = ErrorCode.FIELD_INVALID
            else:
                record[field_name] = best.value
                logger.debug("Field %s resolved (confidence %.3f)", field_name, best.confidence)
        if missing:
            return StrategyResult(missing=missing)
        return StrategyResult(record=record)


def default_strategies() -> List[FieldStrategy]:
    return [LabeledLineStrategy(), AnchorProximityStrategy()]


class DecisionEngine:
    """Normalizer: garbled check, then strategies in order until one matches"""

    VERSION = NORMALIZER_VERSION

    def __init__(self,
                 strategies: Optional[Sequence[FieldStrategy]] = None,
                 preprocessor: Optional[Preprocessor] = None):
        self.strategies = list(strategies) if strategies is not None else default_strategies()
        self.preprocessor = preprocessor or Preprocessor()

    def normalize(self, extracted: ExtractedText) -> Dict[str, Any]:
        """
        Turn extracted text into the seven mandatory fields.

        Deterministic: the same text always gives the same record. Errors
        carry field names only, never document text.

        Raises:
            IngestionFailure: TEXT_GARBLED, FIELD_AMBIGUOUS or MANDATORY_FIELD_MISSING
        """
        return self.extract(extracted).record

    def extract(self, extracted: ExtractedText) -> StrategyResult:
        """Like ``normalize``, but also names the strategy that matched"""
        text = extracted.raw

        if self.preprocessor.is_text_garbled(text):
            raise IngestionFailure(
                stage=Stage.NORMALIZE,
                code=ErrorCode.TEXT_GARBLED,
                message="Extracted text appears to be CID-garbled. OCR may be required.",
            )

        result = StrategyResult()
        for strategy in self.strategies:
            result = strategy.parse(text)
            if result.matched:
                logger.info("Fields extracted with strategy %s", strategy.name)
                return StrategyResult(record=result.record, strategy=strategy.name)
            logger.debug("Strategy %s: no match (%d field(s) missed)", strategy.name, len(result.missing))

        # Report what the last (most lenient) strategy could not find
        missing = [name for name in MANDATORY_FIELDS if name in result.missing] or list(MANDATORY_FIELDS)
        raise IngestionFailure(
            stage=Stage.NORMALIZE,
            code=ErrorCode.MANDATORY_FIELD_MISSING,
            message=f"Required fields not found: {', '.join(missing)}",
            cause={
                "fields": missing,
                "reasons": {name: result.missing.get(name, ErrorCode.FIELD_NOT_FOUND).value for name in missing},
            },
        )
