"""Candidate generation: field anchors and typed value search"""
import re
from typing import Dict, List, Optional, Pattern, Tuple

from .scorer_validator import (
    FieldCandidate,
    is_valid_israeli_id,
    is_valid_tax_year,
    parse_israeli_id,
    parse_money,
)

EMPLOYEE_ID = "employee_id"
EMPLOYER_ID = "employer_id"
TAX_YEAR = "tax_year"
GROSS_INCOME = "gross_income"
TAX_DEDUCTED = "tax_deducted"
SOCIAL_SECURITY_DEDUCTED = "social_security_deducted"
HEALTH_INSURANCE_DEDUCTED = "health_insurance_deducted"

MANDATORY_FIELDS: Tuple[str, ...] = (
    EMPLOYEE_ID,
    EMPLOYER_ID,
    TAX_YEAR,
    GROSS_INCOME,
    TAX_DEDUCTED,
    SOCIAL_SECURITY_DEDUCTED,
    HEALTH_INSURANCE_DEDUCTED,
)

ID_FIELDS = (EMPLOYEE_ID, EMPLOYER_ID)
MONEY_FIELDS = (GROSS_INCOME, TAX_DEDUCTED, SOCIAL_SECURITY_DEDUCTED, HEALTH_INSURANCE_DEDUCTED)

# Hebrew label | box number ("משבצת NN") | English label
FIELD_ANCHORS: Dict[str, Pattern] = {
    EMPLOYEE_ID: re.compile(r"מספר\s*זהות\s*עובד|ת\.ז\.\s*עובד|Employee ID", re.IGNORECASE),
    EMPLOYER_ID: re.compile(r"מספר\s*מזהה\s*מעסיק|ח\.פ\.|Employer ID", re.IGNORECASE),
    TAX_YEAR: re.compile(r"שנת\s*מס|Tax Year", re.IGNORECASE),
    GROSS_INCOME: re.compile(r'סה"כ\s*הכנסה\s*ממשכורת|משבצת\s*42|Gross Income', re.IGNORECASE),
    TAX_DEDUCTED: re.compile(r"מס\s*שנוכה|משבצת\s*36|Tax Deducted", re.IGNORECASE),
    SOCIAL_SECURITY_DEDUCTED: re.compile(r"ביטוח\s*לאומי|משבצת\s*38|Social Security", re.IGNORECASE),
    HEALTH_INSURANCE_DEDUCTED: re.compile(r"ביטוח\s*בריאות|משבצת\s*39|Health Insurance", re.IGNORECASE),
}

# Digit patterns use ASCII word boundaries so a Hebrew letter touching a
# number still separates it, as in the printed forms.
ID_PATTERN = re.compile(r"\b[0-9]{1,9}\b", re.ASCII)
YEAR_PATTERN = re.compile(r"\b(20[0-9]{2})\b", re.ASCII)
# Comma-grouped numbers first, then plain numbers with optional decimals
MONEY_PATTERN = re.compile(r"\b[0-9]{1,3}(?:,[0-9]{3})+(?:\.[0-9]+)?|\b[0-9]+(?:\.[0-9]+)?\b", re.ASCII)


class CandidateGenerator:
    """Locates field anchors and typed candidate values"""

    def __init__(self, anchors: Optional[Dict[str, Pattern]] = None):
        self.anchors = dict(FIELD_ANCHORS if anchors is None else anchors)

    def find_anchor(self, text: str, field_name: str) -> Optional[Tuple[int, int]]:
        """Return (position, length) of the first anchor match, or None"""
        match = self.anchors[field_name].search(text)
        if not match:
            return None
        return match.start(), len(match.group(0))

    def generate_candidates(self, text: str, field_name: str) -> List[FieldCandidate]:
        """All well-typed values for a field, in text order"""
        if field_name in ID_FIELDS:
            return find_id_candidates(text)
        if field_name == TAX_YEAR:
            return find_year_candidates(text)
        return find_money_candidates(text)


def find_id_candidates(text: str) -> List[FieldCandidate]:
    """1-9 digit runs that pass the identifier checksum once zero-padded"""
    candidates = []
    for match in ID_PATTERN.finditer(text):
        token = match.group(0)
        if is_valid_israeli_id(token):
            candidates.append(FieldCandidate(
                value=parse_israeli_id(token),
                position=match.start(),
                token=token,
            ))
    return candidates


def find_year_candidates(text: str) -> List[FieldCandidate]:
    candidates = []
    for match in YEAR_PATTERN.finditer(text):
        year = int(match.group(1))
        if is_valid_tax_year(year):
            candidates.append(FieldCandidate(value=year, position=match.start(), token=match.group(1)))
    return candidates


def find_money_candidates(text: str) -> List[FieldCandidate]:
    """Numeric tokens; unparseable (e.g. overflowing) tokens carry value None."""
    return [
        FieldCandidate(value=parse_money(match.group(0)), position=match.start(), token=match.group(0))
        for match in MONEY_PATTERN.finditer(text)
    ]
