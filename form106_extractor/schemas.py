"""Strict schema for the extracted Form 106 record"""
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .scorer_validator import (
    MIN_TAX_YEAR,
    is_valid_israeli_id,
    is_valid_money,
    is_valid_tax_year,
    max_tax_year,
)
from .versions import SCHEMA_VERSION


class ExtractedRecord(BaseModel):
    """Mandatory fields of Form 106 needed to file Form 135"""

    model_config = ConfigDict(strict=True, extra="forbid", frozen=True, hide_input_in_errors=True)

    # Identification
    employee_id: str  # Box 1: מספר זהות עובד
    employer_id: str  # Box 2: מספר מזהה מעסיק
    tax_year: int  # שנת מס

    # Income
    gross_income: float  # סה"כ תשלומים

    # Deductions
    tax_deducted: float  # מס הכנסה
    social_security_deducted: float  # ביטוח לאומי
    health_insurance_deducted: float  # דמי בריאות

    @field_validator("employee_id", "employer_id")
    @classmethod
    def _checksum(cls, value: str) -> str:
        if len(value) != 9 or not is_valid_israeli_id(value):
            raise ValueError("Invalid Israeli ID")
        return value

    @field_validator("tax_year")
    @classmethod
    def _year_range(cls, value: int) -> int:
        if not is_valid_tax_year(value):
            raise ValueError(f"Tax year must be between {MIN_TAX_YEAR} and {max_tax_year()}")
        return value

    @field_validator("gross_income", "tax_deducted", "social_security_deducted", "health_insurance_deducted")
    @classmethod
    def _money(cls, value: float) -> float:
        if not is_valid_money(value):
            raise ValueError("Must be a non-negative finite number")
        return value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "employeeId": self.employee_id,
            "employerId": self.employer_id,
            "taxYear": self.tax_year,
            "grossIncome": self.gross_income,
            "taxDeducted": self.tax_deducted,
            "socialSecurityDeducted": self.social_security_deducted,
            "healthInsuranceDeducted": self.health_insurance_deducted,
        }


def summarize_validation_error(error: ValidationError) -> List[Dict[str, str]]:
    """Locations and error types only; pydantic's own payload may echo input."""
    return [
        {"field": ".".join(str(part) for part in item["loc"]), "type": item["type"]}
        for item in error.errors(include_input=False, include_url=False)
    ]


__all__ = ["ExtractedRecord", "SCHEMA_VERSION", "summarize_validation_error"]
