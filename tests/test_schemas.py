import math

import pytest
from pydantic import ValidationError

from form106_extractor.schemas import ExtractedRecord, summarize_validation_error

from conftest import VALID_FIELDS


def _invalid(**overrides) -> ValidationError:
    with pytest.raises(ValidationError) as excinfo:
        ExtractedRecord.model_validate({**VALID_FIELDS, **overrides})
    return excinfo.value


def test_valid_record_serializes_camel_case(record):
    assert record.to_dict() == {
        "employeeId": "123456782",
        "employerId": "987654324",
        "taxYear": 2023,
        "grossIncome": 180000.0,
        "taxDeducted": 25400.5,
        "socialSecurityDeducted": 12000.0,
        "healthInsuranceDeducted": 5600.0,
    }


def test_checksum_is_enforced():
    error = _invalid(employee_id="123456789")
    assert summarize_validation_error(error) == [{"field": "employee_id", "type": "value_error"}]
    assert "123456789" not in str(summarize_validation_error(error))


def test_ids_must_be_nine_digits():
    _invalid(employer_id="39337423")


def test_strict_types():
    _invalid(tax_year="2023")
    _invalid(employee_id=123456782)


def test_year_range():
    _invalid(tax_year=2009)


@pytest.mark.parametrize("value", [-1.0, math.nan, math.inf])
def test_money_must_be_non_negative_and_finite(value):
    _invalid(gross_income=value)


def test_unknown_fields_are_rejected():
    _invalid(bonus=1.0)


def test_missing_field_is_reported():
    fields = dict(VALID_FIELDS)
    del fields["tax_deducted"]
    with pytest.raises(ValidationError) as excinfo:
        ExtractedRecord.model_validate(fields)
    assert summarize_validation_error(excinfo.value) == [{"field": "tax_deducted", "type": "missing"}]


def test_record_is_immutable(record):
    with pytest.raises(ValidationError):
        record.tax_year = 2024
