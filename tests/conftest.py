import subprocess

import pytest

from form106_extractor.schemas import ExtractedRecord

EMPLOYEE_ID = "123456782"
EMPLOYER_ID = "987654324"

STUB_TEXT = """Form 106 - Annual Salary Statement
Employee ID: 123456782
Employer ID: 987654324
Tax Year: 2023
Gross Income: 180,000.00
Tax Deducted: 25,400.50
Social Security: 12,000
Health Insurance: 5,600
"""

HEBREW_TEXT = """טופס 106 - דו"ח שנתי למשכורת
מספר זהות עובד 123456782
מספר מזהה מעסיק 987654324
שנת מס 2023
משבצת 42 180,000.00
משבצת 36 25,400.50
משבצת 38 12,000
משבצת 39 5,600
"""

VALID_FIELDS = {
    "employee_id": EMPLOYEE_ID,
    "employer_id": EMPLOYER_ID,
    "tax_year": 2023,
    "gross_income": 180000.0,
    "tax_deducted": 25400.5,
    "social_security_deducted": 12000.0,
    "health_insurance_deducted": 5600.0,
}

MINIMAL_PDF = (
    b"%PDF-1.4\n"
    b"1 0 obj\n<< /Type /Catalog /Pages 2 0 R >>\nendobj\n"
    b"2 0 obj\n<< /Type /Pages /Kids [] /Count 0 >>\nendobj\n"
    b"trailer\n<< /Root 1 0 R >>\n%%EOF\n"
)


def completed(returncode=0, stdout=b"", stderr=b""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def pdf_file(tmp_path):
    path = tmp_path / "statement.pdf"
    path.write_bytes(MINIMAL_PDF)
    return path


@pytest.fixture
def record():
    return ExtractedRecord.model_validate(VALID_FIELDS)
