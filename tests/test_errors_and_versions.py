import json

from form106_extractor.errors import ErrorCode, IngestionFailure, Stage
from form106_extractor.redaction import redact
from form106_extractor.versions import (
    COMPONENT_VERSIONS,
    PARSER_VERSION,
    PIPELINE_VERSION,
    compose_parser_version,
)


def test_redact_ids_and_emails():
    assert redact("id 123456782 mail a.b@example.co.il") == "id [REDACTED_ID] mail [REDACTED_EMAIL]"
    assert redact("year 2023 amount 180,000") == "year 2023 amount 180,000"
    assert redact("") == ""


def test_failure_serializes_safely():
    failure = IngestionFailure(
        stage=Stage.NORMALIZE,
        code=ErrorCode.FIELD_AMBIGUOUS,
        message="Value 123456782 is ambiguous",
        cause={"field": "employee_id", "note": "saw 987654324", "page": 2},
    )
    payload = failure.to_dict()

    assert payload == {
        "stage": "normalize",
        "code": "FIELD_AMBIGUOUS",
        "message": "Value [REDACTED_ID] is ambiguous",
        "parserVersion": PARSER_VERSION,
        "cause": {"field": "employee_id", "note": "saw [REDACTED_ID]", "page": 2},
    }
    json.dumps(payload)


def test_exception_cause_keeps_type_only():
    failure = IngestionFailure(Stage.EXTRACT, ErrorCode.INTERNAL_ERROR, "boom", ValueError("text 123456782"))
    assert failure.to_dict()["cause"] == {"type": "ValueError"}
    assert "123456782" not in repr(failure)


def test_codes_accept_plain_strings():
    failure = IngestionFailure("extract", "IMAGE_ONLY", "scanned")
    assert failure.stage is Stage.EXTRACT
    assert failure.code is ErrorCode.IMAGE_ONLY
    assert failure.cause is None


def test_parser_version_names_every_component():
    assert PARSER_VERSION.startswith(PIPELINE_VERSION + "+")
    for name, version in COMPONENT_VERSIONS.items():
        assert f"{name}.{version}" in PARSER_VERSION


def test_component_bump_changes_parser_version():
    bumped = dict(COMPONENT_VERSIONS, normalize="9.9.9")
    assert compose_parser_version(PIPELINE_VERSION, bumped) != PARSER_VERSION
    assert compose_parser_version("2.0.0", {"a": "1"}) == "2.0.0+a.1"
