"""Error taxonomy for the ingestion pipeline"""
from enum import Enum
from typing import Any, Dict, Optional

from .redaction import redact
from .versions import PARSER_VERSION


class Stage(str, Enum):
    EXTRACT = "extract"
    NORMALIZE = "normalize"
    VALIDATE = "validate"


class ErrorCode(str, Enum):
    """Closed set of failure codes. Callers map these to user-facing text."""

    # extract: security screening
    INVALID_FORMAT = "INVALID_FORMAT"
    TOO_LARGE = "TOO_LARGE"
    SECURITY_RISK = "SECURITY_RISK"
    # extract: text layer
    TOOL_MISSING = "TOOL_MISSING"
    PASSWORD_REQUIRED = "PASSWORD_REQUIRED"
    PASSWORD_INVALID = "PASSWORD_INVALID"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"
    EXTRACTION_TIMEOUT = "EXTRACTION_TIMEOUT"
    IMAGE_ONLY = "IMAGE_ONLY"
    # extract: OCR
    OCR_TOOL_MISSING = "OCR_TOOL_MISSING"
    OCR_LANGUAGE_MISSING = "OCR_LANGUAGE_MISSING"
    OCR_EXTRACTION_FAILED = "OCR_EXTRACTION_FAILED"
    OCR_EXTRACTION_TIMEOUT = "OCR_EXTRACTION_TIMEOUT"
    OCR_QUALITY_CRITICAL = "OCR_QUALITY_CRITICAL"
    # normalize
    TEXT_GARBLED = "TEXT_GARBLED"
    FIELD_NOT_FOUND = "FIELD_NOT_FOUND"
    FIELD_INVALID = "FIELD_INVALID"
    FIELD_AMBIGUOUS = "FIELD_AMBIGUOUS"
    MANDATORY_FIELD_MISSING = "MANDATORY_FIELD_MISSING"
    # validate
    SCHEMA_INVALID = "SCHEMA_INVALID"
    # any stage, unexpected exception wrapped at the stage boundary
    INTERNAL_ERROR = "INTERNAL_ERROR"


class IngestionFailure(Exception):
    """Typed pipeline failure.

    ``message`` is developer-facing and is passed through ``redact`` on
    construction. ``cause`` is either a dict of safe details (field names,
    return codes, labels) or the original exception; only the former is
    serialized.
    """

    def __init__(self,
                 stage: Stage,
                 code: ErrorCode,
                 message: str,
                 cause: Any = None,
                 parser_version: str = PARSER_VERSION):
        self.stage = Stage(stage)
        self.code = ErrorCode(code)
        self.message = redact(message)
        self.cause = cause
        self.parser_version = parser_version
        super().__init__(self.message)

    def __repr__(self):
        return f"IngestionFailure(stage={self.stage.value}, code={self.code.value}, message={self.message!r})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage.value,
            "code": self.code.value,
            "message": self.message,
            "parserVersion": self.parser_version,
            "cause": _serialize_cause(self.cause),
        }


def _serialize_cause(cause: Any) -> Optional[Any]:
    if cause is None:
        return None
    if isinstance(cause, BaseException):
        # Exception text may quote document content; keep the type only.
        return {"type": type(cause).__name__}
    if isinstance(cause, dict):
        return {str(k): _serialize_cause_value(v) for k, v in cause.items()}
    return {"type": type(cause).__name__}


def _serialize_cause_value(value: Any) -> Any:
    if isinstance(value, (bool, int, float)) or value is None:
        return value
    if isinstance(value, str):
        return redact(value)
    if isinstance(value, (list, tuple)):
        return [_serialize_cause_value(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _serialize_cause_value(v) for k, v in value.items()}
    return type(value).__name__
