"""Form 106 wage-statement ingestion: screening, text/OCR extraction, field normalization"""
from .errors import ErrorCode, IngestionFailure, Stage
from .extractor import (
    ExtractionMethod,
    IngestionPipeline,
    IngestionResult,
    IngestOptions,
    ingest_file,
)
from .ocr_extractor import OcrConfidence, OcrOptions, QualityGate
from .schemas import ExtractedRecord
from .versions import PARSER_VERSION

__all__ = [
    "ErrorCode",
    "ExtractedRecord",
    "ExtractionMethod",
    "IngestionFailure",
    "IngestionPipeline",
    "IngestionResult",
    "IngestOptions",
    "OcrConfidence",
    "OcrOptions",
    "PARSER_VERSION",
    "QualityGate",
    "Stage",
    "ingest_file",
]
