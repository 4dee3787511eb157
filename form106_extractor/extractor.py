"""Main ingestion orchestrator.

A state machine over the stages extract -> normalize -> validate:

    SCREEN -> EXTRACT_TEXT -> NORMALIZE -> VALIDATE -> SUCCESS
                  |               |
                  | image-only    | TEXT_GARBLED
                  v               v
              EXTRACT_OCR -> NORMALIZE -> VALIDATE -> SUCCESS

Every other outcome is FAILURE. The only fallback is text layer -> OCR,
taken at most once and only when enabled.
"""
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from pydantic import ValidationError

from .config import MAX_FILE_SIZE_BYTES
from .decision_engine import DecisionEngine
from .errors import ErrorCode, IngestionFailure, Stage
from .ocr_extractor import OcrConfidence, OcrExtractor, OcrOptions
from .schemas import ExtractedRecord, summarize_validation_error
from .security import SecurityScreener
from .text_extractor import ExtractedText, TextExtractor, is_image_only
from .tool_cache import ToolCache
from .versions import PARSER_VERSION

logger = logging.getLogger(__name__)


class ExtractionMethod(str, Enum):
    TEXT = "text"
    OCR = "ocr"


class PipelineState(Enum):
    SCREEN = "screen"
    EXTRACT_TEXT = "extract_text"
    EXTRACT_OCR = "extract_ocr"
    NORMALIZE = "normalize"
    VALIDATE = "validate"
    SUCCESS = "success"
    FAILURE = "failure"


TERMINAL_STATES = (PipelineState.SUCCESS, PipelineState.FAILURE)

# Stage reported for unexpected exceptions raised inside a state
_STATE_STAGES = {
    PipelineState.SCREEN: Stage.EXTRACT,
    PipelineState.EXTRACT_TEXT: Stage.EXTRACT,
    PipelineState.EXTRACT_OCR: Stage.EXTRACT,
    PipelineState.NORMALIZE: Stage.NORMALIZE,
    PipelineState.VALIDATE: Stage.VALIDATE,
}


@dataclass(frozen=True)
class IngestOptions:
    """Per-call configuration; every field has a documented default"""
    password: Optional[str] = field(default=None, repr=False)
    timeout_s: Optional[float] = None  # text layer timeout; also OCR budget if ocr.timeout_s unset
    enable_ocr_fallback: bool = False
    ocr: Optional[OcrOptions] = None
    max_file_size_bytes: int = MAX_FILE_SIZE_BYTES


@dataclass(frozen=True)
class IngestionResult:
    """Tagged terminal outcome: ``data`` on success, ``error`` on failure"""
    success: bool
    parser_version: str
    data: Optional[ExtractedRecord] = None
    error: Optional[IngestionFailure] = None
    extraction_method: Optional[ExtractionMethod] = None
    confidence: Optional[OcrConfidence] = None
    warnings: Tuple[str, ...] = ()

    @classmethod
    def ok(cls, data: ExtractedRecord, method: ExtractionMethod,
           confidence: Optional[OcrConfidence] = None, warnings=()) -> "IngestionResult":
        return cls(
            success=True,
            parser_version=PARSER_VERSION,
            data=data,
            extraction_method=method,
            confidence=confidence,
            warnings=tuple(warnings),
        )

    @classmethod
    def failed(cls, error: IngestionFailure,
               method: Optional[ExtractionMethod] = None) -> "IngestionResult":
        return cls(
            success=False,
            parser_version=error.parser_version,
            error=error,
            extraction_method=method,
        )

    def to_dict(self) -> Dict[str, Any]:
        if not self.success:
            payload = {
                "success": False,
                "error": self.error.to_dict(),
                "parserVersion": self.parser_version,
            }
            if self.extraction_method is not None:
                payload["extractionMethod"] = self.extraction_method.value
            return payload
        payload = {
            "success": True,
            "data": self.data.to_dict(),
            "extractionMethod": self.extraction_method.value,
            "parserVersion": self.parser_version,
        }
        if self.confidence is not None:
            payload["confidence"] = self.confidence.to_dict()
        if self.warnings:
            payload["warnings"] = list(self.warnings)
        return payload


@dataclass
class _RunContext:
    """Mutable state of one ingestion call"""
    file_path: Optional[Path]
    options: IngestOptions
    extracted: Optional[ExtractedText] = None
    method: ExtractionMethod = ExtractionMethod.TEXT
    fields: Optional[Dict[str, Any]] = None
    record: Optional[ExtractedRecord] = None
    confidence: Optional[OcrConfidence] = None
    warnings: Tuple[str, ...] = ()
    error: Optional[IngestionFailure] = None
    ocr_attempted: bool = False


class IngestionPipeline:
    """Sequences screening, extraction, normalization and validation"""

    def __init__(self,
                 screener: Optional[SecurityScreener] = None,
                 text_extractor: Optional[TextExtractor] = None,
                 ocr_extractor: Optional[OcrExtractor] = None,
                 normalizer: Optional[DecisionEngine] = None,
                 tools: Optional[ToolCache] = None):
        self.tools = tools or ToolCache()
        self.screener = screener or SecurityScreener()
        self.text_extractor = text_extractor or TextExtractor()
        self.ocr_extractor = ocr_extractor or OcrExtractor(self.tools)
        self.normalizer = normalizer or DecisionEngine()
        self._handlers = {
            PipelineState.SCREEN: self._screen,
            PipelineState.EXTRACT_TEXT: self._extract_text,
            PipelineState.EXTRACT_OCR: self._extract_ocr,
            PipelineState.NORMALIZE: self._normalize,
            PipelineState.VALIDATE: self._validate,
        }

    @property
    def parser_version(self) -> str:
        return PARSER_VERSION

    def ingest(self, file_path: Union[str, Path], options: Optional[IngestOptions] = None) -> IngestionResult:
        """
        Ingest a Form 106 PDF from a file path

        Args:
            file_path: Upload already checked for presence, MIME type and size
            options: Password, timeouts, OCR fallback and OCR settings

        Returns:
            IngestionResult; never raises IngestionFailure
        """
        context = _RunContext(file_path=Path(file_path), options=options or IngestOptions())
        return self._run(PipelineState.SCREEN, context)

    def ingest_text(self, raw_text: str,
                    method: ExtractionMethod = ExtractionMethod.TEXT) -> IngestionResult:
        """Normalize and validate text that was extracted elsewhere"""
        context = _RunContext(
            file_path=None,
            options=IngestOptions(),
            extracted=ExtractedText(raw=raw_text),
            method=ExtractionMethod(method),
        )
        return self._run(PipelineState.NORMALIZE, context)

    def _run(self, state: PipelineState, context: _RunContext) -> IngestionResult:
        started = time.perf_counter()
        while state not in TERMINAL_STATES:
            logger.debug("Entering state %s", state.value)
            try:
                state = self._handlers[state](context)
            except IngestionFailure as e:
                context.error = e
                state = PipelineState.FAILURE
            except Exception as e:
                # Catch-all at the stage boundary: nothing escapes untyped.
                # The traceback may quote document text, so it is debug-only.
                logger.error("Unexpected %s in state %s", type(e).__name__, state.value)
                logger.debug("Traceback", exc_info=True)
                context.error = IngestionFailure(
                    stage=_STATE_STAGES[state],
                    code=ErrorCode.INTERNAL_ERROR,
                    message=f"Unexpected {type(e).__name__} during {state.value}",
                    cause=e,
                )
                state = PipelineState.FAILURE

        elapsed = time.perf_counter() - started
        if state is PipelineState.FAILURE:
            error = context.error
            logger.warning(
                "Ingestion failed at %s with %s (%.2fs)", error.stage.value, error.code.value, elapsed
            )
            return IngestionResult.failed(error, context.method)

        logger.info("Ingestion succeeded via %s (%.2fs)", context.method.value, elapsed)
        return IngestionResult.ok(context.record, context.method, context.confidence, context.warnings)

    def _screen(self, context: _RunContext) -> PipelineState:
        self.screener.screen(context.file_path, context.options.max_file_size_bytes)
        return PipelineState.EXTRACT_TEXT

    def _extract_text(self, context: _RunContext) -> PipelineState:
        options = context.options
        extracted = self.text_extractor.extract(context.file_path, options.password, options.timeout_s)
        if not is_image_only(extracted):
            context.extracted = extracted
            return PipelineState.NORMALIZE

        logger.info("Text layer looks image-only (%d chars)", len(extracted.raw.strip()))
        if options.enable_ocr_fallback:
            return PipelineState.EXTRACT_OCR
        raise IngestionFailure(
            stage=Stage.EXTRACT,
            code=ErrorCode.IMAGE_ONLY,
            message="PDF appears to be image-only (scanned). Enable OCR fallback to process.",
        )

    def _extract_ocr(self, context: _RunContext) -> PipelineState:
        context.ocr_attempted = True
        context.method = ExtractionMethod.OCR
        if not self.ocr_extractor.is_available():
            raise IngestionFailure(
                stage=Stage.EXTRACT,
                code=ErrorCode.OCR_TOOL_MISSING,
                message="OCR fallback failed: Tesseract or Poppler (pdftoppm) not installed",
            )
        result = self.ocr_extractor.extract(context.file_path, self._ocr_options(context.options))
        context.extracted = ExtractedText(raw=result.text)
        context.confidence = result.confidence
        context.warnings = result.warnings
        return PipelineState.NORMALIZE

    def _normalize(self, context: _RunContext) -> PipelineState:
        try:
            context.fields = self.normalizer.normalize(context.extracted)
        except IngestionFailure as e:
            if (e.code is ErrorCode.TEXT_GARBLED
                    and context.options.enable_ocr_fallback
                    and context.file_path is not None
                    and not context.ocr_attempted):
                logger.info("Text layer is garbled; switching to OCR")
                return PipelineState.EXTRACT_OCR
            raise
        return PipelineState.VALIDATE

    def _validate(self, context: _RunContext) -> PipelineState:
        try:
            context.record = ExtractedRecord.model_validate(context.fields)
        except ValidationError as e:
            raise IngestionFailure(
                stage=Stage.VALIDATE,
                code=ErrorCode.SCHEMA_INVALID,
                message=f"Extracted record failed schema validation ({e.error_count()} error(s))",
                cause={"errors": summarize_validation_error(e)},
            )
        return PipelineState.SUCCESS

    @staticmethod
    def _ocr_options(options: IngestOptions) -> OcrOptions:
        if options.ocr is not None:
            return options.ocr
        if options.timeout_s is not None:
            return OcrOptions(timeout_s=options.timeout_s)
        return OcrOptions()


def ingest_file(file_path: Union[str, Path], options: Optional[IngestOptions] = None) -> IngestionResult:
    """Convenience wrapper around a default ``IngestionPipeline``"""
    return IngestionPipeline().ingest(file_path, options)
