"""OCR extraction: pdftoppm rasterization + tesseract recognition.

Pipeline per call:
1. Rasterize every page to a grayscale PNG in a private temp directory
2. Run tesseract per page, asking for both plain text and a TSV word table
3. Aggregate word confidences across pages and apply the quality gate

The temp directory is removed on every exit path. ``subprocess.run`` kills
its child on timeout or on any exception (KeyboardInterrupt included)
before re-raising, so no tool outlives the call.
"""
import csv
import logging
import os
import re
import subprocess
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from .config import (
    OCR_CONVERSION_SHARE,
    OCR_CRITICAL_MEAN,
    OCR_DPI,
    OCR_LANGUAGES,
    OCR_LOW_CONFIDENCE_RATIO_WARNING,
    OCR_LOW_CONFIDENCE_WORD,
    OCR_MIN_WORDS_FOR_CONFIDENCE,
    OCR_PAGE_SEGMENTATION_MODE,
    OCR_TIMEOUT_S,
    OCR_WARNING_MEAN,
)
from .errors import ErrorCode, IngestionFailure, Stage
from .preprocessor import normalize_text
from .tool_cache import ToolCache
from .versions import OCR_EXTRACTOR_VERSION

logger = logging.getLogger(__name__)

PAGE_BREAK = "\n\n--- PAGE BREAK ---\n\n"
WORD_LEVEL = 5  # tesseract TSV levels: 1=page 2=block 3=para 4=line 5=word

QUALITY_CRITICAL_MESSAGE = (
    "OCR quality too low to extract reliably. "
    "Please provide a higher resolution scan (300+ DPI) "
    "with good lighting and no shadows."
)
QUALITY_WARNING_MESSAGE = (
    "OCR quality is marginal. Results may contain errors. "
    "Consider re-scanning at higher resolution if issues occur."
)


@dataclass(frozen=True)
class OcrConfidence:
    """Document-level OCR quality signal. ``mean``/``min`` are 0-100."""
    mean: float
    min: float
    low_confidence_ratio: float
    word_count: int

    @classmethod
    def empty(cls) -> "OcrConfidence":
        return cls(mean=0.0, min=0.0, low_confidence_ratio=1.0, word_count=0)

    def to_dict(self) -> dict:
        return {
            "mean": self.mean,
            "min": self.min,
            "lowConfidenceRatio": self.low_confidence_ratio,
            "wordCount": self.word_count,
        }


@dataclass(frozen=True)
class QualityGate:
    critical_mean: float = OCR_CRITICAL_MEAN
    warning_mean: float = OCR_WARNING_MEAN
    low_confidence_ratio: float = OCR_LOW_CONFIDENCE_RATIO_WARNING
    min_words: int = OCR_MIN_WORDS_FOR_CONFIDENCE
    disabled: bool = False


@dataclass(frozen=True)
class OcrOptions:
    languages: Tuple[str, ...] = OCR_LANGUAGES
    dpi: int = OCR_DPI
    timeout_s: float = OCR_TIMEOUT_S
    quality_gate: QualityGate = field(default_factory=QualityGate)

    def __post_init__(self):
        if not self.languages:
            raise ValueError("at least one OCR language is required")
        if self.dpi <= 0:
            raise ValueError("dpi must be positive")
        if self.timeout_s <= 0:
            raise ValueError("timeout_s must be positive")


@dataclass(frozen=True)
class OcrResult:
    text: str
    confidence: OcrConfidence
    warnings: Tuple[str, ...] = ()

    def __repr__(self):
        return f"OcrResult(<{len(self.text)} chars>, confidence={self.confidence}, warnings={len(self.warnings)})"


def parse_tsv_confidence(tsv_content: str,
                         low_word_threshold: float = OCR_LOW_CONFIDENCE_WORD) -> OcrConfidence:
    """
    Word confidence metrics from tesseract TSV output.

    Only word-level rows with non-empty text and confidence >= 0 count;
    tesseract reports -1 for boxes it could not recognize.
    """
    reader = csv.DictReader(tsv_content.splitlines(), delimiter="\t", quoting=csv.QUOTE_NONE)
    confidences: List[float] = []
    for row in reader:
        try:
            level = int(row.get("level") or "0")
            conf = float(row.get("conf") or "nan")
        except ValueError:
            continue  # malformed rows are dropped
        text = (row.get("text") or "").strip()
        if level != WORD_LEVEL or not text or not np.isfinite(conf) or conf < 0:
            continue
        confidences.append(conf)

    if not confidences:
        return OcrConfidence.empty()

    values = np.asarray(confidences, dtype=float)
    return OcrConfidence(
        mean=round(float(values.mean()), 2),
        min=float(values.min()),
        low_confidence_ratio=round(float(np.mean(values < low_word_threshold)), 3),
        word_count=int(values.size),
    )


def aggregate_confidence(pages: Sequence[OcrConfidence]) -> OcrConfidence:
    """Word-count weighted mean, global minimum and low-confidence ratio."""
    pages = [page for page in pages if page.word_count > 0]
    if not pages:
        return OcrConfidence.empty()

    counts = np.array([page.word_count for page in pages], dtype=float)
    means = np.array([page.mean for page in pages], dtype=float)
    low_words = np.rint(np.array([page.low_confidence_ratio for page in pages]) * counts)
    total = counts.sum()

    return OcrConfidence(
        mean=round(float((means * counts).sum() / total), 2),
        min=float(min(page.min for page in pages)),
        low_confidence_ratio=round(float(low_words.sum() / total), 3),
        word_count=int(total),
    )


def apply_quality_gate(confidence: OcrConfidence, gate: Optional[QualityGate] = None) -> List[str]:
    """
    Return non-fatal warnings, or raise for critically poor OCR.

    Raises:
        IngestionFailure: OCR_QUALITY_CRITICAL
    """
    gate = gate or QualityGate()
    warnings: List[str] = []
    if gate.disabled:
        return warnings

    # Too few words for the metric to mean anything
    if confidence.word_count < gate.min_words:
        return warnings

    if confidence.mean < gate.critical_mean:
        raise _ocr_error(
            ErrorCode.OCR_QUALITY_CRITICAL,
            f"{QUALITY_CRITICAL_MESSAGE} (mean confidence: {confidence.mean:.1f}%, "
            f"threshold: {gate.critical_mean:g}%)",
            {"confidence": confidence.to_dict(), "critical_mean": gate.critical_mean},
        )

    if confidence.mean < gate.warning_mean:
        warnings.append(f"{QUALITY_WARNING_MESSAGE} (mean confidence: {confidence.mean:.1f}%)")

    if confidence.low_confidence_ratio > gate.low_confidence_ratio:
        warnings.append(
            f"{round(confidence.low_confidence_ratio * 100)}% of words have low confidence. "
            "Some text may be incorrectly recognized."
        )
    return warnings


def _page_number(image: Path) -> int:
    match = re.search(r"(\d+)$", image.stem)
    return int(match.group(1)) if match else 0


class OcrExtractor:
    """Extracts text from scanned PDFs with tesseract"""

    VERSION = OCR_EXTRACTOR_VERSION

    def __init__(self, tools: Optional[ToolCache] = None):
        self.tools = tools or ToolCache()

    def is_available(self) -> bool:
        return bool(self.tools.tesseract_path()) and bool(self.tools.pdftoppm_path())

    def extract(self, file_path: Union[str, Path], options: Optional[OcrOptions] = None) -> OcrResult:
        """
        OCR every page of a PDF

        Args:
            file_path: PDF that already passed security screening
            options: Languages, DPI, timeout budget and quality gate

        Returns:
            OcrResult with normalized text, aggregated confidence and warnings

        Raises:
            IngestionFailure: OCR_TOOL_MISSING, OCR_LANGUAGE_MISSING,
                OCR_EXTRACTION_FAILED, OCR_EXTRACTION_TIMEOUT or OCR_QUALITY_CRITICAL
        """
        options = options or OcrOptions()

        tesseract = self.tools.tesseract_path()
        if not tesseract:
            raise _ocr_error(
                ErrorCode.OCR_TOOL_MISSING,
                "Tesseract OCR not found. Install Tesseract: https://github.com/tesseract-ocr/tesseract",
            )

        missing = self.tools.missing_languages(options.languages)
        if missing:
            raise _ocr_error(
                ErrorCode.OCR_LANGUAGE_MISSING,
                f"Tesseract language data not found: {', '.join(missing)}. "
                f"Install tessdata: {', '.join(lang + '.traineddata' for lang in missing)}",
                {"languages": missing},
            )

        path = Path(file_path)
        if not path.is_file() or not os.access(path, os.R_OK):
            raise _ocr_error(ErrorCode.OCR_EXTRACTION_FAILED, "Cannot access input file for OCR")

        conversion_timeout = options.timeout_s * OCR_CONVERSION_SHARE
        ocr_timeout = options.timeout_s - conversion_timeout
        started = time.perf_counter()

        with tempfile.TemporaryDirectory(prefix="ocr-") as temp_dir:
            images = self._rasterize(path, Path(temp_dir), options.dpi, conversion_timeout)
            time_per_page = ocr_timeout / len(images)

            page_texts: List[str] = []
            page_confidences: List[OcrConfidence] = []
            for image in images:
                text, confidence = self._recognize(tesseract, image, options.languages, time_per_page)
                page_texts.append(text)
                page_confidences.append(confidence)

        if not any(page.strip() for page in page_texts):
            raise _ocr_error(ErrorCode.OCR_EXTRACTION_FAILED, "OCR extraction produced empty output")
        text = normalize_text(PAGE_BREAK.join(page_texts))

        confidence = aggregate_confidence(page_confidences)
        logger.info(
            "OCR finished: %d page(s), %d words, mean confidence %.1f (%.2fs)",
            len(page_texts), confidence.word_count, confidence.mean, time.perf_counter() - started,
        )

        warnings = apply_quality_gate(confidence, options.quality_gate)
        for warning in warnings:
            logger.warning("OCR quality: %s", warning)
        return OcrResult(text=text, confidence=confidence, warnings=tuple(warnings))

    def _rasterize(self, pdf_path: Path, output_dir: Path, dpi: int, timeout: float) -> List[Path]:
        """Convert PDF pages to grayscale PNGs with pdftoppm"""
        pdftoppm = self.tools.pdftoppm_path()
        if not pdftoppm:
            raise _ocr_error(
                ErrorCode.OCR_TOOL_MISSING,
                "pdftoppm not found - required for PDF to image conversion. Install Poppler.",
            )

        cmd = [pdftoppm, "-png", "-r", str(dpi), "-gray", str(pdf_path), str(output_dir / "page")]
        try:
            proc = subprocess.run(cmd, check=False, capture_output=True, timeout=timeout)
        except FileNotFoundError:
            raise _ocr_error(ErrorCode.OCR_TOOL_MISSING, "pdftoppm binary not found")
        except subprocess.TimeoutExpired:
            raise _ocr_error(
                ErrorCode.OCR_EXTRACTION_TIMEOUT,
                f"PDF to image conversion timed out after {timeout:g}s",
                {"timeout_s": timeout},
            )
        except OSError as e:
            raise _ocr_error(ErrorCode.OCR_EXTRACTION_FAILED, "Failed to convert PDF to images for OCR", e)

        if proc.returncode != 0:
            raise _ocr_error(
                ErrorCode.OCR_EXTRACTION_FAILED,
                "Failed to convert PDF to images for OCR",
                {"returncode": proc.returncode},
            )

        images = sorted(output_dir.glob("page*.png"), key=_page_number)
        if not images:
            raise _ocr_error(ErrorCode.OCR_EXTRACTION_FAILED, "PDF to image conversion produced no images")
        return images

    def _recognize(self,
                   tesseract: str,
                   image: Path,
                   languages: Sequence[str],
                   timeout: float) -> Tuple[str, OcrConfidence]:
        """Run tesseract on one page image, producing .txt and .tsv side by side"""
        output_base = image.with_suffix("")
        cmd = [
            tesseract,
            str(image),
            str(output_base),  # tesseract appends .txt / .tsv
            "-l", "+".join(languages),
            "--psm", str(OCR_PAGE_SEGMENTATION_MODE),
            "txt",
            "tsv",
        ]
        try:
            proc = subprocess.run(
                cmd,
                check=False,
                capture_output=True,
                timeout=timeout,
                env=self.tools.tesseract_env(),
            )
        except FileNotFoundError:
            raise _ocr_error(ErrorCode.OCR_TOOL_MISSING, "Tesseract binary not found")
        except subprocess.TimeoutExpired:
            raise _ocr_error(
                ErrorCode.OCR_EXTRACTION_TIMEOUT,
                f"Tesseract OCR timed out after {timeout:g}s",
                {"timeout_s": timeout, "page": _page_number(image)},
            )
        except OSError as e:
            raise _ocr_error(ErrorCode.OCR_EXTRACTION_FAILED, "Tesseract OCR failed", e)

        if proc.returncode != 0:
            raise _ocr_error(
                ErrorCode.OCR_EXTRACTION_FAILED,
                "Tesseract OCR failed",
                {"returncode": proc.returncode, "page": _page_number(image)},
            )

        # Read outputs outside the subprocess handler so a missing .txt is not
        # mistaken for a missing binary
        try:
            text = output_base.with_suffix(".txt").read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise _ocr_error(ErrorCode.OCR_EXTRACTION_FAILED, "Tesseract produced no text output", e)

        try:
            tsv = output_base.with_suffix(".tsv").read_text(encoding="utf-8", errors="replace")
        except OSError:
            logger.warning("No TSV output for page %d; confidence unknown", _page_number(image))
            return text, OcrConfidence.empty()
        return text, parse_tsv_confidence(tsv)


def _ocr_error(code: ErrorCode, message: str, cause=None) -> IngestionFailure:
    return IngestionFailure(stage=Stage.EXTRACT, code=code, message=message, cause=cause)
