"""Text-layer extraction from PDF using Poppler's pdftotext"""
import logging
import subprocess
import unicodedata
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from .config import IMAGE_ONLY_THRESHOLD, MIN_MEANINGFUL_CHARS, PDFTOTEXT_BINARY, TEXT_TIMEOUT_S
from .errors import ErrorCode, IngestionFailure, Stage
from .preprocessor import normalize_text
from .versions import TEXT_EXTRACTOR_VERSION

logger = logging.getLogger(__name__)

# Poppler reports encrypted documents on stderr, e.g.
# "Command Line Error: Incorrect password"
PASSWORD_SIGNATURES = ("incorrect password", "password")


@dataclass(frozen=True)
class ExtractedText:
    """Text produced by either extractor; consumed by the normalizer."""
    raw: str

    def __repr__(self):
        # Never echo document content into logs or tracebacks
        return f"ExtractedText(<{len(self.raw)} chars>)"


class TextExtractor:
    """Extracts the text layer of a PDF with pdftotext"""

    VERSION = TEXT_EXTRACTOR_VERSION

    def __init__(self, binary: str = PDFTOTEXT_BINARY, timeout_s: float = TEXT_TIMEOUT_S):
        self.binary = binary
        self.timeout_s = timeout_s

    def build_command(self, file_path: Union[str, Path], password: Optional[str] = None) -> List[str]:
        cmd = [self.binary, "-enc", "UTF-8", "-layout"]
        if password:
            # Visible in process listings while pdftotext runs; never logged.
            cmd.extend(["-upw", password])
        cmd.extend([str(file_path), "-"])
        return cmd

    def extract(self,
                file_path: Union[str, Path],
                password: Optional[str] = None,
                timeout_s: Optional[float] = None) -> ExtractedText:
        """
        Extract text from a PDF file

        Args:
            file_path: PDF that already passed security screening
            password: Optional user password for encrypted PDFs
            timeout_s: Overrides the extractor's default timeout

        Returns:
            ExtractedText with normalized line endings and whitespace

        Raises:
            IngestionFailure: TOOL_MISSING, EXTRACTION_TIMEOUT,
                PASSWORD_REQUIRED, PASSWORD_INVALID or EXTRACTION_FAILED
        """
        timeout = self.timeout_s if timeout_s is None else timeout_s
        cmd = self.build_command(file_path, password)

        try:
            proc = subprocess.run(
                cmd,
                check=False,
                capture_output=True,
                timeout=timeout,
            )
        except FileNotFoundError:
            raise _extract_error(
                ErrorCode.TOOL_MISSING,
                f"{self.binary} not found - install Poppler utilities",
                {"expected_command": Path(self.binary).name},
            )
        except subprocess.TimeoutExpired:
            raise _extract_error(
                ErrorCode.EXTRACTION_TIMEOUT,
                f"Text extraction timed out after {timeout:g}s",
                {"timeout_s": timeout},
            )
        except OSError as e:
            raise _extract_error(ErrorCode.EXTRACTION_FAILED, "Text extraction could not start", e)

        if proc.returncode != 0:
            # stderr is untrusted; inspect it, never forward it
            stderr = proc.stderr.decode("utf-8", errors="replace").lower()
            if any(signature in stderr for signature in PASSWORD_SIGNATURES):
                if password:
                    raise _extract_error(
                        ErrorCode.PASSWORD_INVALID,
                        "PDF password was rejected",
                        {"returncode": proc.returncode},
                    )
                raise _extract_error(
                    ErrorCode.PASSWORD_REQUIRED,
                    "PDF is encrypted and requires a password",
                    {"returncode": proc.returncode},
                )
            raise _extract_error(
                ErrorCode.EXTRACTION_FAILED,
                "Text extraction failed",
                {"returncode": proc.returncode},
            )

        text = normalize_text(proc.stdout.decode("utf-8", errors="replace"))
        logger.info("Text layer extracted (%d chars)", len(text))
        return ExtractedText(raw=text)


def count_meaningful_chars(text: str) -> int:
    """Characters that are neither whitespace nor control characters"""
    return sum(1 for ch in text if not ch.isspace() and unicodedata.category(ch) != "Cc")


def is_image_only(extracted: ExtractedText,
                  threshold: int = IMAGE_ONLY_THRESHOLD,
                  min_meaningful: int = MIN_MEANINGFUL_CHARS) -> bool:
    """
    Classify extraction output as coming from a scanned (image-only) PDF.

    True when the trimmed text is shorter than ``threshold`` or holds fewer
    than ``min_meaningful`` meaningful characters.
    """
    trimmed = extracted.raw.strip()
    if len(trimmed) < threshold:
        return True
    return count_meaningful_chars(trimmed) < min_meaningful


def _extract_error(code: ErrorCode, message: str, cause=None) -> IngestionFailure:
    return IngestionFailure(stage=Stage.EXTRACT, code=code, message=message, cause=cause)
