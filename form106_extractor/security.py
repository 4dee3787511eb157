"""Security screening of untrusted PDF bytes.

Runs before any external tool touches the file. The file is read as raw
bytes, never handed to a PDF parser, which could itself be exploited.
"""
import logging
import os
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .config import HEADER_SCAN_SIZE, MAX_FILE_SIZE_BYTES, SCAN_CHUNK_SIZE, SCAN_OVERLAP
from .errors import ErrorCode, IngestionFailure, Stage
from .versions import SECURITY_VERSION

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"

# (marker, human label). Object names in PDFs are always ASCII.
DANGEROUS_PATTERNS: Tuple[Tuple[bytes, str], ...] = (
    (b"/JS", "JavaScript reference"),
    (b"/JavaScript", "JavaScript action"),
    (b"/Launch", "Launch action (command execution)"),
    (b"/EmbeddedFile", "Embedded file"),
    (b"/RichMedia", "Rich media (Flash/video)"),
    (b"/XFA", "XFA form (dynamic scripting)"),
)

# Dangerous only because they fire when the document is opened
AUTO_ACTION_PATTERNS: Tuple[Tuple[bytes, str], ...] = (
    (b"/OpenAction", "Auto-open action"),
    (b"/AA", "Additional auto-actions"),
)

ALL_PATTERNS = DANGEROUS_PATTERNS + AUTO_ACTION_PATTERNS


def validate_magic_bytes(header: bytes) -> bool:
    """True when ``%PDF-`` occurs anywhere within the first 1024 bytes."""
    return PDF_MAGIC in header[:HEADER_SCAN_SIZE]


def scan_for_dangerous_objects(content: bytes) -> List[str]:
    """Return the labels of every marker present in ``content``."""
    return [label for pattern, label in ALL_PATTERNS if pattern in content]


class SecurityScreener:
    """Validates size and signature and scans for dangerous PDF constructs"""

    VERSION = SECURITY_VERSION

    def __init__(self, chunk_size: int = SCAN_CHUNK_SIZE, overlap: int = SCAN_OVERLAP):
        longest = max(len(pattern) for pattern, _ in ALL_PATTERNS)
        if overlap < longest:
            raise ValueError(f"overlap must be at least {longest} bytes")
        self.chunk_size = chunk_size
        self.overlap = overlap

    def screen(self, file_path: Union[str, Path], max_size_bytes: Optional[int] = None) -> None:
        """
        Screen a file before processing.

        Checks, in order: path is a readable file, size within limit,
        non-empty, PDF signature, no dangerous objects.

        Raises:
            IngestionFailure: INVALID_FORMAT, TOO_LARGE or SECURITY_RISK
        """
        max_size = MAX_FILE_SIZE_BYTES if max_size_bytes is None else max_size_bytes
        path = Path(file_path)

        try:
            if not path.is_file():
                raise _security_error(ErrorCode.INVALID_FORMAT, "Path is not a file")
            file_size = path.stat().st_size
        except OSError as e:
            raise _security_error(
                ErrorCode.INVALID_FORMAT, "Cannot access file for security validation", e
            )

        if file_size > max_size:
            raise _security_error(
                ErrorCode.TOO_LARGE,
                f"File size ({_megabytes(file_size)}MB) exceeds maximum allowed "
                f"({_megabytes(max_size)}MB)",
                {"size_bytes": file_size, "max_size_bytes": max_size},
            )
        if file_size == 0:
            raise _security_error(ErrorCode.INVALID_FORMAT, "File is empty")

        try:
            with path.open("rb") as handle:
                if not validate_magic_bytes(handle.read(HEADER_SCAN_SIZE)):
                    raise _security_error(
                        ErrorCode.INVALID_FORMAT,
                        "File does not have a valid PDF header (%PDF-). Not a PDF file.",
                    )
                handle.seek(0)
                threats = self._scan_stream(handle)
        except OSError as e:
            raise _security_error(ErrorCode.INVALID_FORMAT, "Cannot read file for security validation", e)

        if threats:
            logger.warning("Security screening rejected file: %d threat(s)", len(threats))
            raise _security_error(
                ErrorCode.SECURITY_RISK,
                f"PDF contains potentially dangerous content: {', '.join(threats)}",
                {"threats": threats},
            )
        logger.debug("Security screening passed (%d bytes)", file_size)

    def _scan_stream(self, handle) -> List[str]:
        """Scan in fixed-size chunks, carrying an overlap so split markers are found."""
        found: List[str] = []
        tail = b""
        while True:
            chunk = handle.read(self.chunk_size)
            if not chunk:
                break
            window = tail + chunk
            for label in scan_for_dangerous_objects(window):
                if label not in found:
                    found.append(label)
            tail = window[-self.overlap:]
        return found


def _megabytes(size: int) -> int:
    return round(size / 1024 / 1024)


def _security_error(code: ErrorCode, message: str, cause=None) -> IngestionFailure:
    return IngestionFailure(stage=Stage.EXTRACT, code=code, message=message, cause=cause)


def screen_file(file_path: Union[str, os.PathLike], max_size_bytes: Optional[int] = None) -> None:
    """Module-level shortcut for ``SecurityScreener().screen``."""
    SecurityScreener().screen(file_path, max_size_bytes)
