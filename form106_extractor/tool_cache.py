"""Lazily resolved external tool locations for OCR.

One ``ToolCache`` is shared by the extractors of a pipeline. Lookups are
memoized for the life of the object. Concurrent first lookups may probe
twice; both arrive at the same answer, so only the write is locked.
"""
import logging
import os
import subprocess
import sys
import threading
from pathlib import Path
from typing import FrozenSet, List, Optional, Sequence

from .config import TESSDATA_PREFIX, TOOL_PROBE_TIMEOUT_S

logger = logging.getLogger(__name__)

_MISSING = object()


def _tesseract_candidates() -> List[str]:
    if sys.platform == "win32":
        return [
            "tesseract",
            r"C:\Program Files\Tesseract-OCR\tesseract.exe",
            r"C:\Program Files (x86)\Tesseract-OCR\tesseract.exe",
        ]
    return [
        "tesseract",
        "/usr/bin/tesseract",
        "/usr/local/bin/tesseract",
        "/opt/homebrew/bin/tesseract",
    ]


def _pdftoppm_candidates() -> List[str]:
    if sys.platform == "win32":
        return [
            "pdftoppm",
            r"C:\Program Files\poppler\bin\pdftoppm.exe",
            r"C:\Program Files (x86)\poppler\bin\pdftoppm.exe",
        ]
    return [
        "pdftoppm",
        "/usr/bin/pdftoppm",
        "/usr/local/bin/pdftoppm",
        "/opt/homebrew/bin/pdftoppm",
    ]


def _tessdata_candidates() -> List[Optional[str]]:
    home_tessdata = str(Path.home() / "tessdata")
    if sys.platform == "win32":
        return [
            TESSDATA_PREFIX,
            home_tessdata,
            r"C:\Program Files\Tesseract-OCR\tessdata",
            r"C:\Program Files (x86)\Tesseract-OCR\tessdata",
        ]
    return [
        TESSDATA_PREFIX,
        home_tessdata,
        "/usr/share/tesseract-ocr/5/tessdata",
        "/usr/share/tesseract-ocr/4.00/tessdata",
        "/usr/share/tessdata",
        "/usr/local/share/tessdata",
        "/opt/homebrew/share/tessdata",
    ]


def probe_binary(candidate: str, version_flag: str) -> bool:
    """True when ``candidate`` can be executed. Exit status is ignored:
    older pdftoppm builds exit non-zero for ``-v``."""
    try:
        subprocess.run(
            [candidate, version_flag],
            check=False,
            capture_output=True,
            timeout=TOOL_PROBE_TIMEOUT_S,
        )
    except (OSError, subprocess.TimeoutExpired):
        return False
    return True


class ToolCache:
    """Memoized paths for tesseract, pdftoppm, tessdata and installed languages"""

    def __init__(self,
                 tesseract_candidates: Optional[Sequence[str]] = None,
                 pdftoppm_candidates: Optional[Sequence[str]] = None,
                 tessdata_candidates: Optional[Sequence[Optional[str]]] = None):
        self._tesseract_candidates = list(
            _tesseract_candidates() if tesseract_candidates is None else tesseract_candidates)
        self._pdftoppm_candidates = list(
            _pdftoppm_candidates() if pdftoppm_candidates is None else pdftoppm_candidates)
        self._tessdata_candidates = list(
            _tessdata_candidates() if tessdata_candidates is None else tessdata_candidates)
        self._lock = threading.Lock()
        self._values = {}

    def _memoize(self, key: str, resolve):
        value = self._values.get(key, _MISSING)
        if value is not _MISSING:
            return value
        value = resolve()
        with self._lock:
            # First writer wins; a concurrent duplicate probe is discarded
            return self._values.setdefault(key, value)

    def tesseract_path(self) -> Optional[str]:
        return self._memoize("tesseract", lambda: self._first_runnable(self._tesseract_candidates, "--version"))

    def pdftoppm_path(self) -> Optional[str]:
        return self._memoize("pdftoppm", lambda: self._first_runnable(self._pdftoppm_candidates, "-v"))

    def tessdata_dir(self) -> Optional[str]:
        return self._memoize("tessdata", self._find_tessdata)

    def installed_languages(self) -> FrozenSet[str]:
        return self._memoize("languages", self._list_languages)

    def is_language_available(self, language: str) -> bool:
        language = language.lower()
        if language in self.installed_languages():
            return True
        tessdata = self.tessdata_dir()
        return bool(tessdata) and (Path(tessdata) / f"{language}.traineddata").is_file()

    def missing_languages(self, languages: Sequence[str]) -> List[str]:
        return [lang for lang in languages if not self.is_language_available(lang)]

    def tesseract_env(self) -> dict:
        # TESSDATA_PREFIX is never forced to the resolved dir: a bare tessdata
        # dir lacks the configs/ tesseract needs for txt/tsv output.
        return dict(os.environ)

    def clear(self) -> None:
        with self._lock:
            self._values.clear()

    def _first_runnable(self, candidates: Sequence[str], version_flag: str) -> Optional[str]:
        for candidate in candidates:
            if probe_binary(candidate, version_flag):
                logger.debug("Resolved tool %s", candidate)
                return candidate
        logger.info("No runnable binary among %d candidate(s)", len(candidates))
        return None

    def _find_tessdata(self) -> Optional[str]:
        for candidate in self._tessdata_candidates:
            if candidate and os.access(candidate, os.R_OK) and Path(candidate).is_dir():
                return candidate
        return None

    def _list_languages(self) -> FrozenSet[str]:
        tesseract = self.tesseract_path()
        if not tesseract:
            return frozenset()
        try:
            proc = subprocess.run(
                [tesseract, "--list-langs"],
                check=False,
                capture_output=True,
                timeout=TOOL_PROBE_TIMEOUT_S,
                env=self.tesseract_env(),
            )
        except (OSError, subprocess.TimeoutExpired):
            return frozenset()
        lines = proc.stdout.decode("utf-8", errors="replace").lower().splitlines()
        # First line is 'List of available languages in "...":'
        return frozenset(
            line.strip() for line in lines
            if line.strip() and not line.startswith("list of")
        )
