"""Text preprocessing: deterministic normalization and garbled-text detection"""
import re
from typing import List, Pattern


class Preprocessor:
    """Normalizes extracted text and detects broken text-layer encodings"""

    def __init__(self, garbled_line_ratio: float = 0.3, min_lines: int = 3):
        # Signatures of CID-garbled Hebrew PDFs, e.g. "Z061+ 047\", "477+///", "/9  /9"
        self.garbled_patterns: List[Pattern] = [
            re.compile(r"Z\d+\+\s*\d+\\"),
            re.compile(r"\d+\+/+"),
            re.compile(r"/\d+\s+/\d+"),
        ]
        self.letter_pattern = re.compile(r"[a-zA-Z\u0590-\u05FF]")
        self.structural_pattern = re.compile(r"[+\\/\[\]{}|]")
        self.garbled_line_ratio = garbled_line_ratio
        self.min_lines = min_lines

    def normalize_text(self, text: str) -> str:
        """
        Normalize extracted text for deterministic output:
        - line endings to \\n
        - trailing whitespace trimmed on each line
        - leading/trailing blank lines trimmed
        """
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        return "\n".join(line.rstrip() for line in text.split("\n")).strip()

    def is_garbled_line(self, line: str) -> bool:
        letters = len(self.letter_pattern.findall(line))
        specials = len(self.structural_pattern.findall(line))
        return specials > letters and specials > 3

    def is_text_garbled(self, text: str) -> bool:
        """Detect text that came out of a broken font encoding and needs OCR."""
        if any(pattern.search(text) for pattern in self.garbled_patterns):
            return True

        lines = [line for line in text.split("\n") if line.strip()]
        if len(lines) < self.min_lines:
            return False  # too short to tell

        garbled_lines = sum(1 for line in lines if self.is_garbled_line(line))
        return garbled_lines > len(lines) * self.garbled_line_ratio


_default = Preprocessor()


def normalize_text(text: str) -> str:
    return _default.normalize_text(text)


def is_text_garbled(text: str) -> bool:
    return _default.is_text_garbled(text)
