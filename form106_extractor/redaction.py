"""PII redaction for log lines and failure messages"""
import re

EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
ID_PATTERN = re.compile(r"\b[0-9]{7,9}\b")


def redact(text: str) -> str:
    """Replace e-mail addresses and identifier-like digit runs."""
    if not text:
        return text
    text = EMAIL_PATTERN.sub("[REDACTED_EMAIL]", text)
    return ID_PATTERN.sub("[REDACTED_ID]", text)
