"""Component versions and the composite parser version.

Bump a component's version whenever its output for the same input can
change. The composite string stamped on every result is built from all of
them, so any bump is visible to auditors.
"""
from typing import Dict, Optional

PIPELINE_VERSION = "1.1.0"
SECURITY_VERSION = "1.0.0"
TEXT_EXTRACTOR_VERSION = "1.0.0"
OCR_EXTRACTOR_VERSION = "1.1.0"
NORMALIZER_VERSION = "1.2.0"
SCHEMA_VERSION = "1.0.0"

COMPONENT_VERSIONS: Dict[str, str] = {
    "security": SECURITY_VERSION,
    "pdftotext": TEXT_EXTRACTOR_VERSION,
    "ocr": OCR_EXTRACTOR_VERSION,
    "normalize": NORMALIZER_VERSION,
    "schema": SCHEMA_VERSION,
}


def compose_parser_version(pipeline_version: str = PIPELINE_VERSION,
                           components: Optional[Dict[str, str]] = None) -> str:
    """Return e.g. ``1.1.0+security.1.0.0+pdftotext.1.0.0+...``"""
    components = COMPONENT_VERSIONS if components is None else components
    parts = [pipeline_version]
    parts.extend(f"{name}.{version}" for name, version in components.items())
    return "+".join(parts)


PARSER_VERSION = compose_parser_version()
