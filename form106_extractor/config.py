"""Configuration settings for the Form 106 extractor"""
import os
from dotenv import load_dotenv

load_dotenv()

# Security screening
MAX_FILE_SIZE_BYTES = int(float(os.getenv("FORM106_MAX_FILE_SIZE_MB", "50")) * 1024 * 1024)
HEADER_SCAN_SIZE = 1024  # %PDF- may appear anywhere in the first 1KB
SCAN_CHUNK_SIZE = 64 * 1024
SCAN_OVERLAP = 20  # longest marker is "/EmbeddedFile" (13 bytes)

# Text layer extraction (pdftotext)
PDFTOTEXT_BINARY = os.getenv("FORM106_PDFTOTEXT", "pdftotext")
TEXT_TIMEOUT_S = float(os.getenv("FORM106_TEXT_TIMEOUT_S", "30"))
IMAGE_ONLY_THRESHOLD = 50  # trimmed chars below this => image-only
MIN_MEANINGFUL_CHARS = 20  # non-whitespace, non-control chars

# OCR (pdftoppm + tesseract)
OCR_TIMEOUT_S = float(os.getenv("FORM106_OCR_TIMEOUT_S", "60"))
OCR_DPI = int(os.getenv("FORM106_OCR_DPI", "600"))
OCR_LANGUAGES = tuple(
    lang for lang in os.getenv("FORM106_OCR_LANGUAGES", "heb+eng").split("+") if lang
)
OCR_CONVERSION_SHARE = 0.4  # rest of the budget goes to tesseract
OCR_PAGE_SEGMENTATION_MODE = 6  # uniform block of text
TESSDATA_PREFIX = os.getenv("TESSDATA_PREFIX")
TOOL_PROBE_TIMEOUT_S = 5.0

# OCR quality gate (tesseract confidence is 0-100)
OCR_CRITICAL_MEAN = 40.0  # fail below this mean confidence
OCR_WARNING_MEAN = 60.0  # warn below this mean confidence
OCR_LOW_CONFIDENCE_WORD = 50.0  # per-word "low confidence" cutoff
OCR_LOW_CONFIDENCE_RATIO_WARNING = 0.3
OCR_MIN_WORDS_FOR_CONFIDENCE = 10

# Field extraction
PROXIMITY_MAX_DISTANCE = 200  # chars between anchor and value
YEAR_MAX_DISTANCE = 100
BEFORE_ANCHOR_WEIGHT = 0.5  # label/value layout heuristic: values follow labels
AMBIGUITY_CONFIDENCE = 0.7  # only check ambiguity below this winner score
AMBIGUITY_RATIO = 0.8  # runner-up within 80% of the winner => ambiguous
MIN_TAX_YEAR = 2010
