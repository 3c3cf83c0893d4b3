"""Quality and size heuristics for extracted contract text."""

import math
from typing import Dict

from loguru import logger

from clauseguard.models import QualityFlag


CHARS_PER_PAGE = 500


def density_quality(text: str, page_count: int) -> QualityFlag:
    """Quality bucket for page-oriented documents, from characters per page.

    Args:
        text: Extracted text
        page_count: Number of pages the text came from

    Returns:
        "high" if density > 500, "medium" if density > 100, else "low"
    """
    density = len(text) / max(page_count, 1)
    if density > 500:
        return "high"
    if density > 100:
        return "medium"
    return "low"


def flow_document_quality(text: str) -> QualityFlag:
    """Quality bucket for flow documents (docx, plain text)."""
    length = len(text)
    if length < 100:
        return "low"
    if length < 1000:
        return "medium"
    return "high"


def ocr_quality(text: str) -> QualityFlag:
    """Quality bucket for standalone OCR output.

    Anything under 1000 characters is "low"; OCR text never rates "high".
    """
    length = len(text)
    if length < 100:
        return "low"
    if length < 1000:
        return "low"
    return "medium"


def estimate_page_count(text: str) -> int:
    """Page estimate for formats without pagination: one page per 500 chars."""
    return max(1, math.ceil(len(text) / CHARS_PER_PAGE))


def validate_quality(text: str) -> Dict[str, object]:
    """Basic statistics reported alongside an extraction.

    Returns:
        Dictionary with has_text, word_count and char_count
    """
    stripped = text.strip()
    word_count = len(stripped.split()) if stripped else 0

    stats = {
        "has_text": len(stripped) > 0,
        "word_count": word_count,
        "char_count": len(text),
    }
    logger.debug("Text quality statistics", **stats)
    return stats
