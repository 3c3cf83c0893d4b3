"""PDF text extraction strategies for the ingestion cascade.

Two local strategies live here:

- ``NativePDFStrategy`` reads the PDF text layer with pypdf (fast, structural)
- ``RobustPDFStrategy`` rebuilds text page by page with pdfplumber, which
  tolerates malformed structure that trips the native parser

Both return an ExtractionResult when the text clears the minimum length, and
``None`` ("insufficient") otherwise. Exceptions are left to the caller; the
cascade converts them to "insufficient".
"""

import io
from typing import Optional

import pdfplumber
from loguru import logger
from pypdf import PdfReader

from clauseguard.logging_config import log_tool_execution
from clauseguard.models import ExtractionResult
from tools.text_quality import density_quality


class NativePDFStrategy:
    """Layer 1: the PDF's own text layer via pypdf."""

    name = "native"
    confidence = 0.95

    def __init__(self, min_text_length: int = 50):
        self.min_text_length = min_text_length

    @log_tool_execution("native_pdf")
    def extract(self, content: bytes) -> Optional[ExtractionResult]:
        reader = PdfReader(io.BytesIO(content))
        page_count = len(reader.pages)
        text = "\n".join((page.extract_text() or "") for page in reader.pages)

        if len(text.strip()) <= self.min_text_length:
            logger.info(
                "Native PDF text below threshold",
                text_length=len(text.strip()),
                page_count=page_count
            )
            return None

        logger.info(
            "Native PDF extraction succeeded",
            text_length=len(text),
            page_count=page_count
        )
        return ExtractionResult(
            raw_text=text,
            page_count=page_count,
            quality_flag=density_quality(text, page_count),
            method="native",
            confidence=self.confidence
        )


class RobustPDFStrategy:
    """Layer 2: page-by-page reconstruction via pdfplumber."""

    name = "robust"
    confidence = 0.90

    def __init__(self, min_text_length: int = 50):
        self.min_text_length = min_text_length

    @log_tool_execution("robust_pdf")
    def extract(self, content: bytes) -> Optional[ExtractionResult]:
        text_parts = []

        with pdfplumber.open(io.BytesIO(content)) as pdf:
            page_count = len(pdf.pages)

            for page_num, page in enumerate(pdf.pages, start=1):
                page_text = page.extract_text()
                if not page_text:
                    logger.warning(f"No text extracted from page {page_num}")
                    page_text = ""
                # Pages are separated by a blank line, trailing one included
                text_parts.append(page_text + "\n\n")

        text = "".join(text_parts)

        if len(text.strip()) <= self.min_text_length:
            logger.info(
                "Robust PDF text below threshold",
                text_length=len(text.strip()),
                page_count=page_count
            )
            return None

        logger.info(
            "Robust PDF extraction succeeded",
            text_length=len(text),
            page_count=page_count
        )
        return ExtractionResult(
            raw_text=text,
            page_count=page_count,
            quality_flag=density_quality(text, page_count),
            method="robust",
            confidence=self.confidence
        )
