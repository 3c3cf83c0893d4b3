"""Standalone OCR strategy for scanned pages (Tesseract, not AI-based)."""

import io

import pytesseract
from loguru import logger
from PIL import Image, ImageSequence

from clauseguard.error_handling import DocumentParsingError, handle_errors
from clauseguard.logging_config import log_tool_execution
from clauseguard.models import ExtractionResult
from tools.text_quality import ocr_quality


class TesseractOCRReader:
    """Runs Tesseract over every frame of an image file."""

    def __init__(self, language: str = "eng"):
        self.language = language

    @log_tool_execution("tesseract_ocr")
    @handle_errors(DocumentParsingError)
    def extract(self, content: bytes, page_count: int = 1) -> ExtractionResult:
        """OCR an image (multi-frame TIFFs yield one page per frame).

        Args:
            content: Image bytes (PNG, JPEG, TIFF)
            page_count: Page count to report when the image has a single frame

        Returns:
            ExtractionResult with method "ocr"
        """
        image = Image.open(io.BytesIO(content))

        page_texts = []
        for frame in ImageSequence.Iterator(image):
            page_texts.append(
                pytesseract.image_to_string(frame.convert("RGB"), lang=self.language)
            )

        text = "\n\n".join(page_texts).strip()
        frames = len(page_texts)

        logger.info("OCR extraction completed", text_length=len(text), frames=frames)

        return ExtractionResult(
            raw_text=text,
            page_count=frames if frames > 1 else page_count,
            quality_flag=ocr_quality(text),
            method="ocr"
        )
