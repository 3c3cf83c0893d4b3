"""
Ingestion Agent - turns uploaded bytes into raw contract text.

Routing by declared format:
- PDF: three-layer cascade, tried in strict order
    1. native   (pypdf text layer)           confidence 0.95
    2. robust   (pdfplumber page by page)    confidence 0.90
    3. vision   (Gemini reads the PDF)       confidence 0.80
  A layer that raises or yields too little text is "insufficient" and the
  next layer runs. Only when all three are insufficient does extraction fail.
- DOCX / plain text / markdown: single reader, no cascade
- Images: standalone Tesseract OCR
"""

import base64
from typing import Dict, List, Optional

from loguru import logger

from clauseguard.error_handling import (
    ExtractionExhaustedError,
    UnsupportedFormatError,
    ValidationError,
    insufficient_on_error,
)
from clauseguard.gemini_service import GeminiService
from clauseguard.logging_config import get_document_logger, log_agent_execution
from clauseguard.models import ExtractionResult
from tools.docx_reader import DocxReader, PlainTextReader
from tools.ocr_reader import TesseractOCRReader
from tools.pdf_reader import NativePDFStrategy, RobustPDFStrategy


FORMAT_ALIASES: Dict[str, str] = {
    # MIME types
    "application/pdf": "pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/msword": "docx",
    "text/plain": "text",
    "text/markdown": "text",
    "image/png": "image",
    "image/jpeg": "image",
    "image/tiff": "image",
    # File extensions
    "pdf": "pdf",
    "docx": "docx",
    "doc": "docx",
    "txt": "text",
    "md": "text",
    "png": "image",
    "jpg": "image",
    "jpeg": "image",
    "tif": "image",
    "tiff": "image",
}


class VisionPDFStrategy:
    """Layer 3: hand the whole PDF to the multimodal model."""

    name = "vision"
    confidence = 0.80

    def __init__(self, gemini_service: Optional[GeminiService], min_text_length: int = 50):
        self.gemini_service = gemini_service
        self.min_text_length = min_text_length

    def extract(self, content: bytes) -> Optional[ExtractionResult]:
        if self.gemini_service is None:
            logger.warning("Vision layer skipped: no AI service configured")
            return None

        text = self.gemini_service.extract_text_from_pdf(
            base64.b64encode(content).decode("ascii")
        )
        if len(text.strip()) <= self.min_text_length:
            logger.info("Vision text below threshold", text_length=len(text.strip()))
            return None

        return ExtractionResult(
            raw_text=text,
            page_count=1,
            quality_flag="medium",
            method="vision",
            confidence=self.confidence
        )


class IngestionAgent:
    """Agent responsible for turning an uploaded file into raw text.

    This agent:
    1. Validates the upload (size, emptiness)
    2. Resolves the declared format (MIME type or extension)
    3. Runs the PDF cascade or the single reader for the format
    """

    def __init__(
        self,
        gemini_service: Optional[GeminiService] = None,
        min_text_length: int = 50,
        max_file_size_mb: int = 10,
        pdf_strategies: Optional[List] = None,
        docx_reader: Optional[DocxReader] = None,
        text_reader: Optional[PlainTextReader] = None,
        ocr_reader: Optional[TesseractOCRReader] = None
    ):
        """Initialize the Ingestion Agent.

        Args:
            gemini_service: AI collaborator for the vision layer (None disables it)
            min_text_length: A layer must produce more than this many characters
            max_file_size_mb: Maximum upload size in megabytes
            pdf_strategies: Ordered cascade layers; defaults to native, robust, vision
            docx_reader: Word document reader
            text_reader: Plain-text reader
            ocr_reader: Standalone OCR reader for images
        """
        self.min_text_length = min_text_length
        self.max_size_bytes = max_file_size_mb * 1024 * 1024

        self.pdf_strategies = pdf_strategies or [
            NativePDFStrategy(min_text_length=min_text_length),
            RobustPDFStrategy(min_text_length=min_text_length),
            VisionPDFStrategy(gemini_service, min_text_length=min_text_length),
        ]
        self.docx_reader = docx_reader or DocxReader()
        self.text_reader = text_reader or PlainTextReader()
        self.ocr_reader = ocr_reader or TesseractOCRReader()

        logger.info(
            "Ingestion Agent initialized",
            layers=[strategy.name for strategy in self.pdf_strategies],
            max_file_size_mb=max_file_size_mb
        )

    def resolve_format(self, declared_format: str) -> str:
        """Map a MIME type or file extension to pdf, docx, text or image.

        Raises:
            UnsupportedFormatError: If the format is not recognized
        """
        key = (declared_format or "").strip().lower().lstrip(".")
        key = key.split(";")[0].strip()
        resolved = FORMAT_ALIASES.get(key)
        if resolved is None:
            raise UnsupportedFormatError(f"Unsupported file format: {declared_format}")
        return resolved

    def validate_upload(self, filename: str, content: bytes) -> None:
        """Reject empty or oversized uploads.

        Raises:
            ValidationError: If the file is empty or larger than the limit
        """
        if not content:
            raise ValidationError(f"File is empty: {filename}")
        if len(content) > self.max_size_bytes:
            raise ValidationError(
                f"File size ({len(content) / 1024 / 1024:.2f} MB) exceeds "
                f"maximum allowed size ({self.max_size_bytes / 1024 / 1024:.0f} MB)"
            )

    @log_agent_execution("IngestionAgent")
    def extract_text(
        self,
        content: bytes,
        declared_format: str,
        document_id: str = "unknown"
    ) -> ExtractionResult:
        """Extract raw text from a document.

        Args:
            content: File bytes
            declared_format: MIME type or extension
            document_id: Document identifier for logging

        Returns:
            ExtractionResult with raw text, page count, quality flag and method

        Raises:
            UnsupportedFormatError: If the format is not recognized
            ExtractionExhaustedError: If every PDF layer was insufficient
            DocumentParsingError: If a single-strategy reader fails
        """
        file_format = self.resolve_format(declared_format)

        if file_format == "pdf":
            return self.extract_from_pdf(content, document_id=document_id)
        if file_format == "docx":
            return self.docx_reader.extract(content)
        if file_format == "image":
            return self.extract_with_ocr(content)
        return self.text_reader.extract(content)

    def extract_from_pdf(self, content: bytes, document_id: str = "unknown") -> ExtractionResult:
        """Run the cascade; first sufficient layer wins."""
        doc_logger = get_document_logger(document_id, "IngestionAgent")

        for strategy in self.pdf_strategies:
            doc_logger.info(f"Trying {strategy.name} extraction layer")
            result = insufficient_on_error(strategy.name)(strategy.extract)(content)
            if result is not None:
                doc_logger.info(
                    f"Layer {strategy.name} accepted",
                    text_length=len(result.raw_text),
                    page_count=result.page_count,
                    quality=result.quality_flag
                )
                return result
            doc_logger.warning(f"Layer {strategy.name} insufficient, moving on")

        raise ExtractionExhaustedError(
            "All extraction methods failed. The PDF may be corrupted, encrypted, or image-only."
        )

    def extract_with_ocr(self, content: bytes, page_count: int = 1) -> ExtractionResult:
        """Standalone OCR for scanned images, outside the PDF cascade."""
        return self.ocr_reader.extract(content, page_count=page_count)
