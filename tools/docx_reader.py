"""Flow-document readers: Word documents and plain text."""

import io

from docx import Document
from loguru import logger

from clauseguard.error_handling import DocumentParsingError, handle_errors
from clauseguard.logging_config import log_tool_execution
from clauseguard.models import ExtractionResult
from tools.text_quality import estimate_page_count, flow_document_quality


class DocxReader:
    """Reads paragraph and table text from .docx files with python-docx."""

    @log_tool_execution("docx_reader")
    @handle_errors(DocumentParsingError)
    def extract(self, content: bytes) -> ExtractionResult:
        """Extract raw text from a Word document.

        Args:
            content: The .docx file bytes

        Returns:
            ExtractionResult with an estimated page count

        Raises:
            DocumentParsingError: If the file cannot be opened as a Word document
        """
        document = Document(io.BytesIO(content))

        lines = [paragraph.text for paragraph in document.paragraphs]
        for table in document.tables:
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                if cells:
                    lines.append(" | ".join(cells))

        text = "\n".join(lines).strip()
        logger.info("DOCX extraction completed", text_length=len(text))

        return ExtractionResult(
            raw_text=text,
            page_count=estimate_page_count(text),
            quality_flag=flow_document_quality(text),
            method="docx"
        )


class PlainTextReader:
    """Decodes plain-text and markdown uploads."""

    @log_tool_execution("plain_text_reader")
    @handle_errors(DocumentParsingError)
    def extract(self, content: bytes) -> ExtractionResult:
        try:
            text = content.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning("Text is not valid UTF-8, falling back to latin-1")
            text = content.decode("latin-1")

        text = text.strip()
        return ExtractionResult(
            raw_text=text,
            page_count=estimate_page_count(text),
            quality_flag=flow_document_quality(text),
            method="text"
        )
