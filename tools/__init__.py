"""Tools package for document reading, retrieval and compliance utilities."""

from tools.pdf_reader import NativePDFStrategy, RobustPDFStrategy
from tools.docx_reader import DocxReader, PlainTextReader
from tools.ocr_reader import TesseractOCRReader
from tools.text_quality import (
    density_quality,
    estimate_page_count,
    flow_document_quality,
    ocr_quality,
    validate_quality,
)
from tools.context_retriever import ContextRetriever, build_context_prompt
from tools.compliance_engine import ComplianceEngine

__all__ = [
    "NativePDFStrategy",
    "RobustPDFStrategy",
    "DocxReader",
    "PlainTextReader",
    "TesseractOCRReader",
    "density_quality",
    "estimate_page_count",
    "flow_document_quality",
    "ocr_quality",
    "validate_quality",
    "ContextRetriever",
    "build_context_prompt",
    "ComplianceEngine",
]
