"""Tests for the ingestion cascade and single-strategy readers."""

import io

import pytest
from docx import Document
from PIL import Image

from clauseguard.agents.ingestion_agent import IngestionAgent, VisionPDFStrategy
from clauseguard.error_handling import (
    DocumentParsingError,
    ExtractionExhaustedError,
    UnsupportedFormatError,
    ValidationError,
)
from clauseguard.models import ExtractionResult
from tools import ocr_reader, pdf_reader


class CountingStrategy:
    def __init__(self, name, result=None, error=None):
        self.name = name
        self.result = result
        self.error = error
        self.calls = 0

    def extract(self, content):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


def _result(method, text="x" * 600):
    return ExtractionResult(raw_text=text, page_count=1, quality_flag="high", method=method)


class FakePage:
    def __init__(self, text):
        self.text = text

    def extract_text(self):
        return self.text


class FakePlumberPdf:
    def __init__(self, pages):
        self.pages = pages

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakePdfReader:
    def __init__(self, pages):
        self.pages = pages


class TestPdfCascade:

    def test_native_success_skips_other_layers(self):
        native = CountingStrategy("native", result=_result("native"))
        robust = CountingStrategy("robust", result=_result("robust"))
        vision = CountingStrategy("vision", result=_result("vision"))
        agent = IngestionAgent(pdf_strategies=[native, robust, vision])

        result = agent.extract_text(b"%PDF-1.4", "application/pdf", document_id="doc-1")

        assert result.method == "native"
        assert (native.calls, robust.calls, vision.calls) == (1, 0, 0)

    def test_layer_exception_is_treated_as_insufficient(self):
        native = CountingStrategy("native", error=RuntimeError("broken xref"))
        robust = CountingStrategy("robust", result=_result("robust"))
        vision = CountingStrategy("vision", result=_result("vision"))
        agent = IngestionAgent(pdf_strategies=[native, robust, vision])

        result = agent.extract_text(b"%PDF-1.4", "pdf")

        assert result.method == "robust"
        assert vision.calls == 0

    def test_all_layers_insufficient_raises(self):
        layers = [
            CountingStrategy("native"),
            CountingStrategy("robust", error=ValueError("bad page")),
            CountingStrategy("vision"),
        ]
        agent = IngestionAgent(pdf_strategies=layers)

        with pytest.raises(ExtractionExhaustedError):
            agent.extract_text(b"%PDF-1.4", "application/pdf")

        assert [layer.calls for layer in layers] == [1, 1, 1]

    def test_short_native_text_falls_through_to_robust(self, monkeypatch, fake_gemini):
        monkeypatch.setattr(
            pdf_reader, "PdfReader",
            lambda stream: FakePdfReader([FakePage("x" * 40)])
        )
        monkeypatch.setattr(
            pdf_reader.pdfplumber, "open",
            lambda stream: FakePlumberPdf([FakePage("y" * 500) for _ in range(4)])
        )
        agent = IngestionAgent(gemini_service=fake_gemini)

        result = agent.extract_text(b"%PDF-1.4", "application/pdf", document_id="doc-2")

        assert result.method == "robust"
        assert result.quality_flag == "high"
        assert result.page_count == 4
        assert result.confidence == 0.90
        assert fake_gemini.vision_calls == 0

    def test_native_layer_accepts_dense_text(self, monkeypatch, fake_gemini):
        monkeypatch.setattr(
            pdf_reader, "PdfReader",
            lambda stream: FakePdfReader([FakePage("z" * 300), FakePage("z" * 300)])
        )
        agent = IngestionAgent(gemini_service=fake_gemini)

        result = agent.extract_text(b"%PDF-1.4", "application/pdf")

        assert result.method == "native"
        assert result.quality_flag == "medium"
        assert result.confidence == 0.95

    def test_vision_layer_reports_single_medium_page(self, fake_gemini):
        fake_gemini.vision_text = "Scanned agreement text " * 10
        vision = VisionPDFStrategy(fake_gemini)

        result = vision.extract(b"%PDF-1.4")

        assert result.method == "vision"
        assert result.page_count == 1
        assert result.quality_flag == "medium"
        assert result.confidence == 0.80

    def test_vision_layer_without_service_is_insufficient(self):
        assert VisionPDFStrategy(None).extract(b"%PDF-1.4") is None

    def test_garbage_pdf_exhausts_real_layers(self, fake_gemini):
        agent = IngestionAgent(gemini_service=fake_gemini)

        with pytest.raises(ExtractionExhaustedError):
            agent.extract_text(b"this is not a pdf at all", "application/pdf")

        assert fake_gemini.vision_calls == 1


class TestFormats:

    def test_unsupported_format(self):
        with pytest.raises(UnsupportedFormatError):
            IngestionAgent().extract_text(b"MZ", "application/x-msdownload")

    @pytest.mark.parametrize("declared,expected", [
        ("application/pdf", "pdf"),
        (".PDF", "pdf"),
        ("application/vnd.openxmlformats-officedocument.wordprocessingml.document", "docx"),
        ("text/plain; charset=utf-8", "text"),
        ("md", "text"),
        ("image/jpeg", "image"),
        ("tiff", "image"),
    ])
    def test_resolve_format(self, declared, expected):
        assert IngestionAgent().resolve_format(declared) == expected

    def test_plain_text_uses_flow_quality(self):
        text = "Termination requires sixty days notice. " * 30
        result = IngestionAgent().extract_text(text.encode("utf-8"), "text/plain")

        assert result.method == "text"
        assert result.quality_flag == "high"
        assert result.page_count == 3

    def test_docx_reader(self):
        document = Document()
        document.add_paragraph("NON-DISCLOSURE AGREEMENT")
        document.add_paragraph("Recipient keeps secrets in strict confidence.")
        buffer = io.BytesIO()
        document.save(buffer)

        result = IngestionAgent().extract_text(buffer.getvalue(), "docx")

        assert result.method == "docx"
        assert "strict confidence" in result.raw_text
        assert result.page_count == 1
        assert result.quality_flag == "low"

    def test_docx_reader_rejects_non_docx_bytes(self):
        with pytest.raises(DocumentParsingError):
            IngestionAgent().extract_text(b"plain bytes", "docx")

    def test_image_goes_to_standalone_ocr(self, monkeypatch):
        monkeypatch.setattr(
            ocr_reader.pytesseract, "image_to_string",
            lambda image, lang="eng": "Scanned lease agreement " * 20
        )
        image = Image.new("RGB", (64, 64), color="white")
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")

        result = IngestionAgent().extract_text(buffer.getvalue(), "image/png")

        assert result.method == "ocr"
        assert result.page_count == 1
        assert result.quality_flag == "low"


class TestUploadValidation:

    def test_empty_upload_rejected(self):
        with pytest.raises(ValidationError):
            IngestionAgent().validate_upload("empty.pdf", b"")

    def test_oversized_upload_rejected(self):
        agent = IngestionAgent(max_file_size_mb=1)
        with pytest.raises(ValidationError):
            agent.validate_upload("big.pdf", b"x" * (1024 * 1024 + 1))
