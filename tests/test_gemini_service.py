"""Tests for the Gemini wrapper using a fake genai client."""

import base64
from types import SimpleNamespace

import pytest

from clauseguard import error_handling
from clauseguard.error_handling import LLMError
from clauseguard.gemini_service import GeminiService, strip_code_fences


class FakeModels:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def generate_content(self, model, contents, config=None):
        self.calls.append({"model": model, "contents": contents, "config": config})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return SimpleNamespace(text=response)


def _service(*responses, **kwargs):
    models = FakeModels(responses)
    service = GeminiService(client=SimpleNamespace(models=models), **kwargs)
    return service, models


EXTRACTION_JSON = """{
  "parties": [{"name": "Acme Corp", "role": "Provider", "confidence": 0.95, "sourceText": "Acme"}],
  "dates": [{"type": "Effective Date", "date": "2024-01-01", "confidence": 0.9}],
  "amounts": [{"value": 50000, "currency": "USD", "description": "Annual fee"}],
  "clauses": [{"type": "Termination", "title": "Termination", "content": "60 days", "page": 2}],
  "summary": "Hosting agreement."
}"""


def test_strip_code_fences():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('```\n{"a": 1}```') == '{"a": 1}'
    assert strip_code_fences(' {"a": 1} ') == '{"a": 1}'


def test_extract_contract_fields_decodes_camel_case():
    service, models = _service("```json\n" + EXTRACTION_JSON + "\n```")

    result = service.extract_contract_fields("This agreement ...")

    assert result.parties[0].source_text == "Acme"
    assert result.clauses[0].page == 2
    assert result.amounts[0].value == 50000
    config = models.calls[0]["config"]
    assert config.temperature == 0.1
    assert config.response_mime_type == "application/json"


def test_prompt_text_is_truncated():
    service, models = _service(EXTRACTION_JSON, max_prompt_chars=100)

    service.extract_contract_fields("A" * 5000)

    prompt = models.calls[0]["contents"][0].parts[0].text
    assert "A" * 100 in prompt
    assert "A" * 101 not in prompt


def test_unparseable_response_raises_llm_error():
    service, _ = _service("Sorry, I cannot help with that.")

    with pytest.raises(LLMError, match="Failed to parse AI response"):
        service.extract_contract_fields("text")


def test_transport_failure_raises_llm_error():
    service, _ = _service(ConnectionError("reset by peer"))

    with pytest.raises(LLMError, match="reset by peer"):
        service.analyze_risks("text")


def test_unconfigured_service_raises():
    service = GeminiService(api_key=None)

    assert service.is_configured is False
    with pytest.raises(LLMError, match="not configured"):
        service.extract_contract_fields("text")
    with pytest.raises(LLMError, match="not configured"):
        service.chat("prompt")


def test_analyze_risks():
    service, _ = _service('{"riskScore": 65, "risks": [{"type": "Auto-renewal", "severity": "high"}], '
                          '"missingClauses": ["Force Majeure"], "complianceIssues": []}')

    analysis = service.analyze_risks("text")

    assert analysis.risk_score == 65
    assert analysis.risks[0].severity == "high"
    assert analysis.missing_clauses == ["Force Majeure"]


def test_chat_retries_transient_failures(monkeypatch):
    delays = []
    monkeypatch.setattr(error_handling.time, "sleep", delays.append)
    service, models = _service(TimeoutError("deadline"), "", "Sixty days.")

    assert service.chat("prompt") == "Sixty days."
    assert len(models.calls) == 3
    assert delays == [1.0, 2.0]


def test_chat_gives_up_after_three_attempts(monkeypatch):
    monkeypatch.setattr(error_handling.time, "sleep", lambda delay: None)
    service, models = _service(TimeoutError("a"), TimeoutError("b"), TimeoutError("c"))

    with pytest.raises(LLMError):
        service.chat("prompt")
    assert len(models.calls) == 3


def test_vision_sends_pdf_bytes():
    service, models = _service("Scanned page text")
    payload = base64.b64encode(b"%PDF-1.4 fake").decode("ascii")

    assert service.extract_text_from_pdf(payload) == "Scanned page text"

    pdf_part = models.calls[0]["contents"][0]
    assert pdf_part.inline_data.data == b"%PDF-1.4 fake"
    assert pdf_part.inline_data.mime_type == "application/pdf"


def test_null_and_mistyped_fields_are_accepted():
    service, _ = _service("""{
      "parties": [{"name": "Initech", "role": null, "confidence": null, "sourceText": null}],
      "dates": [{"type": "Effective Date", "date": null, "sourceText": null}],
      "amounts": [{"value": "50,000", "currency": null, "description": "Setup fee"}],
      "clauses": [{"type": "Termination", "title": null, "content": "60 days", "sourceText": null, "page": "3"}],
      "summary": null
    }""")

    result = service.extract_contract_fields("text")

    assert result.parties[0].role is None
    assert result.parties[0].source_text is None
    assert result.dates[0].date is None
    assert result.amounts[0].currency is None
    assert result.clauses[0].page == "3"
    assert result.summary is None


def test_clause_page_of_wrong_type_still_fails():
    service, _ = _service('{"clauses": [{"type": "Termination", "page": [3]}]}')

    with pytest.raises(LLMError, match="Failed to parse AI response"):
        service.extract_contract_fields("text")
