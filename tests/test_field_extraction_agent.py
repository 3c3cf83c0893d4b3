"""Tests for mapping AI field extraction onto the record."""

import pytest

from clauseguard.agents.field_extraction_agent import (
    FieldExtractionAgent,
    date_slot,
    normalize_date,
    page_number,
)
from clauseguard.error_handling import AnalysisFailedError, LLMError
from clauseguard.models import (
    AIAmount,
    AIClause,
    AIDate,
    AIParty,
    ExtractionRecord,
    FieldExtractionResult,
)
from tests.conftest import FakeGeminiService, sample_fields


@pytest.fixture
def agent(fake_gemini):
    return FieldExtractionAgent(fake_gemini)


def test_mapping_onto_record(agent):
    record = ExtractionRecord(document_id="doc-1", raw_text="text")

    agent.apply_to_record(record, sample_fields())

    assert [p.value for p in record.parties] == ["Acme Corp (Provider)", "Globex Inc (Client)"]
    assert record.parties[0].source_span.text == "Acme Corp (the Provider)"
    assert record.amounts[0].value == "USD 50000 - Annual fee"
    assert record.effective_date.value == "2024-01-01"
    assert record.termination_date.value == "2025-01-01"
    assert record.renewal_date is None
    assert [c.clause_type for c in record.clauses] == [
        "Termination", "Limitation of Liability", "Confidentiality"
    ]
    assert record.clauses[0].source_span.page == 1
    assert record.summary.startswith("A hosting services agreement")


def test_party_without_role_keeps_bare_name(agent):
    record = ExtractionRecord(document_id="doc-1")
    agent.apply_to_record(record, FieldExtractionResult(parties=[AIParty(name="Initech")]))
    assert record.parties[0].value == "Initech"


def test_non_integral_amount_keeps_decimals(agent):
    record = ExtractionRecord(document_id="doc-1")
    result = FieldExtractionResult(
        amounts=[AIAmount(value=1250.5, currency="EUR", description="Late fee")]
    )

    agent.apply_to_record(record, result)

    assert record.amounts[0].value == "EUR 1250.5 - Late fee"


def test_later_date_of_same_type_wins(agent):
    record = ExtractionRecord(document_id="doc-1")
    result = FieldExtractionResult(dates=[
        AIDate(type="Effective Date", date="2024-01-01"),
        AIDate(type="Commencement / Start Date", date="March 15, 2024"),
        AIDate(type="Renewal Date", date="2026-01-01"),
        AIDate(type="Notice Period", date="60 days"),
    ])

    agent.apply_to_record(record, result)

    assert record.effective_date.value == "2024-03-15"
    assert record.renewal_date.value == "2026-01-01"
    assert record.termination_date is None


def test_reanalysis_replaces_previous_fields(agent):
    record = ExtractionRecord(document_id="doc-1")
    agent.apply_to_record(record, sample_fields())

    agent.apply_to_record(record, FieldExtractionResult(summary="Empty"))

    assert record.parties == []
    assert record.clauses == []
    assert record.effective_date is None
    assert record.summary == "Empty"


@pytest.mark.parametrize("label,slot", [
    ("Effective Date", "effective_date"),
    ("Start Date", "effective_date"),
    ("Termination Date", "termination_date"),
    ("End Date", "termination_date"),
    ("Renewal Date", "renewal_date"),
    ("Notice Period", None),
])
def test_date_slot(label, slot):
    assert date_slot(label) == slot


def test_unparseable_date_kept_verbatim():
    assert normalize_date("upon completion of deliverables") == "upon completion of deliverables"


def test_model_failure_becomes_analysis_failure():
    gemini = FakeGeminiService()
    gemini.fail_with = LLMError("Failed to parse AI response: bad json")

    with pytest.raises(AnalysisFailedError, match="Failed to parse AI response"):
        FieldExtractionAgent(gemini).extract_fields("contract text", document_id="doc-1")


def test_extract_fields_returns_model_result(agent, fake_gemini):
    result = agent.extract_fields("contract text", document_id="doc-1")
    assert len(result.parties) == 2
    assert fake_gemini.extract_calls == 1


def test_null_fields_map_to_empty_values(agent):
    record = ExtractionRecord(document_id="doc-1")
    result = FieldExtractionResult(
        parties=[AIParty(name="Initech", role=None, source_text=None)],
        dates=[
            AIDate(type="Effective Date", date=None),
            AIDate(type=None, date="2024-01-01"),
            AIDate(type="Termination Date", date="2025-06-30", source_text=None),
        ],
        clauses=[AIClause(type="Termination", title=None, content=None, source_text=None, page="3")],
        summary=None,
    )

    agent.apply_to_record(record, result)

    assert record.parties[0].value == "Initech"
    assert record.parties[0].confidence == 0.0
    assert record.parties[0].source_span.text == ""
    assert record.effective_date is None
    assert record.termination_date.value == "2025-06-30"
    assert record.clauses[0].title == ""
    assert record.clauses[0].source_span.page == 3
    assert record.summary == "No summary available"


@pytest.mark.parametrize("value,expected", [
    (4, 4),
    ("3", 3),
    (" 12 ", 12),
    ("iv", None),
    (None, None),
])
def test_page_number(value, expected):
    assert page_number(value) == expected
