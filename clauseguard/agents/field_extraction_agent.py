"""
Field Extraction Agent - structured analysis of raw contract text.

Asks the AI collaborator for parties, dates, amounts and clauses, then maps
the response onto the ExtractionRecord fields:
- party   -> "<name> (<role>)"
- amount  -> "<currency> <value> - <description>"
- dates   -> routed to effective / termination / renewal by their type label
"""

from typing import Optional

import dateparser
from loguru import logger

from clauseguard.error_handling import AnalysisFailedError, LLMError
from clauseguard.gemini_service import GeminiService
from clauseguard.logging_config import log_agent_execution
from clauseguard.models import (
    ExtractedClause,
    ExtractedField,
    ExtractionRecord,
    FieldExtractionResult,
    SourceSpan,
)


def normalize_date(value: str) -> str:
    """ISO ``YYYY-MM-DD`` when the string parses as a date, else unchanged."""
    parsed = dateparser.parse(value) if value else None
    if parsed is None:
        return value
    return parsed.date().isoformat()


def format_amount(value) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return "" if value is None else str(value)


def date_slot(date_type: str) -> Optional[str]:
    """Record attribute a date label belongs to, or None."""
    label = date_type.lower()
    if "effective" in label or "start" in label:
        return "effective_date"
    if "termination" in label or "end" in label:
        return "termination_date"
    if "renewal" in label:
        return "renewal_date"
    return None


def page_number(value) -> Optional[int]:
    """Page as an int; numeric strings are coerced, anything else is None."""
    if value is None or isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return None


class FieldExtractionAgent:
    """Runs AI field extraction and maps the result into a record."""

    def __init__(self, gemini_service: GeminiService):
        self.gemini_service = gemini_service

    @log_agent_execution("FieldExtractionAgent")
    def extract_fields(self, raw_text: str, document_id: str = "unknown") -> FieldExtractionResult:
        """Call the model for structured fields.

        Raises:
            AnalysisFailedError: If the model call or response parsing fails
        """
        try:
            return self.gemini_service.extract_contract_fields(raw_text)
        except LLMError as e:
            raise AnalysisFailedError(str(e)) from e

    def apply_to_record(
        self,
        record: ExtractionRecord,
        result: FieldExtractionResult
    ) -> ExtractionRecord:
        """Write the mapped fields onto ``record`` (replacing previous values).

        Null fields in the model output count as empty: a party without a
        role keeps its bare name and a date without a value is skipped.
        """
        record.parties = [
            ExtractedField(
                value=f"{party.name} ({party.role})" if party.role else party.name,
                confidence=party.confidence or 0.0,
                source_span=SourceSpan(text=party.source_text or "")
            )
            for party in result.parties
        ]

        record.amounts = [
            ExtractedField(
                value=f"{amount.currency or ''} {format_amount(amount.value)} - {amount.description or ''}",
                confidence=amount.confidence or 0.0,
                source_span=SourceSpan(text=amount.source_text or "")
            )
            for amount in result.amounts
        ]

        record.clauses = [
            ExtractedClause(
                clause_type=clause.type or "",
                title=clause.title or "",
                content=clause.content or "",
                confidence=clause.confidence or 0.0,
                source_span=SourceSpan(text=clause.source_text or "", page=page_number(clause.page))
            )
            for clause in result.clauses
        ]

        dates = {"effective_date": None, "termination_date": None, "renewal_date": None}
        for entry in result.dates:
            if not entry.date:
                logger.debug(f"Ignoring date of type '{entry.type}' without a value")
                continue
            slot = date_slot(entry.type or "")
            if slot is None:
                logger.debug(f"Ignoring date of type '{entry.type}'")
                continue
            # Later entries for the same slot overwrite earlier ones
            dates[slot] = ExtractedField(
                value=normalize_date(entry.date),
                confidence=entry.confidence or 0.0,
                source_span=SourceSpan(text=entry.source_text or "")
            )

        record.effective_date = dates["effective_date"]
        record.termination_date = dates["termination_date"]
        record.renewal_date = dates["renewal_date"]
        record.summary = result.summary or "No summary available"

        return record
