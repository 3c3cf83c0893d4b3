"""Extraction status state machine.

    pending -> processing -> completed | failed

Upload moves a fresh record straight to ``completed`` once raw text exists.
Structured analysis re-enters ``processing`` from ``completed`` (text ready)
or from ``failed`` (explicit re-trigger). Everything else is rejected.
"""

from datetime import datetime
from typing import Dict, FrozenSet, Optional

from loguru import logger

from clauseguard.error_handling import InvalidStateTransitionError
from clauseguard.models import ExtractionRecord


TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "pending": frozenset({"processing", "completed", "failed"}),
    "processing": frozenset({"completed", "failed"}),
    "completed": frozenset({"processing"}),
    "failed": frozenset({"processing"}),
}


class ExtractionStateMachine:
    """Applies status transitions to an ExtractionRecord in place."""

    def can_transition(self, current: str, target: str) -> bool:
        return target in TRANSITIONS.get(current, frozenset())

    def transition(
        self,
        record: ExtractionRecord,
        target: str,
        error: Optional[str] = None
    ) -> ExtractionRecord:
        """Move ``record`` to ``target`` or raise InvalidStateTransitionError."""
        current = record.extraction_status
        if not self.can_transition(current, target):
            raise InvalidStateTransitionError(current, target)

        record.extraction_status = target
        record.updated_at = datetime.now()
        if target == "failed":
            record.extraction_error = error or "Unknown error"
        elif target == "processing":
            record.extraction_error = None

        logger.debug(
            f"Extraction status {current} -> {target}",
            document_id=record.document_id
        )
        return record

    def mark_text_extracted(self, record: ExtractionRecord) -> ExtractionRecord:
        """Upload path: raw text (or placeholder) is in place."""
        self.transition(record, "completed")
        record.extracted_at = record.updated_at
        return record

    def begin_processing(self, record: ExtractionRecord) -> ExtractionRecord:
        return self.transition(record, "processing")

    def complete(self, record: ExtractionRecord) -> ExtractionRecord:
        self.transition(record, "completed")
        record.extracted_at = record.updated_at
        return record

    def fail(self, record: ExtractionRecord, error: str) -> ExtractionRecord:
        return self.transition(record, "failed", error=error)
