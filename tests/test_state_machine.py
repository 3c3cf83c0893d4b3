"""Tests for the extraction status state machine."""

from datetime import datetime, timedelta

import pytest

from clauseguard.error_handling import InvalidStateTransitionError
from clauseguard.models import ExtractionRecord
from clauseguard.state_machine import ExtractionStateMachine


@pytest.fixture
def machine():
    return ExtractionStateMachine()


def test_upload_path_goes_straight_to_completed(machine):
    record = ExtractionRecord(document_id="doc-1")

    machine.mark_text_extracted(record)

    assert record.extraction_status == "completed"
    assert record.extracted_at is not None


def test_transition_stamps_local_time(machine):
    record = ExtractionRecord(document_id="doc-1", extraction_status="completed")

    machine.begin_processing(record)

    assert record.updated_at.tzinfo is None
    assert abs(datetime.now() - record.updated_at) < timedelta(seconds=5)


def test_analysis_round_trip(machine):
    record = ExtractionRecord(document_id="doc-1", extraction_status="completed")

    machine.begin_processing(record)
    assert record.extraction_status == "processing"

    machine.complete(record)
    assert record.extraction_status == "completed"


def test_failure_stores_error_and_retrigger_clears_it(machine):
    record = ExtractionRecord(document_id="doc-1", extraction_status="processing")

    machine.fail(record, "model timed out")
    assert record.extraction_status == "failed"
    assert record.extraction_error == "model timed out"

    machine.begin_processing(record)
    assert record.extraction_status == "processing"
    assert record.extraction_error is None


@pytest.mark.parametrize("current,target", [
    ("processing", "processing"),
    ("completed", "failed"),
    ("failed", "completed"),
    ("completed", "pending"),
])
def test_invalid_transitions_are_rejected(machine, current, target):
    record = ExtractionRecord(document_id="doc-1", extraction_status=current)

    with pytest.raises(InvalidStateTransitionError) as exc_info:
        machine.transition(record, target)

    assert exc_info.value.current == current
    assert record.extraction_status == current
