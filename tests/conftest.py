"""Shared fixtures: a fake AI collaborator, a temp SQLite store and an orchestrator."""

import threading
import time
from typing import Optional

import pytest

from clauseguard.error_handling import LLMError
from clauseguard.models import (
    AIAmount,
    AIClause,
    AIDate,
    AIParty,
    FieldExtractionResult,
    RiskAnalysis,
    RiskItem,
)
from clauseguard.orchestrator import DocumentPipelineOrchestrator
from clauseguard.task_runner import AnalysisTaskRunner
from memory.record_store import DatabaseRecordStore


SAMPLE_CONTRACT = """MASTER SERVICES AGREEMENT

This Master Services Agreement is entered into as of January 1, 2024 between
Acme Corp (the Provider) and Globex Inc (the Client).

1. Services. Provider shall deliver the hosting services described in Exhibit A.

2. Payment. Client shall pay an annual fee of USD 50,000 within 30 days of invoice.

3. Termination. Either party may terminate this Agreement with a termination notice period
of sixty (60) days by written notice to the other party.

4. Liability. Each party's liability is capped at the fees paid in the prior twelve months.

5. Confidentiality. Each party shall keep the other party's information confidential.
"""


def sample_fields() -> FieldExtractionResult:
    return FieldExtractionResult(
        parties=[
            AIParty(name="Acme Corp", role="Provider", confidence=0.95, source_text="Acme Corp (the Provider)"),
            AIParty(name="Globex Inc", role="Client", confidence=0.93, source_text="Globex Inc (the Client)"),
        ],
        dates=[
            AIDate(type="Effective Date", date="2024-01-01", confidence=0.9, source_text="as of January 1, 2024"),
            AIDate(type="Termination Date", date="2025-01-01", confidence=0.7, source_text="sixty (60) days"),
        ],
        amounts=[
            AIAmount(value=50000.0, currency="USD", description="Annual fee", confidence=0.85,
                     source_text="annual fee of USD 50,000"),
        ],
        clauses=[
            AIClause(type="Termination", title="Termination Clause",
                     content="Either party may terminate with a termination notice period of sixty days.",
                     confidence=0.8, source_text="3. Termination.", page=1),
            AIClause(type="Limitation of Liability", title="Liability Cap",
                     content="Liability is capped at the fees paid in the prior twelve months.",
                     confidence=0.8, source_text="4. Liability.", page=1),
            AIClause(type="Confidentiality", title="Confidentiality",
                     content="Each party shall keep the other party's information confidential.",
                     confidence=0.8, source_text="5. Confidentiality.", page=1),
        ],
        summary="A hosting services agreement between Acme Corp and Globex Inc.",
    )


class FakeGeminiService:
    """Stands in for GeminiService; counts calls and can block or fail."""

    is_configured = True

    def __init__(self, fields: Optional[FieldExtractionResult] = None):
        self.fields = fields or sample_fields()
        self.fail_with: Optional[Exception] = None
        self.gate: Optional[threading.Event] = None
        self.vision_text = ""
        self.chat_answer = "The termination notice period is sixty days."
        self.risk = RiskAnalysis(
            risk_score=42,
            risks=[RiskItem(type="Auto-renewal", severity="medium", description="Renews silently")],
            missing_clauses=["Force Majeure"],
        )
        self.extract_calls = 0
        self.vision_calls = 0
        self.chat_calls = 0
        self.prompts = []

    def extract_contract_fields(self, contract_text: str) -> FieldExtractionResult:
        self.extract_calls += 1
        if self.gate is not None:
            self.gate.wait(5)
        if self.fail_with is not None:
            raise self.fail_with
        return self.fields

    def extract_text_from_pdf(self, base64_content: str) -> str:
        self.vision_calls += 1
        return self.vision_text

    def analyze_risks(self, contract_text: str) -> RiskAnalysis:
        return self.risk

    def chat(self, prompt: str) -> str:
        self.chat_calls += 1
        self.prompts.append(prompt)
        return self.chat_answer


class UnconfiguredGeminiService(FakeGeminiService):
    is_configured = False

    def extract_contract_fields(self, contract_text: str) -> FieldExtractionResult:
        raise LLMError("Gemini API not configured")


def wait_until(predicate, timeout: float = 5.0) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def fake_gemini():
    return FakeGeminiService()


@pytest.fixture
def store(tmp_path):
    return DatabaseRecordStore(db_path=str(tmp_path / "clauseguard_test.db"))


@pytest.fixture
def orchestrator(store, fake_gemini):
    orch = DocumentPipelineOrchestrator(
        store=store,
        gemini_service=fake_gemini,
        task_runner=AnalysisTaskRunner(max_workers=2, queue_limit=4),
    )
    yield orch
    if fake_gemini.gate is not None:
        fake_gemini.gate.set()
    orch.shutdown(wait=True)


@pytest.fixture
def uploaded(orchestrator):
    """A plain-text contract already ingested for organization "org-1"."""
    document, record = orchestrator.ingest_document(
        SAMPLE_CONTRACT.encode("utf-8"),
        filename="msa.txt",
        mime_type="text/plain",
        organization_id="org-1",
    )
    return document
