"""
Data Models - msgspec Structs for efficient serialization.

These models define the records that move through the document pipeline:
upload -> text extraction -> structured analysis -> compliance / chat.
Using msgspec provides:
- Fast JSON serialization/deserialization for the SQLite record store
- Type validation when decoding AI collaborator responses
- Memory-efficient struct representation
"""

from datetime import datetime
from typing import Any, List, Literal, Optional, Union

import msgspec
from msgspec import Struct


QualityFlag = Literal["low", "medium", "high"]
ExtractionStatus = Literal["pending", "processing", "completed", "failed"]
ExtractionMethod = Literal["native", "robust", "vision", "docx", "text", "ocr"]
Severity = Literal["low", "medium", "high", "critical"]

RULE_TYPES = (
    "clause_required",
    "clause_forbidden",
    "value_range",
    "term_length",
    "payment_terms",
    "liability_cap",
    "custom",
)


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


class SourceSpan(Struct, omit_defaults=True):
    """Pointer back to the originating text (and page) of an extracted value."""
    text: str = ""
    page: Optional[int] = None


class ExtractedField(Struct, omit_defaults=True):
    """A single AI-derived value with its confidence and source span."""
    value: Union[str, float, None]
    confidence: float = 0.0
    source_span: SourceSpan = msgspec.field(default_factory=SourceSpan)


class ExtractedClause(Struct, omit_defaults=True):
    """A clause as returned by the AI collaborator, kept in response order."""
    clause_type: str
    title: str = ""
    content: str = ""
    confidence: float = 0.0
    source_span: SourceSpan = msgspec.field(default_factory=SourceSpan)


class ExtractionResult(Struct):
    """Output of a single text extraction (one cascade layer or one reader)."""
    raw_text: str
    page_count: int
    quality_flag: QualityFlag
    method: ExtractionMethod
    confidence: Optional[float] = None


class ExtractionRecord(Struct, kw_only=True):
    """Per-document extraction state: raw text plus structured analysis fields."""
    document_id: str
    raw_text: str = ""
    page_count: int = 0
    quality_flag: QualityFlag = "low"
    extraction_method: Optional[str] = None
    extraction_status: ExtractionStatus = "pending"
    extraction_error: Optional[str] = None
    extracted_at: Optional[datetime] = None
    parties: List[ExtractedField] = []
    effective_date: Optional[ExtractedField] = None
    termination_date: Optional[ExtractedField] = None
    renewal_date: Optional[ExtractedField] = None
    amounts: List[ExtractedField] = []
    clauses: List[ExtractedClause] = []
    summary: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def has_structured_data(self) -> bool:
        """True once structured analysis has populated parties or clauses.

        The status enum is shared by text extraction and structured analysis,
        so this is the only reliable "structured fields ready" signal.
        """
        return bool(self.parties) or bool(self.clauses)


class ContractDocument(Struct, kw_only=True):
    """The uploaded document that owns an extraction record."""
    document_id: str
    organization_id: str
    filename: str
    mime_type: str
    uploaded_at: datetime
    risk_score: Optional[float] = None


# ---------------------------------------------------------------------------
# Compliance
# ---------------------------------------------------------------------------


class RuleConfig(Struct, omit_defaults=True, rename="camel"):
    """Structured rule parameters, keyed by rule type.

    ``acceptable_values``, ``pattern`` and ``custom_check`` are stored and
    returned with the rule for payment_terms and custom rules, but no check
    reads them yet; those rule types always pass.
    """
    clause_type: Optional[str] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    acceptable_values: List[str] = []
    pattern: Optional[str] = None
    custom_check: Optional[str] = None


class ComplianceRule(Struct, kw_only=True):
    """Organization-defined rule. ``rule_type`` stays a plain string so that
    unrecognized types stored by older clients still load (they pass trivially)."""
    rule_id: str
    organization_id: str
    name: str
    rule_type: str
    severity: Severity = "medium"
    enabled: bool = True
    config: RuleConfig = msgspec.field(default_factory=RuleConfig)
    recommendation: Optional[str] = None
    description: Optional[str] = None
    category: str = "Legal"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RuleOutcome(Struct):
    passed: bool
    message: str
    affected_clause: Optional[str] = None


class Deviation(Struct, omit_defaults=True):
    """A failed rule, denormalized so result history survives rule edits."""
    rule_id: str
    rule_name: str
    severity: str
    message: str
    recommendation: Optional[str] = None
    affected_clause: Optional[str] = None


class ComplianceCheckResult(Struct):
    score: int
    passed: bool
    total_rules: int
    passed_rules: int
    failed_rules: int
    deviations: List[Deviation] = []


class ComplianceResult(Struct, kw_only=True):
    """Persisted compliance verdict, one per document (replace-on-write)."""
    document_id: str
    organization_id: str
    score: int
    passed: bool
    total_rules: int
    passed_rules: int
    failed_rules: int
    deviations: List[Deviation] = []
    analyzed_at: datetime


# ---------------------------------------------------------------------------
# Retrieval / chat
# ---------------------------------------------------------------------------


class RetrievedContext(Struct, omit_defaults=True):
    text: str
    relevance_score: int
    page: Optional[int] = None
    clause_type: Optional[str] = None


class ChatMessage(Struct, kw_only=True):
    message_id: str
    document_id: str
    question: str
    answer: str
    sources: List[RetrievedContext] = []
    conversation_id: Optional[str] = None
    processing_time_ms: int = 0
    created_at: datetime


# ---------------------------------------------------------------------------
# AI collaborator payloads (camelCase on the wire)
# ---------------------------------------------------------------------------


class AIParty(Struct, rename="camel"):
    name: str = ""
    role: Optional[str] = None
    confidence: Optional[float] = None
    source_text: Optional[str] = None


class AIDate(Struct, rename="camel"):
    type: Optional[str] = None
    date: Optional[str] = None
    confidence: Optional[float] = None
    source_text: Optional[str] = None


class AIAmount(Struct, rename="camel"):
    value: Union[float, str, None] = None
    currency: Optional[str] = None
    description: Optional[str] = None
    confidence: Optional[float] = None
    source_text: Optional[str] = None


class AIClause(Struct, rename="camel"):
    """Model output may send ``page`` as a number or a numeric string."""
    type: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None
    confidence: Optional[float] = None
    source_text: Optional[str] = None
    page: Union[int, str, None] = None


class FieldExtractionResult(Struct, rename="camel"):
    parties: List[AIParty] = []
    dates: List[AIDate] = []
    amounts: List[AIAmount] = []
    clauses: List[AIClause] = []
    summary: Optional[str] = None


class RiskItem(Struct, rename="camel"):
    type: str
    severity: str = "medium"
    description: str = ""
    recommendation: str = ""
    source_text: str = ""


class RiskAnalysis(Struct, rename="camel"):
    risk_score: Optional[float] = None
    risks: List[RiskItem] = []
    missing_clauses: List[str] = []
    compliance_issues: List[Any] = []


# ---------------------------------------------------------------------------
# Operation results
# ---------------------------------------------------------------------------


class AnalysisTicket(Struct, kw_only=True):
    """Answer to a structured-analysis request; poll the record for progress.

    ``status`` is "accepted" (job started), "processing" (a job for this
    document is already running) or "already_completed" (structured data
    exists, nothing was started).
    """
    document_id: str
    status: Literal["accepted", "processing", "already_completed"]
    extraction_status: ExtractionStatus
    message: str
    record: Optional[ExtractionRecord] = None


class ComplianceStats(Struct):
    total_rules: int
    enabled_rules: int
    total_documents: int
    passed_documents: int
    failed_documents: int
    average_score: int
