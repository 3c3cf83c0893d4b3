"""
Document Pipeline Orchestrator - coordinates the agents around the record store.

    upload -> text extraction -> (background) structured analysis
           -> auto compliance -> chat / risk analysis on demand

Key Features:
- Upload never fails because of extraction: a placeholder text is stored
- Structured analysis is request/poll, runs on a bounded worker pool and is
  single-flight per document
- Explicit ExtractionStateMachine for every status change
"""

import threading
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from loguru import logger

from clauseguard.agents import (
    ContractChatAgent,
    FieldExtractionAgent,
    IngestionAgent,
    RiskScoringAgent,
)
from clauseguard.config import Settings
from clauseguard.error_handling import (
    AnalysisNotReadyError,
    RecordNotFoundError,
    TaskQueueFullError,
    UnsupportedFormatError,
    ValidationError,
)
from clauseguard.gemini_service import GeminiService
from clauseguard.logging_config import get_document_logger
from clauseguard.models import (
    RULE_TYPES,
    AnalysisTicket,
    ChatMessage,
    ComplianceResult,
    ComplianceRule,
    ComplianceStats,
    ContractDocument,
    ExtractionRecord,
    RiskAnalysis,
    RuleConfig,
)
from clauseguard.state_machine import ExtractionStateMachine
from clauseguard.task_runner import AnalysisTaskRunner
from memory.record_store import DatabaseRecordStore, create_record_store
from tools.compliance_engine import ComplianceEngine


PLACEHOLDER_PREFIX = "[Extraction Failed]"
SEVERITIES = ("low", "medium", "high", "critical")


class DocumentPipelineOrchestrator:
    """
    Coordinates ingestion, structured analysis, compliance and chat.

    All collaborators are injected; ``create_orchestrator`` wires the
    defaults from Settings.
    """

    def __init__(
        self,
        store: DatabaseRecordStore,
        gemini_service: GeminiService,
        task_runner: Optional[AnalysisTaskRunner] = None,
        ingestion_agent: Optional[IngestionAgent] = None,
        compliance_engine: Optional[ComplianceEngine] = None,
        min_text_length: int = 50,
        max_file_size_mb: int = 10
    ):
        """Initialize the orchestrator.

        Args:
            store: Record store for documents, records, rules, results and chat
            gemini_service: AI collaborator shared by all agents
            task_runner: Background pool for structured analysis
            ingestion_agent: Text extraction agent
            compliance_engine: Rule evaluator
            min_text_length: Cascade acceptance threshold
            max_file_size_mb: Upload size limit
        """
        self.store = store
        self.gemini_service = gemini_service
        self.task_runner = task_runner or AnalysisTaskRunner()
        self.ingestion_agent = ingestion_agent or IngestionAgent(
            gemini_service=gemini_service,
            min_text_length=min_text_length,
            max_file_size_mb=max_file_size_mb
        )
        self.field_agent = FieldExtractionAgent(gemini_service)
        self.risk_agent = RiskScoringAgent(gemini_service)
        self.chat_agent = ContractChatAgent(gemini_service)
        self.compliance_engine = compliance_engine or ComplianceEngine()
        self.state_machine = ExtractionStateMachine()

        # Serializes the check-and-submit step of structured analysis
        self._analysis_lock = threading.Lock()

        logger.info(
            "DocumentPipelineOrchestrator initialized",
            ai_configured=gemini_service.is_configured,
            workers=self.task_runner.max_workers
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_document(self, document_id: str) -> ContractDocument:
        document = self.store.get_document(document_id)
        if document is None:
            raise RecordNotFoundError(f"Document not found: {document_id}")
        return document

    def list_documents(self, organization_id: Optional[str] = None) -> List[ContractDocument]:
        return self.store.list_documents(organization_id)

    def get_extraction_status(self, document_id: str) -> ExtractionRecord:
        """Current extraction record (the poll for structured analysis)."""
        record = self.store.get_record(document_id)
        if record is None:
            raise RecordNotFoundError(f"No extraction found for document: {document_id}")
        return record

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    def _declared_format(self, filename: str, mime_type: Optional[str]) -> str:
        if mime_type:
            try:
                self.ingestion_agent.resolve_format(mime_type)
                return mime_type
            except UnsupportedFormatError:
                pass

        extension = Path(filename).suffix
        if extension:
            self.ingestion_agent.resolve_format(extension)
            return extension
        raise UnsupportedFormatError(f"Unsupported file format: {mime_type or filename}")

    def ingest_document(
        self,
        content: bytes,
        filename: str,
        mime_type: Optional[str] = None,
        organization_id: str = "default",
        document_id: Optional[str] = None
    ) -> Tuple[ContractDocument, ExtractionRecord]:
        """Store an upload and extract its raw text synchronously.

        Extraction failures never block the upload: the record is still
        created, holding a placeholder text with quality "low".

        Raises:
            ValidationError: If the file is empty or too large
            UnsupportedFormatError: If neither MIME type nor extension is supported
        """
        self.ingestion_agent.validate_upload(filename, content)
        declared_format = self._declared_format(filename, mime_type)

        document_id = document_id or str(uuid.uuid4())
        doc_logger = get_document_logger(document_id, "Orchestrator")
        doc_logger.info(f"Ingesting {filename}", size_bytes=len(content), format=declared_format)

        now = datetime.now()
        record = ExtractionRecord(document_id=document_id, created_at=now, updated_at=now)

        try:
            result = self.ingestion_agent.extract_text(
                content, declared_format, document_id=document_id
            )
            record.raw_text = result.raw_text
            record.page_count = result.page_count
            record.quality_flag = result.quality_flag
            record.extraction_method = result.method
        except Exception as e:
            doc_logger.error("Text extraction failed, storing placeholder", error=str(e))
            record.raw_text = f"{PLACEHOLDER_PREFIX} {str(e)}"
            record.page_count = 0
            record.quality_flag = "low"
            record.extraction_method = None

        self.state_machine.mark_text_extracted(record)

        document = ContractDocument(
            document_id=document_id,
            organization_id=organization_id,
            filename=filename,
            mime_type=mime_type or declared_format,
            uploaded_at=now
        )
        self.store.save_document(document)
        self.store.save_record(record)

        doc_logger.info(
            "Document ingested",
            method=record.extraction_method,
            quality=record.quality_flag,
            page_count=record.page_count
        )
        return document, record

    # ------------------------------------------------------------------
    # Structured analysis
    # ------------------------------------------------------------------

    def run_structured_analysis(self, document_id: str) -> AnalysisTicket:
        """Start background structured analysis, or report why not.

        Returns:
            AnalysisTicket; poll ``get_extraction_status`` for the outcome

        Raises:
            RecordNotFoundError: If the document or its record is missing
            ValidationError: If the record has no text to analyze
            TaskQueueFullError: If the worker pool is at capacity
        """
        document = self.get_document(document_id)
        doc_logger = get_document_logger(document_id, "Orchestrator")

        with self._analysis_lock:
            record = self.get_extraction_status(document_id)

            if record.has_structured_data():
                doc_logger.info("AI analysis already completed, returning existing data")
                return AnalysisTicket(
                    document_id=document_id,
                    status="already_completed",
                    extraction_status=record.extraction_status,
                    message="AI analysis already completed. Returning existing structured data.",
                    record=record
                )

            if self.task_runner.is_running(document_id):
                return AnalysisTicket(
                    document_id=document_id,
                    status="processing",
                    extraction_status=record.extraction_status,
                    message="AI analysis is already running for this document."
                )

            if not record.raw_text.strip():
                raise ValidationError(
                    "No text content available for AI analysis. Text extraction may have failed."
                )

            if record.extraction_status == "processing":
                # Left behind by a job that no longer exists (e.g. a restart)
                self.state_machine.fail(record, "Analysis interrupted")

            self.state_machine.begin_processing(record)
            self.store.save_record(record)

            try:
                self.task_runner.submit(
                    document_id,
                    self._run_analysis,
                    document_id,
                    document.organization_id
                )
            except TaskQueueFullError as e:
                self.state_machine.fail(record, str(e))
                self.store.save_record(record)
                raise

        doc_logger.info("AI analysis started")
        return AnalysisTicket(
            document_id=document_id,
            status="accepted",
            extraction_status="processing",
            message="AI analysis started. This may take 30-60 seconds."
        )

    def _run_analysis(self, document_id: str, organization_id: str) -> None:
        """Background job: AI extraction, mapping, completion, auto compliance."""
        doc_logger = get_document_logger(document_id, "Orchestrator")
        record = self.store.get_record(document_id)
        if record is None:
            doc_logger.warning("Record disappeared before analysis started")
            return

        try:
            result = self.field_agent.extract_fields(record.raw_text, document_id=document_id)
            self.field_agent.apply_to_record(record, result)
            self.state_machine.complete(record)
        except Exception as e:
            doc_logger.error("AI analysis failed", error=str(e), error_type=type(e).__name__)
            failed = self.store.get_record(document_id)
            if failed is not None:
                self.state_machine.fail(failed, str(e))
                self.store.save_record(failed)
            return

        if self.store.get_document(document_id) is None:
            doc_logger.warning("Document deleted during analysis, discarding result")
            return

        self.store.save_record(record)
        doc_logger.info(
            "AI analysis completed",
            parties=len(record.parties),
            amounts=len(record.amounts),
            clauses=len(record.clauses)
        )

        try:
            self.evaluate_compliance(document_id)
        except Exception as e:
            # Compliance is a follow-up, never part of the analysis outcome
            doc_logger.warning("Auto compliance check failed", error=str(e))

    # ------------------------------------------------------------------
    # Compliance
    # ------------------------------------------------------------------

    def evaluate_compliance(self, document_id: str) -> ComplianceResult:
        """Evaluate the organization's enabled rules and store the result.

        Raises:
            AnalysisNotReadyError: If extraction is not completed
        """
        document = self.get_document(document_id)
        record = self.get_extraction_status(document_id)

        if record.extraction_status != "completed":
            raise AnalysisNotReadyError(
                "Contract extraction must be completed before compliance check"
            )

        rules = self.store.list_rules(document.organization_id, enabled_only=True)
        check = self.compliance_engine.evaluate(rules, record)

        result = ComplianceResult(
            document_id=document_id,
            organization_id=document.organization_id,
            score=check.score,
            passed=check.passed,
            total_rules=check.total_rules,
            passed_rules=check.passed_rules,
            failed_rules=check.failed_rules,
            deviations=check.deviations,
            analyzed_at=datetime.now()
        )
        return self.store.replace_compliance_result(result)

    def get_compliance_result(self, document_id: str) -> ComplianceResult:
        self.get_document(document_id)
        result = self.store.get_compliance_result(document_id)
        if result is None:
            raise RecordNotFoundError("No compliance result found for this contract")
        return result

    def get_compliance_stats(self, organization_id: str) -> ComplianceStats:
        rules = self.store.list_rules(organization_id)
        results = self.store.list_compliance_results(organization_id)

        total = len(results)
        passed = sum(1 for result in results if result.passed)
        average = sum(result.score for result in results) / total if total else 0

        return ComplianceStats(
            total_rules=len(rules),
            enabled_rules=sum(1 for rule in rules if rule.enabled),
            total_documents=total,
            passed_documents=passed,
            failed_documents=total - passed,
            average_score=round(average)
        )

    # ------------------------------------------------------------------
    # Compliance rules
    # ------------------------------------------------------------------

    def _validate_rule(self, rule_type: str, severity: str, name: str) -> None:
        if not name or not name.strip():
            raise ValidationError("Rule name is required")
        if rule_type not in RULE_TYPES:
            raise ValidationError(
                f"Invalid rule type: {rule_type}. Allowed: {', '.join(RULE_TYPES)}"
            )
        if severity not in SEVERITIES:
            raise ValidationError(f"Invalid severity: {severity}")

    def create_rule(
        self,
        organization_id: str,
        name: str,
        rule_type: str,
        severity: str = "medium",
        config: Optional[RuleConfig] = None,
        recommendation: Optional[str] = None,
        description: Optional[str] = None,
        category: str = "Legal"
    ) -> ComplianceRule:
        self._validate_rule(rule_type, severity, name)
        now = datetime.now()
        rule = ComplianceRule(
            rule_id=str(uuid.uuid4()),
            organization_id=organization_id,
            name=name,
            rule_type=rule_type,
            severity=severity,
            enabled=True,
            config=config or RuleConfig(),
            recommendation=recommendation,
            description=description,
            category=category,
            created_at=now,
            updated_at=now
        )
        logger.info(f"Compliance rule created: {rule.name}", rule_type=rule_type)
        return self.store.save_rule(rule)

    def get_rule(self, organization_id: str, rule_id: str) -> ComplianceRule:
        rule = self.store.get_rule(rule_id)
        if rule is None or rule.organization_id != organization_id:
            raise RecordNotFoundError("Playbook rule not found")
        return rule

    def list_rules(self, organization_id: str) -> List[ComplianceRule]:
        return self.store.list_rules(organization_id)

    def update_rule(self, organization_id: str, rule_id: str, **changes) -> ComplianceRule:
        """Apply field changes (None values are ignored) to a rule."""
        rule = self.get_rule(organization_id, rule_id)
        for field, value in changes.items():
            if value is not None:
                setattr(rule, field, value)
        self._validate_rule(rule.rule_type, rule.severity, rule.name)
        rule.updated_at = datetime.now()
        return self.store.save_rule(rule)

    def delete_rule(self, organization_id: str, rule_id: str) -> None:
        self.get_rule(organization_id, rule_id)
        self.store.delete_rule(rule_id)

    # ------------------------------------------------------------------
    # Chat and risk analysis
    # ------------------------------------------------------------------

    def ask_question(
        self,
        document_id: str,
        question: str,
        conversation_id: Optional[str] = None
    ) -> ChatMessage:
        """Answer a question about the document and store the exchange.

        Raises:
            ValidationError: If the question is empty or the record has no text
        """
        if not question or not question.strip():
            raise ValidationError("Question is required")

        self.get_document(document_id)
        record = self.get_extraction_status(document_id)
        if not record.raw_text.strip():
            raise ValidationError(
                "No text content available. Text extraction may have failed during upload."
            )

        start_time = time.time()
        answer, contexts = self.chat_agent.answer(question, record, document_id=document_id)

        message = ChatMessage(
            message_id=str(uuid.uuid4()),
            document_id=document_id,
            question=question,
            answer=answer,
            sources=contexts,
            conversation_id=conversation_id or None,
            processing_time_ms=int((time.time() - start_time) * 1000),
            created_at=datetime.now()
        )
        return self.store.save_chat_message(message)

    def get_chat_history(
        self,
        document_id: str,
        conversation_id: Optional[str] = None,
        limit: int = 50
    ) -> List[ChatMessage]:
        self.get_document(document_id)
        return self.store.list_chat_messages(document_id, conversation_id, limit)

    def delete_chat_message(self, message_id: str) -> None:
        if not self.store.delete_chat_message(message_id):
            raise RecordNotFoundError("Chat message not found")

    def clear_chat_history(self, document_id: str) -> int:
        self.get_document(document_id)
        return self.store.clear_chat_history(document_id)

    def analyze_risks(self, document_id: str) -> RiskAnalysis:
        """Run AI risk analysis and store the score on the document."""
        document = self.get_document(document_id)
        record = self.get_extraction_status(document_id)

        analysis = self.risk_agent.analyze(record, document_id=document_id)

        if analysis.risk_score is not None:
            document.risk_score = analysis.risk_score
            self.store.save_document(document)
        return analysis

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def delete_document(self, document_id: str) -> None:
        """Delete a document with its record, compliance result and chat."""
        if not self.store.delete_document(document_id):
            raise RecordNotFoundError(f"Document not found: {document_id}")

    def shutdown(self, wait: bool = True) -> None:
        self.task_runner.shutdown(wait=wait)


def create_orchestrator(settings: Settings) -> DocumentPipelineOrchestrator:
    """Factory function wiring the orchestrator from settings."""
    gemini_service = GeminiService(
        api_key=settings.google_api_key,
        model_name=settings.model_name,
        vision_model_name=settings.vision_model_name,
        max_prompt_chars=settings.max_prompt_chars
    )
    return DocumentPipelineOrchestrator(
        store=create_record_store(settings),
        gemini_service=gemini_service,
        task_runner=AnalysisTaskRunner(
            max_workers=settings.analysis_workers,
            queue_limit=settings.analysis_queue_limit
        ),
        min_text_length=settings.min_text_length,
        max_file_size_mb=settings.max_file_size_mb
    )
