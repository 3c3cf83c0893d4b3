"""
FastAPI Backend for ClauseGuard.

This module provides the REST API layer for the document pipeline:
- Document upload with synchronous text extraction
- Structured AI analysis (202 accepted, then poll the extraction record)
- Compliance evaluation, organization rules and statistics
- Contract chat and AI risk analysis

Architecture:
    Client -> FastAPI -> DocumentPipelineOrchestrator -> Agents / Record store
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Optional

import msgspec
from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel

from clauseguard import __version__
from clauseguard.config import Settings, load_settings
from clauseguard.error_handling import ClauseGuardError, ValidationError
from clauseguard.logging_config import setup_logging
from clauseguard.models import RuleConfig
from clauseguard.orchestrator import DocumentPipelineOrchestrator, create_orchestrator
from tools.text_quality import validate_quality


# =============================================================================
# Request Models
# =============================================================================


class QuestionRequest(BaseModel):
    """Question about a single contract."""

    question: str
    conversation_id: Optional[str] = None


class RuleCreateRequest(BaseModel):
    """New compliance rule. ``config`` keys are camelCase (clauseType, minValue, ...)."""

    name: str
    rule_type: str
    severity: str = "medium"
    config: Dict[str, Any] = {}
    recommendation: Optional[str] = None
    description: Optional[str] = None
    category: str = "Legal"


class RuleUpdateRequest(BaseModel):
    """Partial rule update; omitted fields are left unchanged."""

    name: Optional[str] = None
    rule_type: Optional[str] = None
    severity: Optional[str] = None
    enabled: Optional[bool] = None
    config: Optional[Dict[str, Any]] = None
    recommendation: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None


# =============================================================================
# Helpers
# =============================================================================


def to_json(value: Any) -> Any:
    """msgspec structs (and lists of them) to JSON-ready builtins."""
    return msgspec.to_builtins(value)


def parse_rule_config(config: Optional[Dict[str, Any]]) -> Optional[RuleConfig]:
    if config is None:
        return None
    try:
        return msgspec.convert(config, RuleConfig)
    except msgspec.ValidationError as e:
        raise ValidationError(f"Invalid rule config: {e}") from e


def get_orchestrator(request: Request) -> DocumentPipelineOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return orchestrator


# =============================================================================
# Application Factory
# =============================================================================


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[DocumentPipelineOrchestrator] = None
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Explicit settings (defaults to ``load_settings()``)
        orchestrator: Pre-built orchestrator (tests inject one); otherwise it
            is created from settings at startup

    Returns:
        Configured FastAPI app
    """
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "orchestrator", None) is None:
            setup_logging(log_dir=settings.log_dir, level=settings.log_level)
            app.state.orchestrator = create_orchestrator(settings)
            logger.info("Orchestrator initialized")
        yield
        logger.info("Shutting down, waiting for background analysis")
        app.state.orchestrator.shutdown(wait=True)

    app = FastAPI(
        title="ClauseGuard",
        description="Contract text extraction, structured AI analysis, compliance and chat",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator

    # CORS configuration for frontend communication
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ClauseGuardError)
    async def clauseguard_error_handler(request: Request, exc: ClauseGuardError):
        if exc.http_status >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        else:
            logger.warning(f"{request.method} {request.url.path} rejected: {exc}")
        return JSONResponse(
            status_code=exc.http_status,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    register_routes(app, settings)
    return app


# =============================================================================
# API Endpoints
# =============================================================================


def register_routes(app: FastAPI, settings: Settings) -> None:

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "ClauseGuard API",
            "version": __version__,
            "status": "running",
            "endpoints": {
                "upload": "/documents",
                "analysis": "/documents/{document_id}/analysis",
                "extraction": "/documents/{document_id}/extraction",
                "compliance": "/documents/{document_id}/compliance",
                "chat": "/documents/{document_id}/chat",
                "rules": "/organizations/{organization_id}/rules",
            },
        }

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        orchestrator = getattr(request.app.state, "orchestrator", None)
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "ai_configured": bool(orchestrator and orchestrator.gemini_service.is_configured),
            "analysis_jobs_in_flight": orchestrator.task_runner.pending_count() if orchestrator else 0,
        }

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    @app.post("/documents", status_code=201)
    async def upload_document(
        file: UploadFile = File(...),
        organization_id: str = Form("default"),
        orchestrator: DocumentPipelineOrchestrator = Depends(get_orchestrator),
    ):
        """Upload a contract; raw text is extracted before responding.

        Extraction problems never fail the upload; they show up as a
        placeholder text with quality "low".
        """
        logger.info(f"Received upload request: {file.filename}")
        content = await file.read()

        document, record = await run_in_threadpool(
            orchestrator.ingest_document,
            content,
            file.filename or "contract",
            file.content_type,
            organization_id,
        )

        return {
            "document": to_json(document),
            "extraction": {
                "status": record.extraction_status,
                "method": record.extraction_method,
                "page_count": record.page_count,
                "quality_flag": record.quality_flag,
                "stats": validate_quality(record.raw_text),
            },
        }

    @app.get("/documents")
    def list_documents(
        organization_id: Optional[str] = None,
        orchestrator: DocumentPipelineOrchestrator = Depends(get_orchestrator),
    ):
        documents = orchestrator.list_documents(organization_id)
        return {"documents": to_json(documents), "total": len(documents)}

    @app.get("/documents/{document_id}")
    def get_document(
        document_id: str,
        orchestrator: DocumentPipelineOrchestrator = Depends(get_orchestrator),
    ):
        return to_json(orchestrator.get_document(document_id))

    @app.delete("/documents/{document_id}")
    def delete_document(
        document_id: str,
        orchestrator: DocumentPipelineOrchestrator = Depends(get_orchestrator),
    ):
        """Delete a document with its extraction, compliance result and chat."""
        orchestrator.delete_document(document_id)
        return {"document_id": document_id, "status": "deleted"}

    # -------------------------------------------------------------------------
    # Structured analysis
    # -------------------------------------------------------------------------

    @app.post("/documents/{document_id}/analysis")
    def run_analysis(
        document_id: str,
        orchestrator: DocumentPipelineOrchestrator = Depends(get_orchestrator),
    ):
        """Start AI analysis. 202 when a job runs, 200 when data already exists."""
        ticket = orchestrator.run_structured_analysis(document_id)
        status_code = 200 if ticket.status == "already_completed" else 202
        return JSONResponse(status_code=status_code, content=to_json(ticket))

    @app.get("/documents/{document_id}/extraction")
    def get_extraction(
        document_id: str,
        orchestrator: DocumentPipelineOrchestrator = Depends(get_orchestrator),
    ):
        """Poll extraction status and structured data."""
        return to_json(orchestrator.get_extraction_status(document_id))

    @app.post("/documents/{document_id}/risk-analysis")
    def run_risk_analysis(
        document_id: str,
        orchestrator: DocumentPipelineOrchestrator = Depends(get_orchestrator),
    ):
        return to_json(orchestrator.analyze_risks(document_id))

    # -------------------------------------------------------------------------
    # Compliance
    # -------------------------------------------------------------------------

    @app.post("/documents/{document_id}/compliance")
    def check_compliance(
        document_id: str,
        orchestrator: DocumentPipelineOrchestrator = Depends(get_orchestrator),
    ):
        return to_json(orchestrator.evaluate_compliance(document_id))

    @app.get("/documents/{document_id}/compliance")
    def get_compliance(
        document_id: str,
        orchestrator: DocumentPipelineOrchestrator = Depends(get_orchestrator),
    ):
        return to_json(orchestrator.get_compliance_result(document_id))

    @app.get("/organizations/{organization_id}/compliance/stats")
    def compliance_stats(
        organization_id: str,
        orchestrator: DocumentPipelineOrchestrator = Depends(get_orchestrator),
    ):
        return to_json(orchestrator.get_compliance_stats(organization_id))

    # -------------------------------------------------------------------------
    # Compliance rules
    # -------------------------------------------------------------------------

    @app.post("/organizations/{organization_id}/rules", status_code=201)
    def create_rule(
        organization_id: str,
        body: RuleCreateRequest,
        orchestrator: DocumentPipelineOrchestrator = Depends(get_orchestrator),
    ):
        rule = orchestrator.create_rule(
            organization_id,
            name=body.name,
            rule_type=body.rule_type,
            severity=body.severity,
            config=parse_rule_config(body.config),
            recommendation=body.recommendation,
            description=body.description,
            category=body.category,
        )
        return to_json(rule)

    @app.get("/organizations/{organization_id}/rules")
    def list_rules(
        organization_id: str,
        orchestrator: DocumentPipelineOrchestrator = Depends(get_orchestrator),
    ):
        rules = orchestrator.list_rules(organization_id)
        return {"rules": to_json(rules), "total": len(rules)}

    @app.get("/organizations/{organization_id}/rules/{rule_id}")
    def get_rule(
        organization_id: str,
        rule_id: str,
        orchestrator: DocumentPipelineOrchestrator = Depends(get_orchestrator),
    ):
        return to_json(orchestrator.get_rule(organization_id, rule_id))

    @app.patch("/organizations/{organization_id}/rules/{rule_id}")
    def update_rule(
        organization_id: str,
        rule_id: str,
        body: RuleUpdateRequest,
        orchestrator: DocumentPipelineOrchestrator = Depends(get_orchestrator),
    ):
        changes = body.model_dump(exclude_none=True)
        if "config" in changes:
            changes["config"] = parse_rule_config(changes["config"])
        return to_json(orchestrator.update_rule(organization_id, rule_id, **changes))

    @app.delete("/organizations/{organization_id}/rules/{rule_id}")
    def delete_rule(
        organization_id: str,
        rule_id: str,
        orchestrator: DocumentPipelineOrchestrator = Depends(get_orchestrator),
    ):
        orchestrator.delete_rule(organization_id, rule_id)
        return {"rule_id": rule_id, "status": "deleted"}

    # -------------------------------------------------------------------------
    # Chat
    # -------------------------------------------------------------------------

    @app.post("/documents/{document_id}/chat")
    def ask_question(
        document_id: str,
        body: QuestionRequest,
        orchestrator: DocumentPipelineOrchestrator = Depends(get_orchestrator),
    ):
        message = orchestrator.ask_question(document_id, body.question, body.conversation_id)
        return to_json(message)

    @app.get("/documents/{document_id}/chat")
    def chat_history(
        document_id: str,
        conversation_id: Optional[str] = None,
        limit: int = 50,
        orchestrator: DocumentPipelineOrchestrator = Depends(get_orchestrator),
    ):
        messages = orchestrator.get_chat_history(document_id, conversation_id, limit)
        return {"messages": to_json(messages), "total": len(messages)}

    @app.delete("/documents/{document_id}/chat")
    def clear_chat(
        document_id: str,
        orchestrator: DocumentPipelineOrchestrator = Depends(get_orchestrator),
    ):
        deleted = orchestrator.clear_chat_history(document_id)
        return {"document_id": document_id, "deleted": deleted}

    @app.delete("/chat/{message_id}")
    def delete_chat_message(
        message_id: str,
        orchestrator: DocumentPipelineOrchestrator = Depends(get_orchestrator),
    ):
        orchestrator.delete_chat_message(message_id)
        return {"message_id": message_id, "status": "deleted"}


app = create_app()
