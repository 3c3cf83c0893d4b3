"""Risk Scoring Agent - AI risk assessment of a whole contract."""

from loguru import logger

from clauseguard.error_handling import ValidationError
from clauseguard.gemini_service import GeminiService
from clauseguard.logging_config import log_agent_execution
from clauseguard.models import ExtractionRecord, RiskAnalysis


class RiskScoringAgent:
    """Asks the model for a 0-100 risk score, individual risks and gaps."""

    def __init__(self, gemini_service: GeminiService):
        self.gemini_service = gemini_service

    @log_agent_execution("RiskScoringAgent")
    def analyze(self, record: ExtractionRecord, document_id: str = "unknown") -> RiskAnalysis:
        """Run risk analysis on the record's raw text.

        Raises:
            ValidationError: If the record has no raw text
            LLMError: If the model call fails
        """
        if not record.raw_text.strip():
            raise ValidationError("No text available for risk analysis")

        analysis = self.gemini_service.analyze_risks(record.raw_text)

        if analysis.risk_score is not None:
            analysis.risk_score = max(0.0, min(100.0, float(analysis.risk_score)))

        logger.info(
            "Risk analysis completed",
            document_id=document_id,
            risk_score=analysis.risk_score,
            risks=len(analysis.risks)
        )
        return analysis
