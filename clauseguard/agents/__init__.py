"""Agents package for contract processing."""

from clauseguard.agents.ingestion_agent import IngestionAgent, VisionPDFStrategy
from clauseguard.agents.field_extraction_agent import FieldExtractionAgent
from clauseguard.agents.risk_scoring_agent import RiskScoringAgent
from clauseguard.agents.contract_chat_agent import ContractChatAgent

__all__ = [
    "IngestionAgent",
    "VisionPDFStrategy",
    "FieldExtractionAgent",
    "RiskScoringAgent",
    "ContractChatAgent",
]
