"""
Contract Chat Agent - answers questions about one contract.

Retrieval first: when nothing relevant is found, a fixed fallback answer is
returned and the model is never called.
"""

from typing import List, Optional, Tuple

from clauseguard.gemini_service import GeminiService
from clauseguard.logging_config import get_document_logger, log_agent_execution
from clauseguard.models import ExtractionRecord, RetrievedContext
from tools.context_retriever import ContextRetriever, build_context_prompt


NO_ANALYSIS_FALLBACK = (
    "I couldn't find relevant information in this contract to answer your question. "
    "Please run AI Analysis first to extract structured data from the contract, "
    "which will help me provide better answers."
)

NO_CONTEXT_FALLBACK = (
    "I couldn't find relevant information in this contract to answer your question. "
    "The contract may not contain information about this topic."
)


class ContractChatAgent:
    """Retrieval-augmented question answering over an extraction record."""

    def __init__(
        self,
        gemini_service: GeminiService,
        retriever: Optional[ContextRetriever] = None,
        max_chunks: int = 3
    ):
        self.gemini_service = gemini_service
        self.retriever = retriever or ContextRetriever()
        self.max_chunks = max_chunks

    @log_agent_execution("ContractChatAgent")
    def answer(
        self,
        question: str,
        record: ExtractionRecord,
        document_id: str = "unknown"
    ) -> Tuple[str, List[RetrievedContext]]:
        """Answer ``question`` from the record.

        Returns:
            Tuple of (answer text, contexts used)
        """
        doc_logger = get_document_logger(document_id, "ContractChatAgent")
        contexts = self.retriever.retrieve(question, record, max_chunks=self.max_chunks)

        if not contexts:
            doc_logger.info("No relevant context found, returning fallback answer")
            if not record.parties:
                return NO_ANALYSIS_FALLBACK, []
            return NO_CONTEXT_FALLBACK, []

        prompt = build_context_prompt(contexts, question)
        answer = self.gemini_service.chat(prompt)

        doc_logger.info("Question answered", contexts=len(contexts), answer_length=len(answer))
        return answer, contexts
