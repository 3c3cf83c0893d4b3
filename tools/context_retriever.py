"""Keyword-based context retrieval over an extraction record.

Scores clause text (and, when clauses are not enough, 500-word windows of the
raw text) against a question and returns the best fragments for the chat
prompt.
"""

import re
from typing import List, Tuple

from loguru import logger

from clauseguard.models import ExtractionRecord, RetrievedContext


STOP_WORDS = frozenset([
    "what", "is", "the", "a", "an", "in", "on", "at", "to", "for", "of",
    "and", "or", "but", "not", "with", "from", "by", "about", "can", "could",
    "should", "would", "will", "does", "do", "did", "has", "have", "had",
    "are", "was", "were", "been", "being", "this", "that", "these", "those",
    "how", "why", "when", "where",
])

CHUNK_WORDS = 500

_NON_WORD = re.compile(r"[^\w]")


class ContextRetriever:
    """Pure, restartable retrieval: same inputs always give the same output."""

    def extract_keywords(self, query: str) -> List[str]:
        """Lower-cased query tokens minus short words and stop words."""
        keywords = []
        for word in query.lower().split():
            if len(word) <= 2 or word in STOP_WORDS:
                continue
            keyword = _NON_WORD.sub("", word)
            if keyword and keyword not in keywords:
                keywords.append(keyword)
        return keywords

    def score(self, text: str, keywords: List[str], query: str) -> int:
        """Relevance of ``text`` (already lower-cased) to the query.

        10 for the whole query as a substring, 2 per keyword present, plus
        the number of matched keywords when more than one matches.
        """
        score = 0
        if query and query in text:
            score += 10

        matched = sum(1 for keyword in keywords if keyword in text)
        score += 2 * matched
        if matched > 1:
            score += matched
        return score

    def chunk_text(self, text: str, chunk_size: int = CHUNK_WORDS) -> List[str]:
        words = text.split()
        return [
            " ".join(words[i:i + chunk_size])
            for i in range(0, len(words), chunk_size)
        ]

    def retrieve(
        self,
        query: str,
        record: ExtractionRecord,
        max_chunks: int = 3
    ) -> List[RetrievedContext]:
        """Return at most ``max_chunks`` contexts, best first.

        Args:
            query: The user's question
            record: Extraction record supplying clauses and raw text
            max_chunks: Maximum number of contexts returned

        Returns:
            Contexts sorted by descending relevance, ties in encounter order
        """
        query_lower = query.lower().strip()
        keywords = self.extract_keywords(query_lower)

        # (score, encounter index, context)
        candidates: List[Tuple[int, int, RetrievedContext]] = []

        for clause in record.clauses:
            clause_text = f"{clause.title or ''} {clause.content or ''}".lower()
            relevance = self.score(clause_text, keywords, query_lower)
            if relevance > 0:
                candidates.append((relevance, len(candidates), RetrievedContext(
                    text=clause.content or clause.title,
                    relevance_score=relevance,
                    page=clause.source_span.page,
                    clause_type=clause.clause_type,
                )))

        if len(candidates) < max_chunks and record.raw_text:
            for chunk in self.chunk_text(record.raw_text):
                relevance = self.score(chunk.lower(), keywords, query_lower)
                if relevance > 0:
                    candidates.append((relevance, len(candidates), RetrievedContext(
                        text=chunk,
                        relevance_score=relevance,
                    )))

        candidates.sort(key=lambda item: (-item[0], item[1]))
        contexts = [context for _, _, context in candidates[:max_chunks]]

        logger.debug(
            "Context retrieval finished",
            keywords=keywords,
            candidates=len(candidates),
            returned=len(contexts)
        )
        return contexts


def build_context_prompt(contexts: List[RetrievedContext], question: str) -> str:
    """Numbered context blocks followed by the question and answer rules."""
    snippets = []
    for idx, context in enumerate(contexts, start=1):
        header = f"[Context {idx}"
        if context.clause_type:
            header += f" - {context.clause_type}"
        if context.page:
            header += f" (Page {context.page})"
        snippets.append(f"{header}]\n{context.text}")

    context_text = "\n\n".join(snippets)

    return f"""You are analyzing a legal contract. Answer the user's question based ONLY on the provided context from the contract. If the answer is not in the context, say "I don't have enough information in this contract to answer that question."

Context from contract:
{context_text}

Question: {question}

Instructions:
- Answer concisely and accurately
- Quote specific phrases from the context when relevant
- If referencing a specific section, mention which Context number
- If the answer is not in the provided context, be honest about it

Answer:"""
