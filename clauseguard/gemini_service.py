"""Gemini language-model collaborator.

One ``GeminiService`` is built at process start and injected into the agents
that need the model. It exposes four black-box operations:

- ``extract_contract_fields``: structured parties / dates / amounts / clauses
- ``extract_text_from_pdf``: vision read of a whole PDF (cascade layer 3)
- ``analyze_risks``: risk score and findings
- ``chat``: free-form answer for a context prompt
"""

import base64
from typing import Optional, Type, TypeVar

import msgspec
from google import genai
from google.genai import types
from loguru import logger

from clauseguard.error_handling import (
    CHAT_RETRY_CONFIG,
    LLMError,
    retry_with_backoff,
)
from clauseguard.models import FieldExtractionResult, RiskAnalysis

T = TypeVar("T")


EXTRACTION_PROMPT = """You are a legal contract analysis AI. Analyze the following contract and extract key information in JSON format.

Contract Text:
\"\"\"
{contract_text}
\"\"\"

Extract the following information with confidence scores (0-1):

1. **Parties**: All parties involved (name, role like "Provider", "Client", etc.)
2. **Dates**: Important dates (effective date, termination date, renewal date, notice periods)
3. **Amounts**: Financial values (payment amounts, penalties, fees)
4. **Clauses**: Key contract clauses (termination, liability, confidentiality, payment terms, etc.)

For each extracted item:
- Include a confidence score (0.0 to 1.0)
- Include the exact source text from the contract
- For amounts, specify currency and description

Return ONLY a valid JSON object with this structure (no markdown, no explanation):
{{
  "parties": [
    {{"name": "Company Name", "role": "Service Provider", "confidence": 0.95, "sourceText": "excerpt from contract"}}
  ],
  "dates": [
    {{"type": "Effective Date", "date": "2024-01-01", "confidence": 0.9, "sourceText": "excerpt from contract"}}
  ],
  "amounts": [
    {{"value": 50000, "currency": "USD", "description": "Annual fee", "confidence": 0.85, "sourceText": "excerpt from contract"}}
  ],
  "clauses": [
    {{"type": "Termination", "title": "Termination Clause", "content": "Summary of the clause", "confidence": 0.8, "sourceText": "excerpt from contract", "page": 3}}
  ],
  "summary": "Brief 2-3 sentence summary of the contract"
}}"""


RISK_PROMPT = """Analyze the following contract for potential risks and red flags:

Contract Text:
\"\"\"
{contract_text}
\"\"\"

Identify:
1. High-risk clauses (unlimited liability, auto-renewal, one-sided terms)
2. Missing important clauses
3. Ambiguous or unclear terms
4. Compliance issues (GDPR, data protection, etc.)

Return ONLY a valid JSON object:
{{
  "riskScore": 0-100,
  "risks": [
    {{"type": "Unlimited Liability", "severity": "high", "description": "Description of the risk", "recommendation": "What to do about it", "sourceText": "excerpt from contract"}}
  ],
  "missingClauses": ["Force Majeure", "Confidentiality"],
  "complianceIssues": []
}}"""


VISION_PROMPT = """Extract ALL text content from this PDF document.

Instructions:
- Return ONLY the extracted text, no commentary
- Preserve the document structure (paragraphs, sections)
- Include all visible text content
- If you see tables, preserve their structure
- Do not add any additional formatting or explanations

Return the raw text content:"""


def strip_code_fences(response_text: str) -> str:
    """Remove markdown code fences the model sometimes wraps JSON in."""
    cleaned_text = response_text.strip()
    if cleaned_text.startswith("```json"):
        cleaned_text = cleaned_text[7:]
    if cleaned_text.startswith("```"):
        cleaned_text = cleaned_text[3:]
    if cleaned_text.endswith("```"):
        cleaned_text = cleaned_text[:-3]
    return cleaned_text.strip()


class GeminiService:
    """Thin, injectable wrapper around the google-genai client."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = "gemini-2.5-flash-lite",
        vision_model_name: str = "gemini-2.5-flash-lite",
        max_prompt_chars: int = 8000,
        client: Optional[genai.Client] = None
    ):
        """Initialize the service.

        Args:
            api_key: Google API key; without it (and without ``client``) every call raises LLMError
            model_name: Model used for extraction, risk analysis and chat
            vision_model_name: Multimodal model used for PDF vision reads
            max_prompt_chars: Contract text is truncated to this many characters
            client: Pre-built client (tests inject a fake here)
        """
        self.model_name = model_name
        self.vision_model_name = vision_model_name
        self.max_prompt_chars = max_prompt_chars

        self.client = client
        if self.client is None and api_key:
            self.client = genai.Client(api_key=api_key)

        if self.client is None:
            logger.warning("No API key provided - AI features are disabled")
        else:
            logger.info("GeminiService initialized", model=model_name, vision_model=vision_model_name)

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    def _require_client(self):
        if self.client is None:
            raise LLMError("Gemini API not configured")
        return self.client

    def _generate(
        self,
        prompt: str,
        temperature: float,
        max_output_tokens: int,
        json_output: bool = False
    ) -> str:
        client = self._require_client()
        config = types.GenerateContentConfig(
            temperature=temperature,
            top_k=32,
            top_p=1,
            max_output_tokens=max_output_tokens,
            response_mime_type="application/json" if json_output else None
        )
        try:
            response = client.models.generate_content(
                model=self.model_name,
                contents=[types.Content(role="user", parts=[types.Part(text=prompt)])],
                config=config
            )
        except Exception as e:
            raise LLMError(f"Gemini request failed: {str(e)}") from e

        if not response.text:
            raise LLMError("Gemini returned an empty response")
        return response.text

    def _decode(self, response_text: str, target: Type[T]) -> T:
        try:
            return msgspec.json.decode(strip_code_fences(response_text).encode("utf-8"), type=target)
        except (msgspec.DecodeError, msgspec.ValidationError) as e:
            logger.debug(f"Unparseable response: {response_text[:500]}")
            raise LLMError(f"Failed to parse AI response: {str(e)}") from e

    def extract_contract_fields(self, contract_text: str) -> FieldExtractionResult:
        """Ask the model for structured contract fields."""
        prompt = EXTRACTION_PROMPT.format(contract_text=contract_text[: self.max_prompt_chars])
        logger.info("Sending extraction request to Gemini", text_length=len(contract_text))

        response_text = self._generate(prompt, temperature=0.1, max_output_tokens=8192, json_output=True)
        result = self._decode(response_text, FieldExtractionResult)

        logger.info(
            "Received extraction response from Gemini",
            parties=len(result.parties),
            dates=len(result.dates),
            amounts=len(result.amounts),
            clauses=len(result.clauses)
        )
        return result

    def analyze_risks(self, contract_text: str) -> RiskAnalysis:
        """Ask the model for a risk score and findings."""
        prompt = RISK_PROMPT.format(contract_text=contract_text[: self.max_prompt_chars])
        response_text = self._generate(prompt, temperature=0.1, max_output_tokens=8192, json_output=True)
        return self._decode(response_text, RiskAnalysis)

    def chat(self, prompt: str) -> str:
        """Free-form answer for a prepared context prompt."""
        self._require_client()
        return self._chat_with_retry(prompt)

    @retry_with_backoff(config=CHAT_RETRY_CONFIG, exceptions=(LLMError,))
    def _chat_with_retry(self, prompt: str) -> str:
        return self._generate(prompt, temperature=0.3, max_output_tokens=2048)

    def extract_text_from_pdf(self, base64_content: str) -> str:
        """Read a whole PDF through the multimodal model and return its text."""
        client = self._require_client()
        logger.info("Using Gemini vision for PDF text extraction")

        try:
            pdf_part = types.Part.from_bytes(
                data=base64.b64decode(base64_content),
                mime_type="application/pdf"
            )
            response = client.models.generate_content(
                model=self.vision_model_name,
                contents=[pdf_part, VISION_PROMPT]
            )
        except Exception as e:
            raise LLMError(f"Gemini vision failed: {str(e)}") from e

        text = response.text or ""
        logger.info(f"Gemini vision extracted {len(text)} characters")
        return text
