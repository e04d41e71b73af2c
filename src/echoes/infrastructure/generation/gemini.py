"""Gemini text generation for assistant replies and memory summaries."""

from typing import Any

from echoes.core.base import AIServiceErrorDetails, ErrorCode, ErrorLevel
from echoes.core.config import settings
from echoes.core.decorators import with_error_handling
from echoes.core.errors import ProcessingError
from echoes.core.logging import get_logger
from echoes.infrastructure.gemini_client import GeminiHTTPClient

logger = get_logger(__name__)

SUMMARY_INSTRUCTION = (
    "Summarize this voice-journal transcript in two or three clear, concise sentences, "
    "written in the first person as the speaker would."
)


class GeminiResponseGenerator:
    """ResponseGenerator and Summarizer backed by ``generateContent``."""

    def __init__(self, client: GeminiHTTPClient | None = None, model: str | None = None) -> None:
        self.client = client or GeminiHTTPClient(name="gemini_generation")
        self.model = model or settings.generation_model

    async def _generate(self, system: str, prompt: str, operation: str) -> str:
        payload: dict[str, Any] = {
            "systemInstruction": {"parts": [{"text": system}]},
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
        }
        body = await self.client.post(
            f"/models/{self.model}:generateContent",
            payload,
            operation=operation,
            model=self.model,
        )
        text = self._extract_text(body)
        if not text:
            raise ProcessingError(
                message="Gemini returned no text",
                code=ErrorCode.GENERATION_FAILED,
                details=AIServiceErrorDetails(
                    source="gemini_generation",
                    operation=operation,
                    service_name="Gemini",
                    model_name=self.model,
                    input_length=len(prompt),
                ),
            )
        return text

    @staticmethod
    def _extract_text(body: dict[str, Any]) -> str:
        candidates = body.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts).strip()

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def generate(self, context: str, user_message: str) -> str:
        return await self._generate(context, user_message, "generate")

    async def summarize(self, text: str) -> str:
        summary = await self._generate(SUMMARY_INSTRUCTION, text, "summarize")
        logger.debug("summary_generated", input_length=len(text), summary_length=len(summary))
        return summary

    async def close(self) -> None:
        await self.client.close()
