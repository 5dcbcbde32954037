from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

from openrouter import OpenRouter, errors as openrouter_errors

from nudge_service.services.prompt_builder import PromptBundle

logger = logging.getLogger(__name__)

DEFAULT_MODEL_ID = "openai/gpt-4o-mini"


class GenerationError(Exception):
    """Raised when the provider answers without a usable completion."""


@dataclass(frozen=True)
class GenerationResult:
    model: str
    text: Optional[str] = None
    tokens_used: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.text)

    @classmethod
    def failure(cls, model: str, error: str) -> "GenerationResult":
        return cls(model=model, error=error)


class LLMService:
    """OpenRouter chat client issuing one timeout-bounded completion per nudge."""

    def __init__(
        self,
        api_key: str | None,
        model_id: str | None = None,
        *,
        timeout_seconds: float = 15.0,
        max_tokens: int = 200,
        temperature: float = 0.7,
    ) -> None:
        self.api_key = api_key.strip() if api_key and api_key.strip() else None
        self.model_id = model_id or DEFAULT_MODEL_ID
        self.timeout_seconds = timeout_seconds
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client: OpenRouter | None = None

    @classmethod
    def from_settings(cls, settings) -> "LLMService":
        return cls(
            settings.openrouter_api_key,
            settings.llm_model_id,
            timeout_seconds=settings.llm_timeout_seconds,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
        )

    @property
    def configured(self) -> bool:
        return self.api_key is not None

    def _get_client(self) -> OpenRouter:
        if self._client is None:
            self._client = OpenRouter(api_key=self.api_key)
        return self._client

    async def generate(self, prompt: PromptBundle) -> GenerationResult:
        if not self.configured:
            return GenerationResult.failure(self.model_id, "LLM credential not configured")
        request_kwargs: dict[str, Any] = {
            "model": self.model_id,
            "messages": self._build_messages(prompt),
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        try:
            payload = await asyncio.wait_for(
                self._dispatch_chat_request(self._get_client(), request_kwargs),
                timeout=self.timeout_seconds,
            )
            text = self._parse_response(payload)
        except asyncio.TimeoutError:
            logger.warning("OpenRouter request timed out after %.1fs; using fallback nudge", self.timeout_seconds)
            return GenerationResult.failure(self.model_id, f"LLM request timed out after {self.timeout_seconds:g}s")
        except Exception as exc:
            logger.warning("OpenRouter nudge generation failed; using fallback nudge: %s", exc)
            return GenerationResult.failure(self.model_id, str(exc) or exc.__class__.__name__)
        return GenerationResult(
            model=self.model_id,
            text=text,
            tokens_used=self._extract_tokens_used(payload),
        )

    @staticmethod
    def _build_messages(prompt: PromptBundle) -> list[dict[str, Any]]:
        def _text_chunk(value: str) -> list[dict[str, str]]:
            return [{"type": "text", "text": value}]

        messages: list[dict[str, Any]] = []
        system_prompt = (prompt.system or "").strip()
        if system_prompt:
            messages.append({"role": "system", "content": _text_chunk(system_prompt)})
        messages.append({"role": "user", "content": _text_chunk(prompt.user.strip())})
        return messages

    async def _dispatch_chat_request(self, client: OpenRouter, request_kwargs: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await client.chat.send_async(**request_kwargs)
        except openrouter_errors.OpenRouterError as exc:
            detail = self._describe_openrouter_error(exc)
            logger.warning("OpenRouter request failed (status=%s): %s", getattr(exc, "status_code", None), detail)
            body = getattr(exc, "body", None)
            if body:
                logger.debug("OpenRouter error body: %s", body.strip())
            raise GenerationError(detail) from exc
        return self._response_to_dict(response)

    @staticmethod
    def _response_to_dict(response: Any) -> dict[str, Any]:
        if hasattr(response, "model_dump"):
            return response.model_dump()
        if isinstance(response, dict):
            return response
        raise GenerationError("OpenRouter returned unsupported response type")

    def _parse_response(self, payload: dict[str, Any]) -> str:
        choices = payload.get("choices") or []
        if not choices:
            raise GenerationError("OpenRouter response missing choices")
        message = choices[0].get("message") or {}
        text = self._coerce_text(message.get("content"))
        if not text:
            raise GenerationError("Assistant response empty")
        return text

    @staticmethod
    def _coerce_text(content: Any) -> str:
        if isinstance(content, str):
            return content.strip()
        if isinstance(content, list):
            parts: list[str] = []
            for item in content:
                if isinstance(item, str):
                    parts.append(item)
                elif isinstance(item, dict):
                    text_value = item.get("text")
                    if isinstance(text_value, str):
                        parts.append(text_value)
            return "\n".join(parts).strip()
        return ""

    @staticmethod
    def _extract_tokens_used(payload: dict[str, Any]) -> int:
        usage = payload.get("usage") or {}
        if not isinstance(usage, dict):
            return 0
        try:
            return int(usage.get("total_tokens") or 0)
        except (TypeError, ValueError):
            return 0

    @staticmethod
    def _describe_openrouter_error(error: openrouter_errors.OpenRouterError) -> str:
        data = getattr(error, "data", None)
        err_payload = getattr(data, "error", None) if data else None
        if err_payload is not None:
            code = getattr(err_payload, "code", None)
            message = getattr(err_payload, "message", None)
            if code is not None and message:
                return f"{message} (code={code})"
            if message:
                return str(message)
        body = getattr(error, "body", None)
        if body:
            return body.strip()
        return str(error)


__all__ = ["DEFAULT_MODEL_ID", "GenerationError", "GenerationResult", "LLMService"]
