from typing import List, Optional

import httpx

from app.logging_config import get_logger
from app.services.llm.base import LLMError, LLMProvider, LLMResponse

logger = get_logger("llm.openai")


class OpenAIProvider(LLMProvider):
    """OpenAI chat completions provider."""

    def __init__(self, api_key: str, default_model: str = "gpt-4", max_tokens: int = 500):
        self.api_key = api_key
        self.default_model = default_model
        self.max_tokens = max_tokens
        self.base_url = "https://api.openai.com/v1/chat/completions"

    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
    ) -> LLMResponse:
        model = model or self.default_model
        if not self.api_key:
            raise LLMError("OpenAI API key is not configured")

        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens or self.max_tokens,
        }
        logger.debug(f"OpenAI request: model={model}, messages_count={len(messages)}")

        timeout = timeout_seconds if timeout_seconds is not None else 60.0
        try:
            with httpx.Client(timeout=timeout) as client:
                response = client.post(
                    self.base_url,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.HTTPError as exc:
            raise LLMError(f"OpenAI request failed: {exc}") from exc

        logger.debug(f"OpenAI response status: {response.status_code}")

        if response.status_code == 429:
            raise LLMError(f"OpenAI rate limited: {response.text[:200]}")
        if response.status_code != 200:
            raise LLMError(f"OpenAI API error: {response.status_code} - {response.text[:200]}")

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise LLMError(f"Malformed OpenAI response: {exc}") from exc

        if not content.strip():
            raise LLMError("OpenAI returned empty content")

        return LLMResponse(
            content=content,
            model=data.get("model", model),
            usage=data.get("usage"),
        )
