from typing import Optional

from app.config import settings
from app.logging_config import get_logger
from app.services.llm import LLMError, LLMProvider, OpenAIProvider

logger = get_logger("ai_service")

SYSTEM_PROMPT = (
    "You are a helpful support assistant chatting on LINE. "
    "Answer briefly and in the language the user writes in."
)

# Global LLM provider instance
_llm_provider: Optional[LLMProvider] = None


def get_llm_provider() -> LLMProvider:
    """Get or create the LLM provider instance."""
    global _llm_provider
    if _llm_provider is None:
        _llm_provider = OpenAIProvider(
            api_key=settings.openai_api_key,
            default_model=settings.openai_model,
            max_tokens=settings.openai_max_tokens,
        )
    return _llm_provider


def build_messages(prompt: str) -> list[dict]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


def complete(prompt: str, provider: Optional[LLMProvider] = None) -> str:
    """Blocking chat completion for one prompt. Raises LLMError on failure."""
    llm = provider or get_llm_provider()
    response = llm.generate(
        build_messages(prompt),
        max_tokens=settings.openai_max_tokens,
        timeout_seconds=settings.llm_timeout_seconds,
    )
    content = response.content.strip()
    if not content:
        raise LLMError("Empty completion")
    logger.info(
        "AI completion",
        extra={"context": {"model": response.model, "usage": response.usage, "chars": len(content)}},
    )
    return content
