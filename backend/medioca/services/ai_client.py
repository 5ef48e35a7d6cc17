"""AI client adapter for the consultation layer.

Wraps a single call to a hosted language model: role-tagged messages in,
free-form text plus token usage out. Uses the OpenAI Responses API.

Only the OpenAI provider is wired up. The anthropic tag is accepted so
sessions can record it, but it is routed to the same implementation.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from openai import AsyncOpenAI

from medioca.schemas.consultation import AIProvider

logger = logging.getLogger(__name__)

# Default model for consultation prompts
DEFAULT_MODEL = "gpt-4o-mini"

# Maximum tokens for response generation
DEFAULT_MAX_OUTPUT_TOKENS = 2048

_VALID_ROLES = frozenset({"system", "user", "assistant"})


class AIClientError(RuntimeError):
    """Raised when an AI call fails for any transport or provider reason."""

    pass


@dataclass
class AICompletion:
    """Raw completion returned by the adapter."""

    content: str
    model: str
    usage: dict[str, int] = field(default_factory=dict)


def _estimate_tokens(text: str) -> int:
    """Rough token estimate (4 chars per token)."""
    return -(-len(text) // 4)


def _extract_usage(response: Any, prompt: str, completion: str) -> dict[str, int]:
    """Extract token usage from an OpenAI response, estimating when unavailable."""
    usage = getattr(response, "usage", None)
    input_tokens = getattr(usage, "input_tokens", None) if usage is not None else None
    output_tokens = getattr(usage, "output_tokens", None) if usage is not None else None
    if not isinstance(input_tokens, int) or not isinstance(output_tokens, int):
        input_tokens = _estimate_tokens(prompt)
        output_tokens = _estimate_tokens(completion)
    return {
        "prompt_tokens": input_tokens,
        "completion_tokens": output_tokens,
        "total_tokens": input_tokens + output_tokens,
    }


class AIClient:
    """Single-call adapter over the hosted model.

    Example:
        client = AIClient(api_key=settings.openai_api_key)
        completion = await client.complete([
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": "Analyze these symptoms..."},
        ])
        print(completion.content, completion.usage)
    """

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
    ):
        """Initialize the adapter.

        Args:
            client: Optional pre-configured AsyncOpenAI client (for testing).
            api_key: API key used to build a client when none is injected.
                An empty key leaves the adapter disconnected.
            model: Model to use for generation.
            max_output_tokens: Maximum tokens in a completion.
        """
        if client is not None:
            self._client: AsyncOpenAI | None = client
        elif api_key:
            self._client = AsyncOpenAI(api_key=api_key)
        else:
            logger.warning("No OpenAI API key configured; AI calls will use fallback responses")
            self._client = None

        self._model = model
        self._max_output_tokens = max_output_tokens

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    @property
    def model(self) -> str:
        return self._model

    def provider_status(self) -> dict[str, bool]:
        """Report which providers can actually be called."""
        return {
            AIProvider.OPENAI.value: self.is_connected,
            AIProvider.ANTHROPIC.value: False,
        }

    async def close(self) -> None:
        """Close the OpenAI client connection."""
        if self._client is not None:
            await self._client.close()

    async def complete(
        self,
        messages: list[dict[str, str]],
        provider: AIProvider = AIProvider.OPENAI,
    ) -> AICompletion:
        """Send messages to the model and return its raw text.

        Args:
            messages: Non-empty list of {"role", "content"} dicts.
            provider: Provider tag. Anything other than openai is routed to
                the OpenAI implementation.

        Returns:
            AICompletion with content, model name, and token usage.

        Raises:
            ValueError: If messages is empty or malformed.
            AIClientError: If the adapter is disconnected or the call fails.
        """
        if not messages:
            raise ValueError("messages cannot be empty")
        for msg in messages:
            if msg.get("role") not in _VALID_ROLES or not isinstance(msg.get("content"), str):
                raise ValueError(f"invalid message: {msg!r}")

        if provider != AIProvider.OPENAI:
            logger.warning("Unsupported AI provider %s, routing to openai", provider.value)

        if self._client is None:
            raise AIClientError("AI call failed: no API key configured")

        prompt_chars = sum(len(m["content"]) for m in messages)
        logger.info(
            "AI call: model=%s, messages=%d, prompt_chars=%d (~%d tokens)",
            self._model, len(messages), prompt_chars, prompt_chars // 4,
        )

        t0 = time.perf_counter()
        try:
            response = await self._client.responses.create(
                model=self._model,
                input=messages,
                max_output_tokens=self._max_output_tokens,
            )
        except Exception as e:
            logger.error("AI call failed after %.1fs: %s", time.perf_counter() - t0, e)
            raise AIClientError(f"AI call failed: {e}") from e

        content = getattr(response, "output_text", None) or ""
        usage = _extract_usage(response, "".join(m["content"] for m in messages), content)
        logger.info(
            "AI response: %d chars in %.1fs, usage=%s",
            len(content), time.perf_counter() - t0, usage,
        )
        return AICompletion(content=content, model=self._model, usage=usage)
