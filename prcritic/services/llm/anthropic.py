import time
from typing import Any

import structlog

from prcritic.core.config import settings
from prcritic.core.exceptions import LLMError, LLMProviderUnavailableError
from prcritic.core.metrics import record_llm_request
from prcritic.services.llm.base import ChatCompletion, ChatProvider, ChatRequest

logger = structlog.get_logger()

# Anthropic conversations must open with a user turn
THREAD_OPENER = "Continue the code review thread below."


class AnthropicProvider(ChatProvider):
    """Anthropic Claude provider."""

    def __init__(self, model: str | None = None, client: Any = None) -> None:
        self._model = model or settings.default_model_anthropic
        self._client: Any = client

    @property
    def name(self) -> str:
        return "anthropic"

    @property
    def model(self) -> str:
        return self._model

    def _get_client(self) -> Any:
        """Lazy initialization of the async Anthropic client."""
        if self._client is None:
            if not self.is_available():
                raise LLMProviderUnavailableError("Anthropic API key not configured")

            import anthropic

            self._client = anthropic.AsyncAnthropic(
                api_key=settings.anthropic_api_key.get_secret_value()  # type: ignore[union-attr]
            )
        return self._client

    def is_available(self) -> bool:
        return self._client is not None or settings.anthropic_api_key is not None

    @staticmethod
    def _split_messages(request: ChatRequest) -> tuple[str, list[dict[str, str]]]:
        """Move system turns into the system prompt."""
        system_parts = [m.content for m in request.messages if m.role == "system"]
        messages = [
            {"role": m.role, "content": m.content} for m in request.messages if m.role != "system"
        ]
        if messages and messages[0]["role"] == "assistant":
            messages.insert(0, {"role": "user", "content": THREAD_OPENER})
        if request.json_mode:
            system_parts.append("Respond with a single JSON object and nothing else.")
        return "\n\n".join(system_parts), messages

    async def complete(self, request: ChatRequest) -> ChatCompletion:
        client = self._get_client()
        system, messages = self._split_messages(request)

        logger.debug(
            "Sending chat request to Anthropic",
            model=self._model,
            operation=request.operation,
        )

        start_time = time.perf_counter()
        try:
            message = await client.messages.create(
                model=self._model,
                max_tokens=request.max_tokens,
                temperature=request.temperature,
                system=system,
                messages=messages,
            )
        except Exception as e:
            record_llm_request(
                self.name,
                self._model,
                request.operation,
                "error",
                time.perf_counter() - start_time,
            )
            logger.error("Anthropic API error", error=str(e), operation=request.operation)
            raise LLMError(f"Anthropic API error: {e}") from e

        content = "".join(
            block.text for block in message.content if getattr(block, "type", "") == "text"
        ).strip()
        tokens_used = message.usage.input_tokens + message.usage.output_tokens

        record_llm_request(
            self.name,
            self._model,
            request.operation,
            "success",
            time.perf_counter() - start_time,
            tokens=tokens_used,
        )

        return ChatCompletion(
            content=content,
            tokens_used=tokens_used,
            model=self._model,
            provider=self.name,
            raw=message.model_dump(mode="json"),
        )
