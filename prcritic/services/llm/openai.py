import time
from typing import Any

import structlog

from prcritic.core.config import settings
from prcritic.core.exceptions import LLMError, LLMProviderUnavailableError
from prcritic.core.metrics import record_llm_request
from prcritic.services.llm.base import ChatCompletion, ChatProvider, ChatRequest

logger = structlog.get_logger()


class OpenAIProvider(ChatProvider):
    """OpenAI chat-completions provider."""

    def __init__(self, model: str | None = None, client: Any = None) -> None:
        self._model = model or settings.default_model_openai
        self._client: Any = client

    @property
    def name(self) -> str:
        return "openai"

    @property
    def model(self) -> str:
        return self._model

    def _get_client(self) -> Any:
        """Lazy initialization of the async OpenAI client."""
        if self._client is None:
            if not self.is_available():
                raise LLMProviderUnavailableError("OpenAI API key not configured")

            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(
                api_key=settings.openai_api_key.get_secret_value()  # type: ignore[union-attr]
            )
        return self._client

    def is_available(self) -> bool:
        return self._client is not None or settings.openai_api_key is not None

    async def complete(self, request: ChatRequest) -> ChatCompletion:
        client = self._get_client()

        params: dict[str, Any] = {
            "model": self._model,
            "messages": [{"role": m.role, "content": m.content} for m in request.messages],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        if request.json_mode:
            params["response_format"] = {"type": "json_object"}

        logger.debug(
            "Sending chat request to OpenAI",
            model=self._model,
            operation=request.operation,
        )

        start_time = time.perf_counter()
        try:
            response = await client.chat.completions.create(**params)
        except Exception as e:
            record_llm_request(
                self.name,
                self._model,
                request.operation,
                "error",
                time.perf_counter() - start_time,
            )
            logger.error("OpenAI API error", error=str(e), operation=request.operation)
            raise LLMError(f"OpenAI API error: {e}") from e

        content = ""
        if response.choices:
            content = (response.choices[0].message.content or "").strip()
        tokens_used = response.usage.total_tokens if response.usage else 0

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
            raw=response.model_dump(mode="json"),
        )
