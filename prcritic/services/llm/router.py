from typing import Literal

import structlog

from prcritic.core.config import settings
from prcritic.core.exceptions import LLMProviderUnavailableError
from prcritic.services.llm.anthropic import AnthropicProvider
from prcritic.services.llm.base import ChatCompletion, ChatProvider, ChatRequest
from prcritic.services.llm.openai import OpenAIProvider

logger = structlog.get_logger()

ProviderName = Literal["openai", "anthropic"]

FALLBACK_ORDER: tuple[ProviderName, ...] = ("openai", "anthropic")


class ChatRouter:
    """Routes chat requests to the configured provider, with fallback."""

    def __init__(
        self,
        default_provider: ProviderName | None = None,
        fallback_enabled: bool | None = None,
        providers: dict[str, ChatProvider] | None = None,
    ) -> None:
        self.default_provider = default_provider or settings.default_llm_provider
        self.fallback_enabled = (
            settings.llm_fallback_enabled if fallback_enabled is None else fallback_enabled
        )
        self._providers: dict[str, ChatProvider] = dict(providers or {})

    def _get_provider(self, name: str) -> ChatProvider:
        """Get or create a provider instance."""
        if name not in self._providers:
            if name == "openai":
                self._providers[name] = OpenAIProvider()
            elif name == "anthropic":
                self._providers[name] = AnthropicProvider()
            else:
                raise LLMProviderUnavailableError(f"Unknown provider: {name}")
        return self._providers[name]

    def get_available_providers(self) -> list[str]:
        """Get list of available (configured) providers."""
        available = []
        for name in FALLBACK_ORDER:
            try:
                if self._get_provider(name).is_available():
                    available.append(name)
            except LLMProviderUnavailableError:
                continue
        return available

    @property
    def model(self) -> str:
        """Model of the default provider."""
        return self._get_provider(self.default_provider).model

    async def complete(
        self,
        request: ChatRequest,
        provider: ProviderName | None = None,
    ) -> ChatCompletion:
        """
        Run a chat request on the specified or default provider.

        Raises:
            LLMProviderUnavailableError: If no provider produced a completion.
        """
        provider_name = provider or self.default_provider

        try:
            llm = self._get_provider(provider_name)
            if llm.is_available():
                logger.info(
                    "Using LLM provider",
                    provider=provider_name,
                    model=llm.model,
                    operation=request.operation,
                )
                return await llm.complete(request)
        except Exception as e:
            logger.warning(
                "Primary provider failed",
                provider=provider_name,
                error=str(e),
            )
            if not self.fallback_enabled:
                raise

        if self.fallback_enabled:
            for fallback_name in FALLBACK_ORDER:
                if fallback_name == provider_name:
                    continue

                try:
                    llm = self._get_provider(fallback_name)
                    if llm.is_available():
                        logger.info(
                            "Using fallback provider",
                            provider=fallback_name,
                            model=llm.model,
                            operation=request.operation,
                        )
                        return await llm.complete(request)
                except Exception as e:
                    logger.warning(
                        "Fallback provider failed",
                        provider=fallback_name,
                        error=str(e),
                    )
                    continue

        raise LLMProviderUnavailableError("No LLM providers available")
