from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from prcritic.core.exceptions import LLMError, LLMProviderUnavailableError
from prcritic.services.llm.anthropic import THREAD_OPENER, AnthropicProvider
from prcritic.services.llm.base import ChatCompletion, ChatMessage, ChatRequest
from prcritic.services.llm.openai import OpenAIProvider
from prcritic.services.llm.router import ChatRouter


def _request(json_mode: bool = False) -> ChatRequest:
    return ChatRequest(
        messages=[
            ChatMessage("system", "You review code."),
            ChatMessage("user", "Review this."),
        ],
        temperature=0.3,
        max_tokens=500,
        json_mode=json_mode,
        operation="generate",
    )


class TestOpenAIProvider:
    """Tests for the OpenAI provider."""

    @pytest.fixture
    def sdk_client(self) -> MagicMock:
        response = MagicMock()
        response.choices = [MagicMock(message=MagicMock(content="  Use a parameterized query.  "))]
        response.usage.total_tokens = 42
        response.model_dump.return_value = {"id": "chatcmpl-1"}

        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=response)
        return client

    @pytest.mark.asyncio
    async def test_complete(self, sdk_client: MagicMock) -> None:
        provider = OpenAIProvider(model="gpt-4o-mini", client=sdk_client)

        completion = await provider.complete(_request())

        assert completion.content == "Use a parameterized query."
        assert completion.tokens_used == 42
        assert completion.model == "gpt-4o-mini"
        assert completion.provider == "openai"
        assert completion.raw == {"id": "chatcmpl-1"}

        kwargs = sdk_client.chat.completions.create.call_args.kwargs
        assert kwargs["messages"][0] == {"role": "system", "content": "You review code."}
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 500
        assert "response_format" not in kwargs

    @pytest.mark.asyncio
    async def test_json_mode(self, sdk_client: MagicMock) -> None:
        provider = OpenAIProvider(client=sdk_client)

        await provider.complete(_request(json_mode=True))

        kwargs = sdk_client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_api_error_is_wrapped(self, sdk_client: MagicMock) -> None:
        sdk_client.chat.completions.create.side_effect = RuntimeError("boom")
        provider = OpenAIProvider(client=sdk_client)

        with pytest.raises(LLMError, match="boom"):
            await provider.complete(_request())

    def test_available_with_injected_client(self, sdk_client: MagicMock) -> None:
        assert OpenAIProvider(client=sdk_client).is_available() is True


class TestAnthropicProvider:
    """Tests for the Anthropic provider."""

    @pytest.fixture
    def sdk_client(self) -> MagicMock:
        message = MagicMock()
        message.content = [SimpleNamespace(type="text", text="Looks fine.")]
        message.usage = SimpleNamespace(input_tokens=30, output_tokens=12)
        message.model_dump.return_value = {}

        client = MagicMock()
        client.messages.create = AsyncMock(return_value=message)
        return client

    @pytest.mark.asyncio
    async def test_complete_moves_system_prompt(self, sdk_client: MagicMock) -> None:
        provider = AnthropicProvider(model="claude-3-5-haiku-20241022", client=sdk_client)

        completion = await provider.complete(_request())

        assert completion.content == "Looks fine."
        assert completion.tokens_used == 42
        assert completion.provider == "anthropic"

        kwargs = sdk_client.messages.create.call_args.kwargs
        assert kwargs["system"] == "You review code."
        assert kwargs["messages"] == [{"role": "user", "content": "Review this."}]

    def test_conversation_starting_with_assistant_gets_opener(self) -> None:
        request = ChatRequest(
            messages=[
                ChatMessage("system", "prompt"),
                ChatMessage("assistant", "Earlier comment"),
                ChatMessage("user", "Why?"),
            ]
        )

        system, messages = AnthropicProvider._split_messages(request)

        assert system == "prompt"
        assert messages[0] == {"role": "user", "content": THREAD_OPENER}
        assert [m["role"] for m in messages] == ["user", "assistant", "user"]

    def test_json_mode_adds_instruction(self) -> None:
        system, _ = AnthropicProvider._split_messages(_request(json_mode=True))

        assert "JSON" in system


class TestChatRouter:
    """Tests for provider routing and fallback."""

    @staticmethod
    def _provider(
        name: str, *, available: bool = True, error: Exception | None = None
    ) -> MagicMock:
        provider = MagicMock()
        provider.name = name
        provider.model = f"{name}-model"
        provider.is_available.return_value = available
        provider.complete = AsyncMock(
            side_effect=error,
            return_value=ChatCompletion(content=f"from {name}", tokens_used=5, provider=name),
        )
        return provider

    @pytest.mark.asyncio
    async def test_uses_default_provider(self) -> None:
        openai = self._provider("openai")
        anthropic = self._provider("anthropic")
        router = ChatRouter(
            default_provider="openai",
            providers={"openai": openai, "anthropic": anthropic},
        )

        completion = await router.complete(_request())

        assert completion.content == "from openai"
        anthropic.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_falls_back_on_failure(self) -> None:
        openai = self._provider("openai", error=LLMError("down"))
        anthropic = self._provider("anthropic")
        router = ChatRouter(
            default_provider="openai",
            fallback_enabled=True,
            providers={"openai": openai, "anthropic": anthropic},
        )

        completion = await router.complete(_request())

        assert completion.content == "from anthropic"

    @pytest.mark.asyncio
    async def test_falls_back_when_default_unavailable(self) -> None:
        router = ChatRouter(
            default_provider="anthropic",
            fallback_enabled=True,
            providers={
                "openai": self._provider("openai"),
                "anthropic": self._provider("anthropic", available=False),
            },
        )

        completion = await router.complete(_request())

        assert completion.content == "from openai"

    @pytest.mark.asyncio
    async def test_no_fallback_reraises(self) -> None:
        router = ChatRouter(
            default_provider="openai",
            fallback_enabled=False,
            providers={
                "openai": self._provider("openai", error=LLMError("down")),
                "anthropic": self._provider("anthropic"),
            },
        )

        with pytest.raises(LLMError, match="down"):
            await router.complete(_request())

    @pytest.mark.asyncio
    async def test_nothing_available(self) -> None:
        router = ChatRouter(
            default_provider="openai",
            fallback_enabled=True,
            providers={
                "openai": self._provider("openai", available=False),
                "anthropic": self._provider("anthropic", available=False),
            },
        )

        with pytest.raises(LLMProviderUnavailableError):
            await router.complete(_request())

    def test_available_providers(self) -> None:
        router = ChatRouter(
            providers={
                "openai": self._provider("openai"),
                "anthropic": self._provider("anthropic", available=False),
            },
        )

        assert router.get_available_providers() == ["openai"]
