from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Literal

Role = Literal["system", "user", "assistant"]


@dataclass
class ChatMessage:
    """One turn of a chat conversation."""

    role: Role
    content: str


@dataclass
class ChatRequest:
    """A single chat-completion call."""

    messages: list[ChatMessage]
    temperature: float = 0.3
    max_tokens: int = 500
    json_mode: bool = False
    # Label for metrics and logs (generate, evaluate, reply)
    operation: str = "chat"


@dataclass
class ChatCompletion:
    """Text and usage returned by a provider."""

    content: str
    tokens_used: int = 0
    model: str = ""
    provider: str = ""
    raw: dict[str, Any] = field(default_factory=dict)


class ChatProvider(ABC):
    """Abstract base class for chat-completion providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name."""
        pass

    @property
    @abstractmethod
    def model(self) -> str:
        """Model identifier."""
        pass

    @abstractmethod
    async def complete(self, request: ChatRequest) -> ChatCompletion:
        """Run one chat completion. Raises LLMError on failure."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is configured and available."""
        pass
