from prcritic.services.llm.base import ChatCompletion, ChatMessage, ChatProvider, ChatRequest
from prcritic.services.llm.gateway import (
    EvaluationResult,
    GenerationResult,
    LLMGateway,
    ReplyResult,
    render_template,
)
from prcritic.services.llm.router import ChatRouter
from prcritic.services.llm.severity import infer_severity

__all__ = [
    "ChatCompletion",
    "ChatMessage",
    "ChatProvider",
    "ChatRequest",
    "ChatRouter",
    "EvaluationResult",
    "GenerationResult",
    "LLMGateway",
    "ReplyResult",
    "infer_severity",
    "render_template",
]
