import json
import re
from dataclasses import dataclass, field
from typing import Any, Protocol

import structlog

from prcritic.core.config import settings
from prcritic.core.exceptions import LLMResponseParseError
from prcritic.prompts.review import (
    EVALUATION_FAILED_SUMMARY,
    GENERATION_INSTRUCTION,
    REPLY_FALLBACK,
    THREAD_CONTINUATION,
    build_evaluation_instruction,
)
from prcritic.services.llm.base import ChatCompletion, ChatMessage, ChatRequest
from prcritic.services.llm.severity import infer_severity

logger = structlog.get_logger()

NEUTRAL_SCORE = 5
MIN_SCORE = 1
MAX_SCORE = 10

PLACEHOLDER_PATTERN = re.compile(r"\{(\w+)\}")
FENCED_JSON_PATTERN = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


class AgentPrompts(Protocol):
    """The parts of an agent the gateway reads."""

    name: str
    generation_prompt: str
    evaluation_prompt: str
    evaluation_dims: list[str]


class ChatBackend(Protocol):
    async def complete(self, request: ChatRequest) -> ChatCompletion: ...


@dataclass
class GenerationResult:
    comment: str
    severity: int
    tokens_used: int
    model: str
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class EvaluationResult:
    scores: dict[str, int]
    summary: str
    tokens_used: int
    model: str


@dataclass
class ReplyResult:
    reply: str
    tokens_used: int
    model: str


def render_template(template: str, variables: dict[str, Any]) -> str:
    """Replace ``{key}`` placeholders; unknown placeholders are left as-is."""

    def substitute(match: re.Match[str]) -> str:
        key = match.group(1)
        if key in variables:
            return str(variables[key])
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(substitute, template)


def extract_json(content: str) -> dict[str, Any]:
    """Parse a JSON object from raw model output, tolerating code fences."""
    text = content.strip()
    fenced = FENCED_JSON_PATTERN.search(text)
    if fenced:
        text = fenced.group(1).strip()
    else:
        start, end = text.find("{"), text.rfind("}")
        if start != -1 and end > start:
            text = text[start : end + 1]

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise LLMResponseParseError(
            "Model did not return valid JSON", details={"content": content[:500]}
        ) from e

    if not isinstance(data, dict):
        raise LLMResponseParseError("Model returned JSON that is not an object")
    return data


def normalize_scores(raw_scores: Any, dimensions: list[str]) -> dict[str, int]:
    """Keep exactly the declared dimensions, each an integer in 1-10."""
    if not isinstance(raw_scores, dict):
        raw_scores = {}

    scores: dict[str, int] = {}
    for dimension in dimensions:
        value = raw_scores.get(dimension)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            scores[dimension] = NEUTRAL_SCORE
            continue
        scores[dimension] = max(MIN_SCORE, min(MAX_SCORE, round(value)))
    return scores


class LLMGateway:
    """
    Agent-facing LLM operations: generate, evaluate and reply.

    Every operation is a single chat call through the router. Provider
    and parse failures are logged and replaced with neutral results, so
    none of the public methods raise.
    """

    def __init__(self, router: ChatBackend, model: str | None = None) -> None:
        self.router = router
        self._model = model

    @property
    def model(self) -> str:
        if self._model:
            return self._model
        router_model = getattr(self.router, "model", None)
        if isinstance(router_model, str) and router_model:
            return router_model
        return settings.default_model

    async def generate(self, agent: AgentPrompts, variables: dict[str, Any]) -> GenerationResult:
        request = ChatRequest(
            messages=[
                ChatMessage("system", render_template(agent.generation_prompt, variables)),
                ChatMessage("user", GENERATION_INSTRUCTION),
            ],
            temperature=settings.generation_temperature,
            max_tokens=settings.generation_max_tokens,
            operation="generate",
        )

        try:
            completion = await self.router.complete(request)
        except Exception as e:
            logger.error(
                "Review generation failed",
                agent=agent.name,
                file_path=variables.get("file_path"),
                error=str(e),
            )
            return GenerationResult(
                comment="",
                severity=0,
                tokens_used=0,
                model=self.model,
                raw={"error": str(e)},
            )

        comment = completion.content
        return GenerationResult(
            comment=comment,
            severity=infer_severity(comment),
            tokens_used=completion.tokens_used,
            model=completion.model or self.model,
            raw=completion.raw,
        )

    async def evaluate(self, agent: AgentPrompts, variables: dict[str, Any]) -> EvaluationResult:
        dimensions = list(agent.evaluation_dims)
        request = ChatRequest(
            messages=[
                ChatMessage("system", render_template(agent.evaluation_prompt, variables)),
                ChatMessage("user", build_evaluation_instruction(dimensions)),
            ],
            temperature=settings.evaluation_temperature,
            max_tokens=settings.evaluation_max_tokens,
            json_mode=True,
            operation="evaluate",
        )

        try:
            completion = await self.router.complete(request)
            data = extract_json(completion.content)
        except Exception as e:
            logger.error("Review evaluation failed", agent=agent.name, error=str(e))
            return EvaluationResult(
                scores={dimension: NEUTRAL_SCORE for dimension in dimensions},
                summary=EVALUATION_FAILED_SUMMARY,
                tokens_used=0,
                model=self.model,
            )

        summary = data.get("summary")
        return EvaluationResult(
            scores=normalize_scores(data.get("scores"), dimensions),
            summary=summary if isinstance(summary, str) else "",
            tokens_used=completion.tokens_used,
            model=completion.model or self.model,
        )

    async def conversational_reply(
        self, agent: AgentPrompts, context: dict[str, Any]
    ) -> ReplyResult:
        """Answer a developer's reply in a review thread."""
        system_prompt = render_template(
            agent.generation_prompt,
            {
                "code_chunk": context.get("original_code", ""),
                "file_type": "context",
                "file_path": "thread",
            },
        )
        request = ChatRequest(
            messages=[
                ChatMessage("system", f"{system_prompt}\n\n{THREAD_CONTINUATION}"),
                ChatMessage("assistant", context.get("original_comment", "")),
                ChatMessage("user", context.get("user_reply", "")),
            ],
            temperature=settings.reply_temperature,
            max_tokens=settings.reply_max_tokens,
            operation="reply",
        )

        try:
            completion = await self.router.complete(request)
        except Exception as e:
            logger.error("Thread reply failed", agent=agent.name, error=str(e))
            return ReplyResult(reply=REPLY_FALLBACK, tokens_used=0, model=self.model)

        return ReplyResult(
            reply=completion.content,
            tokens_used=completion.tokens_used,
            model=completion.model or self.model,
        )
