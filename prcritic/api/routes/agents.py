import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from prcritic.api.dependencies import get_db, get_gateway
from prcritic.db.repositories import AgentRepository
from prcritic.services.llm.gateway import LLMGateway
from prcritic.services.review.orchestrator import file_extension

router = APIRouter()
logger = structlog.get_logger()


class AgentTestRequest(BaseModel):
    """Code to run an agent against without posting or persisting anything."""

    code_chunk: str
    file_path: str = Field(default="test.ts")


class AgentTestEvaluation(BaseModel):
    scores: dict[str, int]
    summary: str


class AgentTestTokens(BaseModel):
    generation: int
    evaluation: int
    total: int


class AgentTestResponse(BaseModel):
    comment: str
    severity: int
    evaluation: AgentTestEvaluation
    tokens_used: AgentTestTokens


@router.post("/{agent_id}/test", response_model=AgentTestResponse)
async def test_agent(
    agent_id: int,
    request: AgentTestRequest,
    db: AsyncSession = Depends(get_db),
    gateway: LLMGateway = Depends(get_gateway),
) -> AgentTestResponse:
    """Dry-run an agent's generation and evaluation prompts."""
    agent = await AgentRepository(db).get_by_id(agent_id)
    if agent is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Agent {agent_id} not found",
        )

    logger.info("Testing agent", agent_id=agent_id, file_path=request.file_path)

    generation = await gateway.generate(
        agent,
        {
            "code_chunk": request.code_chunk,
            "file_path": request.file_path,
            "file_type": file_extension(request.file_path),
        },
    )
    evaluation = await gateway.evaluate(
        agent,
        {
            "code_chunk": request.code_chunk,
            "review_comment": generation.comment,
            "file_path": request.file_path,
        },
    )

    return AgentTestResponse(
        comment=generation.comment,
        severity=generation.severity,
        evaluation=AgentTestEvaluation(scores=evaluation.scores, summary=evaluation.summary),
        tokens_used=AgentTestTokens(
            generation=generation.tokens_used,
            evaluation=evaluation.tokens_used,
            total=generation.tokens_used + evaluation.tokens_used,
        ),
    )
