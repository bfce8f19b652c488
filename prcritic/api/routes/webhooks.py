import hashlib
import hmac
import json
from typing import Any

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from prcritic.api.dependencies import get_job_runner
from prcritic.core.config import settings
from prcritic.core.metrics import record_webhook_event
from prcritic.services.github.models import CommentEvent, PullRequestEvent
from prcritic.worker.jobs import JobRunner

router = APIRouter()
logger = structlog.get_logger()

PULL_REQUEST_ACTIONS = ("opened", "synchronize", "reopened")
COMMENT_EVENTS = ("issue_comment", "pull_request_review_comment")


def verify_webhook_signature(payload: bytes, signature: str | None, secret: str) -> bool:
    """Check an ``X-Hub-Signature-256`` header against the raw body."""
    if not signature or not signature.startswith("sha256="):
        return False

    expected = hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature.removeprefix("sha256="), expected)


def _ignored(event: str, action: str) -> JSONResponse:
    record_webhook_event(event, action, "ignored")
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"message": "Event received"},
    )


@router.post("/github")
async def github_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_github_event: str = Header(..., alias="X-GitHub-Event"),
    x_hub_signature_256: str | None = Header(None, alias="X-Hub-Signature-256"),
    runner: JobRunner = Depends(get_job_runner),
) -> JSONResponse:
    """
    Handle GitHub webhook events.

    Review work is queued as a background job and the response is sent
    immediately:
    - pull_request opened / synchronize / reopened: review the changed lines
    - issue_comment / pull_request_review_comment created: answer thread replies
    """
    body = await request.body()

    if settings.github_webhook_secret is not None and not verify_webhook_signature(
        body, x_hub_signature_256, settings.github_webhook_secret.get_secret_value()
    ):
        logger.warning("Invalid webhook signature", github_event=x_github_event)
        record_webhook_event(x_github_event, "", "rejected")
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"error": "Invalid webhook signature"},
        )

    try:
        payload: dict[str, Any] = json.loads(body)
    except json.JSONDecodeError:
        record_webhook_event(x_github_event, "", "invalid")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid JSON payload"},
        )

    action = str(payload.get("action", ""))
    logger.info("Received GitHub webhook", github_event=x_github_event, action=action)

    try:
        if x_github_event == "pull_request" and action in PULL_REQUEST_ACTIONS:
            pr_event = PullRequestEvent.from_payload(payload)
            job = runner.submit("pull_request")
            background_tasks.add_task(runner.run_pull_request, job, pr_event)
            logger.info(
                "Queued PR review",
                job_id=job.id,
                repository=pr_event.full_name,
                pr_number=pr_event.pr_number,
                action=action,
            )
        elif x_github_event in COMMENT_EVENTS and action == "created":
            comment_event = CommentEvent.from_payload(payload)
            if comment_event.in_reply_to_id is None:
                return _ignored(x_github_event, action)
            job = runner.submit("comment")
            background_tasks.add_task(runner.run_comment, job, comment_event)
            logger.info(
                "Queued thread reply",
                job_id=job.id,
                repository=comment_event.full_name,
                in_reply_to_id=comment_event.in_reply_to_id,
            )
        else:
            return _ignored(x_github_event, action)
    except (KeyError, TypeError, ValidationError) as e:
        logger.warning("Malformed webhook payload", github_event=x_github_event, error=str(e))
        record_webhook_event(x_github_event, action, "invalid")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Malformed webhook payload"},
        )

    record_webhook_event(x_github_event, action, "queued")
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content={"message": "Job queued", "job_id": job.id},
    )
