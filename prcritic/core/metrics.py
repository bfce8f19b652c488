"""
Prometheus metrics for prcritic.

This module provides:
- LLM metrics (calls, tokens, latency per provider/model/operation)
- Estimated spend derived from tracked token usage
- Review pipeline metrics (per-line outcomes, webhook events, jobs)
- GitHub API metrics (latency, status codes, rate limit)
"""

import time

from prometheus_client import Counter, Gauge, Histogram, Info

# =============================================================================
# Application Info
# =============================================================================

APP_INFO = Info(
    "prcritic_app",
    "prcritic application information",
)

# =============================================================================
# LLM Metrics
# =============================================================================

LLM_REQUESTS_TOTAL = Counter(
    "prcritic_llm_requests_total",
    "Total number of LLM chat calls",
    ["provider", "model", "operation", "status"],  # status: success, error
)

LLM_TOKENS_TOTAL = Counter(
    "prcritic_llm_tokens_total",
    "Total number of tokens reported by the provider",
    ["provider", "model", "operation"],
)

LLM_REQUEST_DURATION_SECONDS = Histogram(
    "prcritic_llm_request_duration_seconds",
    "LLM request duration in seconds",
    ["provider", "model"],
    buckets=(0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 25.0, 60.0),
)

ESTIMATED_COST_USD_TOTAL = Counter(
    "prcritic_estimated_cost_usd_total",
    "Estimated provider spend in USD from tracked token usage",
    ["model"],
)

# =============================================================================
# Review Metrics
# =============================================================================

REVIEW_LINES_TOTAL = Counter(
    "prcritic_review_lines_total",
    "Changed lines processed per agent, by outcome",
    ["outcome"],  # posted, post_failed, skipped, duplicate
)

THREAD_REPLIES_TOTAL = Counter(
    "prcritic_thread_replies_total",
    "Conversational replies to review threads",
    ["status"],  # posted, post_failed, empty
)

WEBHOOK_EVENTS_TOTAL = Counter(
    "prcritic_webhook_events_total",
    "GitHub webhook deliveries received",
    ["event", "action", "outcome"],  # outcome: queued, ignored, rejected, invalid
)

JOBS_TOTAL = Counter(
    "prcritic_jobs_total",
    "Background review jobs by final status",
    ["kind", "status"],  # status: completed, failed
)

JOBS_IN_PROGRESS = Gauge(
    "prcritic_jobs_in_progress",
    "Number of background jobs currently running",
)

JOB_DURATION_SECONDS = Histogram(
    "prcritic_job_duration_seconds",
    "Background job duration in seconds",
    ["kind"],
    buckets=(1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0),
)

# =============================================================================
# GitHub API Metrics
# =============================================================================

GITHUB_API_REQUESTS_TOTAL = Counter(
    "prcritic_github_api_requests_total",
    "Total number of GitHub API requests",
    ["endpoint", "method", "status_code"],
)

GITHUB_API_DURATION_SECONDS = Histogram(
    "prcritic_github_api_duration_seconds",
    "GitHub API request duration in seconds",
    ["endpoint", "method"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

GITHUB_RATE_LIMIT_REMAINING = Gauge(
    "prcritic_github_rate_limit_remaining",
    "Remaining GitHub API rate limit",
)

GITHUB_RATE_LIMIT_RESET_SECONDS = Gauge(
    "prcritic_github_rate_limit_reset_seconds",
    "Seconds until GitHub rate limit resets",
)


# =============================================================================
# Helper Functions
# =============================================================================


def initialize_app_info(version: str, environment: str) -> None:
    """Initialize application info metric."""
    APP_INFO.info(
        {
            "version": version,
            "environment": environment,
        }
    )


def record_llm_request(
    provider: str,
    model: str,
    operation: str,
    status: str,
    duration_seconds: float,
    tokens: int = 0,
) -> None:
    """
    Record metrics for one LLM chat call.

    Args:
        provider: LLM provider name (openai, anthropic)
        model: Model identifier
        operation: Gateway operation (generate, evaluate, reply, ...)
        status: Request status (success, error)
        duration_seconds: Request duration
        tokens: Total tokens reported by the provider
    """
    LLM_REQUESTS_TOTAL.labels(
        provider=provider,
        model=model,
        operation=operation,
        status=status,
    ).inc()

    LLM_REQUEST_DURATION_SECONDS.labels(
        provider=provider,
        model=model,
    ).observe(duration_seconds)

    if tokens > 0:
        LLM_TOKENS_TOTAL.labels(
            provider=provider,
            model=model,
            operation=operation,
        ).inc(tokens)


def record_estimated_cost(model: str, cost_usd: float) -> None:
    if cost_usd > 0:
        ESTIMATED_COST_USD_TOTAL.labels(model=model).inc(cost_usd)


def record_review_line(outcome: str) -> None:
    REVIEW_LINES_TOTAL.labels(outcome=outcome).inc()


def record_thread_reply(status: str) -> None:
    THREAD_REPLIES_TOTAL.labels(status=status).inc()


def record_webhook_event(event: str, action: str, outcome: str) -> None:
    WEBHOOK_EVENTS_TOTAL.labels(event=event, action=action, outcome=outcome).inc()


def record_job_finished(kind: str, status: str, duration_seconds: float) -> None:
    """Record the final status and duration of a background job."""
    JOBS_TOTAL.labels(kind=kind, status=status).inc()
    JOB_DURATION_SECONDS.labels(kind=kind).observe(duration_seconds)


def record_github_api_call(
    endpoint: str,
    method: str,
    status_code: int,
    duration_seconds: float,
    rate_limit_remaining: int | None = None,
    rate_limit_reset: int | None = None,
) -> None:
    """
    Record metrics for a GitHub API call.

    Args:
        endpoint: API endpoint (e.g., "pulls_files", "pulls_comments")
        method: HTTP method
        status_code: Response status code
        duration_seconds: Request duration
        rate_limit_remaining: Remaining rate limit (if available)
        rate_limit_reset: Rate limit reset timestamp (if available)
    """
    GITHUB_API_REQUESTS_TOTAL.labels(
        endpoint=endpoint,
        method=method,
        status_code=str(status_code),
    ).inc()

    GITHUB_API_DURATION_SECONDS.labels(
        endpoint=endpoint,
        method=method,
    ).observe(duration_seconds)

    if rate_limit_remaining is not None:
        GITHUB_RATE_LIMIT_REMAINING.set(rate_limit_remaining)

    if rate_limit_reset is not None:
        reset_in_seconds = max(0, rate_limit_reset - int(time.time()))
        GITHUB_RATE_LIMIT_RESET_SECONDS.set(reset_in_seconds)
