"""Fixed instructions sent alongside each agent's own prompt templates."""

GENERATION_INSTRUCTION = (
    "Provide a concise, actionable review comment. Include: (1) the issue, "
    "(2) why it matters, (3) how to fix it. If no issues, provide an "
    "appreciative micro-suggestion or skip."
)

EVALUATION_INSTRUCTION_TEMPLATE = (
    "Rate the review on these dimensions (1-10): {dimensions}. "
    'Return JSON: {{"scores": {{"dimension": score}}, "summary": "brief explanation"}}'
)

THREAD_CONTINUATION = (
    "You are continuing a conversation about code review. "
    "Be helpful and answer questions about your previous suggestions."
)

REPLY_FALLBACK = "I apologize, but I'm having trouble generating a response right now."

EVALUATION_FAILED_SUMMARY = "Evaluation failed"


def build_evaluation_instruction(dimensions: list[str]) -> str:
    """Build the user message that asks for per-dimension scores."""
    return EVALUATION_INSTRUCTION_TEMPLATE.format(dimensions=", ".join(dimensions))
