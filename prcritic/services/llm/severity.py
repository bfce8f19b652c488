"""Keyword-based severity inference for generated review comments."""

import re

# Highest tier first; the first tier with a match wins.
SEVERITY_KEYWORDS: tuple[tuple[int, tuple[str, ...]], ...] = (
    (
        5,
        (
            "security",
            "vulnerability",
            "vulnerabilities",
            "vulnerable",
            "injection",
            "xss",
            "csrf",
            "rce",
            "auth bypass",
            "authentication bypass",
        ),
    ),
    (
        4,
        (
            "crash",
            "data loss",
            "null pointer",
            "undefined behavior",
            "race condition",
        ),
    ),
    (
        3,
        (
            "performance",
            "memory leak",
            "n+1",
            "inefficient",
            "should use",
        ),
    ),
    (
        2,
        (
            "readability",
            "maintainability",
            "complexity",
            "refactor",
        ),
    ),
)

DEFAULT_SEVERITY = 1

# Acronyms match as whole words only; other terms also match inflected forms
EXACT_KEYWORDS = frozenset({"xss", "csrf", "rce", "n+1"})


def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    # \b does not work next to "+", so bound on non-word characters instead
    suffix = r"(?!\w)" if keyword in EXACT_KEYWORDS else r"\w*"
    return re.compile(rf"(?<!\w){re.escape(keyword)}{suffix}", re.IGNORECASE)


_TIERS: list[tuple[int, list[re.Pattern[str]]]] = [
    (level, [_keyword_pattern(keyword) for keyword in keywords])
    for level, keywords in SEVERITY_KEYWORDS
]


def infer_severity(text: str) -> int:
    """Map a review comment to a 1-5 severity."""
    if not text:
        return DEFAULT_SEVERITY

    for level, patterns in _TIERS:
        if any(pattern.search(text) for pattern in patterns):
            return level

    return DEFAULT_SEVERITY
