"""Deterministic deficiency detection for question records."""

from __future__ import annotations

from collections.abc import Callable
from typing import Literal

from qbank.schemas.question import ContentRecord
from qbank.schemas.quality import QualityThresholds

IssueName = Literal[
    "short_answer",
    "long_answer",
    "short_explanation",
    "no_diagram",
    "truncated",
    "no_question_mark",
    "no_source_url",
    "no_short_video",
    "no_long_video",
    "no_companies",
    "missing_interview_context",
]
IssueSet = frozenset[str]

TRUNCATION_MARKER = "[truncated"

INTERVIEW_CONTEXT_KEYWORDS = (
    "interview",
    "commonly asked",
    "interviewers",
)
INTERVIEW_CONTEXT_HEADINGS = (
    "## Interview Context",
    "## Why This Is Asked",
    "## Why Asked",
    "## Strong Answer",
    "## Follow-up",
)

IssueRule = Callable[[ContentRecord, QualityThresholds], bool]


def _text_length(value: str | None) -> int:
    return len(value.strip()) if value else 0


def _has_interview_context(explanation: str) -> bool:
    if not explanation:
        return False
    lowered = explanation.lower()
    if any(keyword in lowered for keyword in INTERVIEW_CONTEXT_KEYWORDS):
        return True
    return any(heading in explanation for heading in INTERVIEW_CONTEXT_HEADINGS)


ISSUE_RULES: tuple[tuple[IssueName, IssueRule], ...] = (
    (
        "short_answer",
        lambda record, limits: _text_length(record.answer) < limits.answer_min_length,
    ),
    (
        "long_answer",
        lambda record, limits: _text_length(record.answer) > limits.answer_max_length,
    ),
    (
        "short_explanation",
        lambda record, limits: _text_length(record.explanation) < limits.explanation_min_length,
    ),
    (
        "no_diagram",
        lambda record, limits: _text_length(record.diagram) < limits.diagram_min_length,
    ),
    ("truncated", lambda record, _: TRUNCATION_MARKER in (record.explanation or "")),
    ("no_question_mark", lambda record, _: not record.question.rstrip().endswith("?")),
    ("no_source_url", lambda record, _: not record.source_url),
    ("no_short_video", lambda record, _: not record.videos.short_video),
    ("no_long_video", lambda record, _: not record.videos.long_video),
    (
        "no_companies",
        lambda record, limits: len(set(record.companies)) < limits.min_companies,
    ),
    (
        "missing_interview_context",
        lambda record, _: not _has_interview_context(record.explanation),
    ),
)


class IssueDetector:
    """Classify a record's deficiencies against a thresholds table.

    Pure and deterministic: no I/O, no caching between calls.
    """

    def __init__(
        self,
        thresholds: QualityThresholds | None = None,
        rules: tuple[tuple[IssueName, IssueRule], ...] = ISSUE_RULES,
    ) -> None:
        self.thresholds = thresholds or QualityThresholds()
        self.rules = rules

    def detect(self, record: ContentRecord) -> IssueSet:
        """Return every rule name that fires for ``record``."""
        return frozenset(
            name for name, rule in self.rules if rule(record, self.thresholds)
        )


def detect(record: ContentRecord, thresholds: QualityThresholds | None = None) -> IssueSet:
    """Convenience wrapper around :class:`IssueDetector`."""
    return IssueDetector(thresholds).detect(record)
