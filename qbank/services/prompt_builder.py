"""Bounded improvement prompts for the generative service."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping

from qbank.schemas.question import ContentRecord
from qbank.schemas.quality import QualityThresholds
from qbank.services.severity import SEVERITY_WEIGHTS, order_issues

logger = logging.getLogger(__name__)

MAX_PROMPT_ISSUES = 4
QUESTION_EXCERPT_CHARS = 300
ANSWER_EXCERPT_CHARS = 600
EXPLANATION_EXCERPT_CHARS = 1200

ISSUE_INSTRUCTIONS: dict[str, str] = {
    "short_answer": "answer is too short",
    "long_answer": "answer is too long",
    "short_explanation": "explanation lacks depth",
    "no_diagram": "diagram is missing",
    "truncated": "explanation was cut off",
    "no_question_mark": "question is not phrased as a question",
    "no_source_url": "no authoritative source link",
    "no_short_video": "no short explainer video",
    "no_long_video": "no long-form video",
    "no_companies": "too few companies known to ask it",
    "missing_interview_context": "explanation lacks interview context",
}

EXPLANATION_TEMPLATE = (
    "## Why This Is Asked\n\nInterview context.\n\n"
    "## Key Concepts\n\n- Concept\n\n"
    "## Code Example\n\n```\nImplementation\n```\n\n"
    "## Follow-up Questions\n\n- Follow-up"
)


def _excerpt(value: str | None, limit: int) -> str:
    text = " ".join((value or "").split())
    if len(text) <= limit:
        return text
    return text[: max(0, limit - 3)].rstrip() + "..."


class PromptBuilder:
    """Render a single self-describing instruction for one record."""

    def __init__(
        self,
        thresholds: QualityThresholds | None = None,
        *,
        max_issues: int = MAX_PROMPT_ISSUES,
        weights: Mapping[str, int] = SEVERITY_WEIGHTS,
    ) -> None:
        self.thresholds = thresholds or QualityThresholds()
        self.max_issues = max(1, max_issues)
        self.weights = weights

    def select_issues(self, issues: Iterable[str]) -> list[str]:
        """Most severe issues first, capped at ``max_issues``."""
        return order_issues(issues, self.weights)[: self.max_issues]

    def build(self, record: ContentRecord, issues: Iterable[str]) -> str:
        selected = self.select_issues(issues)
        limits = self.thresholds
        fix_lines = "\n".join(
            f"- {issue}: {ISSUE_INSTRUCTIONS.get(issue, issue.replace('_', ' '))}"
            for issue in selected
        )
        current = {
            "question": _excerpt(record.question, QUESTION_EXCERPT_CHARS),
            "answer": _excerpt(record.answer, ANSWER_EXCERPT_CHARS) or "missing",
            "explanation": _excerpt(record.explanation, EXPLANATION_EXCERPT_CHARS) or "missing",
        }
        response_shape = {
            "question": "improved question ending with ?",
            "answer": (
                f"plain-text answer, {limits.answer_min_length}-"
                f"{limits.answer_max_length} characters, no markdown"
            ),
            "explanation": EXPLANATION_TEMPLATE,
            "diagram": "flowchart TD\n  A[Start] --> B[Step] --> C[End]",
            "companies": ["Google", "Amazon", "Meta"],
            "sourceUrl": "https://docs.example.com or null",
            "videos": {"shortVideo": None, "longVideo": None},
        }

        prompt = (
            f"Improve this {record.channel} interview question.\n\n"
            "## Fix\n"
            f"{fix_lines}\n\n"
            "## Current Record\n"
            f"{json.dumps(current, indent=2, ensure_ascii=True)}\n\n"
            "## Rules\n"
            "- The question must end with a question mark.\n"
            f"- The answer must be {limits.answer_min_length}-{limits.answer_max_length} "
            "characters of plain text.\n"
            "- The explanation is markdown with each ## heading on its own line.\n"
            "- The diagram is valid Mermaid starting with a diagram type.\n"
            "- Only reference real YouTube videos you are confident exist; otherwise null.\n\n"
            "## Output\n"
            "Return ONLY one JSON object with exactly these keys, no prose:\n"
            f"{json.dumps(response_shape, indent=2, ensure_ascii=True)}"
        )

        logger.debug(
            "Improvement prompt built",
            extra={
                "record_id": record.id,
                "issues": selected,
                "prompt_length": len(prompt),
            },
        )
        return prompt
