"""Strict two-stage validation of raw generative service responses.

Stage one parses the raw text into the candidate shape. Stage two applies
content rules. Either stage failing discards the whole candidate; nothing is
salvaged from a rejected payload.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

import pydantic

from qbank.schemas.question import CandidateResponse
from qbank.schemas.quality import QualityThresholds
from qbank.services.issue_detector import TRUNCATION_MARKER

logger = logging.getLogger(__name__)

_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL)

MERMAID_HEADER_PATTERNS = (
    re.compile(r"^(graph|flowchart)\s+(TD|TB|BT|RL|LR)\b", re.IGNORECASE),
    re.compile(r"^sequenceDiagram\b", re.IGNORECASE),
    re.compile(r"^classDiagram\b", re.IGNORECASE),
    re.compile(r"^stateDiagram(-v2)?\b", re.IGNORECASE),
    re.compile(r"^erDiagram\b", re.IGNORECASE),
    re.compile(r"^gantt\b", re.IGNORECASE),
    re.compile(r"^pie\b", re.IGNORECASE),
    re.compile(r"^mindmap\b", re.IGNORECASE),
)

PLACEHOLDER_PATTERNS = (
    re.compile(r"\bTODO\b"),
    re.compile(r"\bFIXME\b"),
    re.compile(r"lorem ipsum", re.IGNORECASE),
    re.compile(r"\[insert\s+", re.IGNORECASE),
    re.compile(r"example here", re.IGNORECASE),
)

# Answers must be prose, not an options payload.
STRUCTURED_ANSWER_PATTERNS = (
    re.compile(r"^\s*\[\s*\{"),
    re.compile(r"^\s*\{"),
)


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Tagged result: exactly one of ``candidate`` or ``reason`` is set."""

    candidate: CandidateResponse | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.candidate is not None

    @classmethod
    def accept(cls, candidate: CandidateResponse) -> ValidationResult:
        return cls(candidate=candidate)

    @classmethod
    def reject(cls, reason: str) -> ValidationResult:
        return cls(reason=reason)


def extract_json_text(raw_text: str) -> str:
    """Strip markdown fences and surrounding prose from an LLM JSON reply."""
    text = raw_text.strip()
    # A bare object may itself contain fenced code inside string values.
    if text.startswith("{") and text.endswith("}"):
        return text
    match = _JSON_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        return text[start : end + 1]
    return text


def parse_candidate_payload(raw_text: str) -> dict[str, Any]:
    """Decode raw text into a JSON object or raise ``ValueError``."""
    if not raw_text or not raw_text.strip():
        raise ValueError("empty_response")
    try:
        payload = json.loads(extract_json_text(raw_text))
    except json.JSONDecodeError as exc:
        raise ValueError("invalid_json") from exc
    if not isinstance(payload, dict):
        raise ValueError("not_an_object")
    return payload


def is_valid_mermaid(diagram: str) -> bool:
    stripped = diagram.strip()
    return any(pattern.match(stripped) for pattern in MERMAID_HEADER_PATTERNS)


class ResponseValidator:
    """Validate raw generation output against structure and content rules."""

    def __init__(self, thresholds: QualityThresholds | None = None) -> None:
        self.thresholds = thresholds or QualityThresholds()

    def validate(self, raw_text: str) -> ValidationResult:
        try:
            payload = parse_candidate_payload(raw_text)
        except ValueError as exc:
            return self._reject(f"structure:{exc}")

        try:
            candidate = CandidateResponse.model_validate(payload)
        except pydantic.ValidationError as exc:
            fields = sorted(
                {
                    ".".join(str(part) for part in error["loc"]) or "payload"
                    for error in exc.errors()
                }
            )
            return self._reject(f"structure:invalid_fields:{','.join(fields)}")

        content_error = self._content_error(candidate)
        if content_error is not None:
            return self._reject(f"content:{content_error}")

        return ValidationResult.accept(candidate)

    def _content_error(self, candidate: CandidateResponse) -> str | None:
        limits = self.thresholds

        if len(candidate.question) < limits.question_min_length:
            return "question_too_short"
        if not candidate.question.endswith("?"):
            return "question_missing_question_mark"

        answer_length = len(candidate.answer)
        if answer_length < limits.answer_min_length:
            return f"answer_too_short:{answer_length}<{limits.answer_min_length}"
        if answer_length > limits.answer_max_length:
            return f"answer_too_long:{answer_length}>{limits.answer_max_length}"
        if any(pattern.search(candidate.answer) for pattern in STRUCTURED_ANSWER_PATTERNS):
            return "answer_not_plain_text"

        if len(candidate.explanation) < limits.explanation_min_length:
            return "explanation_too_short"
        if TRUNCATION_MARKER in candidate.explanation:
            return "explanation_truncated"

        if not candidate.diagram:
            return "diagram_empty"
        if not is_valid_mermaid(candidate.diagram):
            return "diagram_invalid_syntax"

        for field_name in ("question", "answer", "explanation"):
            value = getattr(candidate, field_name)
            if any(pattern.search(value) for pattern in PLACEHOLDER_PATTERNS):
                return f"{field_name}_placeholder_text"

        return None

    @staticmethod
    def _reject(reason: str) -> ValidationResult:
        logger.info("Candidate response rejected", extra={"reason": reason})
        return ValidationResult.reject(reason)
