"""Severity scoring and deterministic ranking of improvement candidates."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from qbank.schemas.question import ContentRecord
from qbank.services.issue_detector import IssueDetector, IssueSet

# Structural gaps outrank cosmetic metadata gaps.
SEVERITY_WEIGHTS: Mapping[str, int] = {
    "truncated": 10,
    "short_answer": 8,
    "no_diagram": 8,
    "short_explanation": 7,
    "long_answer": 5,
    "missing_interview_context": 4,
    "no_question_mark": 3,
    "no_source_url": 2,
    "no_short_video": 1,
    "no_long_video": 1,
    "no_companies": 1,
}
DEFAULT_ISSUE_WEIGHT = 1


@dataclass(frozen=True, slots=True)
class RankedCandidate:
    """A record paired with the issues and score computed at selection time."""

    record: ContentRecord
    issues: IssueSet
    score: int


def severity_score(
    issues: Iterable[str],
    weights: Mapping[str, int] = SEVERITY_WEIGHTS,
) -> int:
    """Weighted sum over an issue set."""
    return sum(weights.get(issue, DEFAULT_ISSUE_WEIGHT) for issue in set(issues))


def order_issues(
    issues: Iterable[str],
    weights: Mapping[str, int] = SEVERITY_WEIGHTS,
) -> list[str]:
    """Order issue names by weight descending, then name for stable output."""
    return sorted(
        set(issues),
        key=lambda issue: (-weights.get(issue, DEFAULT_ISSUE_WEIGHT), issue),
    )


class SeverityRanker:
    """Rank records by weighted issue severity.

    Sort key: score descending, then record identifier ascending. Records with
    an empty issue set are dropped.
    """

    def __init__(
        self,
        detector: IssueDetector | None = None,
        weights: Mapping[str, int] = SEVERITY_WEIGHTS,
    ) -> None:
        self.detector = detector or IssueDetector()
        self.weights = weights

    def rank(self, candidates: Iterable[ContentRecord]) -> list[RankedCandidate]:
        ranked: list[RankedCandidate] = []
        for record in candidates:
            issues = self.detector.detect(record)
            if not issues:
                continue
            ranked.append(
                RankedCandidate(
                    record=record,
                    issues=issues,
                    score=severity_score(issues, self.weights),
                )
            )
        ranked.sort(key=lambda candidate: (-candidate.score, candidate.record.id))
        return ranked

    def select(self, candidates: Iterable[ContentRecord], limit: int) -> list[ContentRecord]:
        """Return the top ``limit`` records in ranked order."""
        return [candidate.record for candidate in self.rank(candidates)[: max(0, limit)]]
