"""Immutable policy values threaded into pipeline components."""

from __future__ import annotations

from dataclasses import dataclass

from qbank.config import Settings


@dataclass(frozen=True, slots=True)
class QualityThresholds:
    """Length bounds used by issue detection and candidate validation."""

    answer_min_length: int = 150
    answer_max_length: int = 500
    explanation_min_length: int = 100
    diagram_min_length: int = 10
    min_companies: int = 2
    question_min_length: int = 10

    @classmethod
    def from_settings(cls, settings: Settings) -> QualityThresholds:
        return cls(
            answer_min_length=settings.answer_min_length,
            answer_max_length=settings.answer_max_length,
            explanation_min_length=settings.explanation_min_length,
            diagram_min_length=settings.diagram_min_length,
            min_companies=settings.min_companies,
        )


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Attempt cap and exponential backoff bounds for generation calls."""

    max_attempts: int = 3
    backoff_base_seconds: float = 1.0
    backoff_cap_seconds: float = 10.0
    call_timeout_seconds: float = 120.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def delay_after(self, attempt: int) -> float:
        """Delay between attempt ``attempt`` and ``attempt + 1`` (1-indexed)."""
        normalized_attempt = max(1, int(attempt))
        return min(
            self.backoff_base_seconds * (2 ** (normalized_attempt - 1)),
            self.backoff_cap_seconds,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryPolicy:
        return cls(
            max_attempts=settings.generation_max_attempts,
            backoff_base_seconds=settings.generation_backoff_base_seconds,
            backoff_cap_seconds=settings.generation_backoff_cap_seconds,
            call_timeout_seconds=settings.llm_timeout_seconds,
        )


@dataclass(frozen=True, slots=True)
class BatchPolicy:
    """Per-run selection and scheduling limits."""

    limit: int = 5
    oversample_factor: int = 2
    worker_count: int = 1
    deadline_seconds: float | None = None
    dry_run: bool = False

    def __post_init__(self) -> None:
        if self.limit < 1:
            raise ValueError("limit must be >= 1")
        if self.worker_count < 1:
            raise ValueError("worker_count must be >= 1")

    @property
    def candidate_count(self) -> int:
        return self.limit * max(1, self.oversample_factor)

    @classmethod
    def from_settings(cls, settings: Settings) -> BatchPolicy:
        return cls(
            limit=settings.batch_limit,
            oversample_factor=settings.batch_oversample_factor,
            worker_count=max(1, settings.batch_worker_count),
            deadline_seconds=settings.batch_deadline_seconds,
        )
