"""Batch orchestration for the question quality pipeline.

One run selects a severity-ranked snapshot of candidates, then pushes each
work item through a single linear pass:

    selected -> prompted -> generating -> validating -> merging -> persisted

Any per-item failure ends that item in ``failed`` and the batch continues.
Only a failure to read candidates from the store aborts the run.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal

from qbank.core.exceptions import (
    GenerationError,
    StoreReadError,
    StoreWriteError,
    ValidationError,
)
from qbank.integrations.generation_client import GenerationClient
from qbank.repositories.question_store import QuestionStore
from qbank.schemas.quality import BatchPolicy
from qbank.schemas.question import ContentRecord
from qbank.services.enrichment import merge
from qbank.services.issue_detector import IssueDetector, IssueSet
from qbank.services.prompt_builder import PromptBuilder
from qbank.services.reference_validator import ReferenceValidator
from qbank.services.response_validator import ResponseValidator
from qbank.services.run_output import ItemFailure, RunSummary

logger = logging.getLogger(__name__)

WorkItemState = Literal[
    "selected",
    "prompted",
    "generating",
    "validating",
    "merging",
    "persisted",
    "failed",
]
OutcomeStatus = Literal["improved", "failed", "skipped"]


@dataclass
class WorkItem:
    """Ephemeral per-run wrapper around a record snapshot. Never persisted."""

    record: ContentRecord
    issues: IssueSet
    state: WorkItemState = "selected"
    attempts: int = 0


@dataclass(frozen=True, slots=True)
class ItemOutcome:
    position: int
    record_id: str
    status: OutcomeStatus
    reason: str | None = None
    reference_warnings: int = 0


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QualityPipeline:
    """Select, regenerate, validate and commit deficient question records."""

    def __init__(
        self,
        store: QuestionStore,
        generation_client: GenerationClient,
        *,
        detector: IssueDetector | None = None,
        prompt_builder: PromptBuilder | None = None,
        response_validator: ResponseValidator | None = None,
        reference_validator: ReferenceValidator | None = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.store = store
        self.generation_client = generation_client
        self.detector = detector or IssueDetector()
        self.prompt_builder = prompt_builder or PromptBuilder(self.detector.thresholds)
        self.response_validator = response_validator or ResponseValidator(
            self.detector.thresholds
        )
        self.reference_validator = reference_validator or ReferenceValidator(None)
        self._clock = clock
        self._now = now

    async def select_work_items(self, policy: BatchPolicy) -> list[WorkItem]:
        """Ranked snapshot of up to ``policy.limit`` items with at least one issue.

        Raises :class:`StoreReadError` when the store cannot be read.
        """
        candidates = await self.store.fetch_candidates(policy.candidate_count)
        items: list[WorkItem] = []
        for record in candidates:
            if len(items) >= policy.limit:
                break
            # Store ranking is authoritative; this only drops zero-issue records.
            issues = self.detector.detect(record)
            if issues:
                items.append(WorkItem(record=record, issues=issues))
        logger.info(
            "Work items selected",
            extra={
                "requested": policy.candidate_count,
                "candidates": len(candidates),
                "selected": len(items),
                "limit": policy.limit,
            },
        )
        return items

    async def run(self, policy: BatchPolicy) -> RunSummary:
        items = await self.select_work_items(policy)
        outcomes = await self._process_all(items, policy) if items else []
        outcomes.sort(key=lambda outcome: outcome.position)

        summary = RunSummary(
            improved_ids=tuple(o.record_id for o in outcomes if o.status == "improved"),
            failures=tuple(
                ItemFailure(o.record_id, o.reason or "unknown")
                for o in outcomes
                if o.status == "failed"
            ),
            skipped_ids=tuple(o.record_id for o in outcomes if o.status == "skipped"),
            total_questions=await self._count_questions(),
            dry_run=policy.dry_run,
            reference_warnings=sum(o.reference_warnings for o in outcomes),
        )
        return summary

    async def _count_questions(self) -> int | None:
        try:
            return await self.store.count()
        except StoreReadError as exc:
            logger.warning("Could not count questions", extra={"error": exc.message})
            return None

    async def _process_all(self, items: list[WorkItem], policy: BatchPolicy) -> list[ItemOutcome]:
        deadline = (
            self._clock() + policy.deadline_seconds
            if policy.deadline_seconds is not None
            else None
        )
        queue: asyncio.Queue[tuple[int, WorkItem]] = asyncio.Queue()
        for position, item in enumerate(items):
            queue.put_nowait((position, item))

        async def _worker(worker_id: int) -> list[ItemOutcome]:
            # Each worker owns its items end to end; results merge once below.
            results: list[ItemOutcome] = []
            while True:
                try:
                    position, item = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return results
                if deadline is not None and self._clock() >= deadline:
                    logger.info(
                        "Deadline reached; skipping item",
                        extra={"record_id": item.record.id, "worker": worker_id},
                    )
                    results.append(ItemOutcome(position, item.record.id, "skipped"))
                    continue
                results.append(await self._process_item(position, item, dry_run=policy.dry_run))

        worker_count = max(1, min(policy.worker_count, len(items)))
        per_worker = await asyncio.gather(*(_worker(i) for i in range(worker_count)))
        return [outcome for results in per_worker for outcome in results]

    async def _process_item(self, position: int, item: WorkItem, *, dry_run: bool) -> ItemOutcome:
        record = item.record
        started = time.perf_counter()

        def _failed(reason: str) -> ItemOutcome:
            failed_from = item.state
            item.state = "failed"
            logger.warning(
                "Work item failed",
                extra={
                    "record_id": record.id,
                    "state": failed_from,
                    "reason": reason,
                    "attempts": item.attempts,
                },
            )
            return ItemOutcome(position, record.id, "failed", reason)

        try:
            prompt = self.prompt_builder.build(record, item.issues)
            item.state = "prompted"

            item.state = "generating"
            generation = await self.generation_client.generate(prompt, record_id=record.id)
            item.attempts = generation.attempts
            if not generation.ok:
                raise GenerationError(generation.reason or "generation_failed")

            item.state = "validating"
            validation = self.response_validator.validate(generation.text or "")
            if not validation.ok or validation.candidate is None:
                raise ValidationError(validation.reason or "validation_failed")
            candidate = validation.candidate

            verified = await self.reference_validator.verify(candidate.videos, record.videos)

            item.state = "merging"
            updated = merge(record, candidate, verified.refs, self._now())

            if not dry_run:
                await self.store.upsert(updated)
            item.state = "persisted"
        except (GenerationError, ValidationError) as exc:
            return _failed(exc.reason)
        except StoreWriteError as exc:
            return _failed(f"store_write_failed:{exc.message}")
        except Exception as exc:
            logger.exception("Unexpected error while processing work item")
            return _failed(f"unexpected_error:{type(exc).__name__}")

        remaining = sorted(self.detector.detect(updated))
        logger.info(
            "Work item improved",
            extra={
                "record_id": record.id,
                "fixed_issues": sorted(item.issues - set(remaining)),
                "remaining_issues": remaining,
                "attempts": item.attempts,
                "reference_warnings": len(verified.warnings),
                "dry_run": dry_run,
                "duration_s": round(time.perf_counter() - started, 2),
            },
        )
        return ItemOutcome(
            position,
            record.id,
            "improved",
            reference_warnings=len(verified.warnings),
        )
