"""Question quality improvement batch entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import logging
import uuid
from dataclasses import replace

from dotenv import load_dotenv

from qbank.agents.question_improver import QuestionImproverAgent
from qbank.config import Settings, get_settings
from qbank.core.database import close_engine, create_engine, create_session_maker
from qbank.core.exceptions import ConfigurationError, StoreError
from qbank.core.logging import setup_logging
from qbank.integrations.generation_client import GenerationClient
from qbank.integrations.youtube import YouTubeOEmbedClient
from qbank.repositories.question_store import (
    JsonFileQuestionStore,
    QuestionStore,
    SqlQuestionStore,
)
from qbank.schemas.quality import BatchPolicy, QualityThresholds, RetryPolicy
from qbank.services.issue_detector import IssueDetector
from qbank.services.pipeline.orchestrator import QualityPipeline
from qbank.services.prompt_builder import PromptBuilder
from qbank.services.reference_validator import ReferenceValidator
from qbank.services.run_output import RunSummary, log_run_summary, write_run_output
from qbank.services.severity import SeverityRanker

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum questions to improve this run (defaults to BATCH_SIZE or 5).",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Concurrent work items.",
    )
    parser.add_argument(
        "--deadline",
        type=float,
        default=None,
        help="Overall run deadline in seconds; unstarted items are skipped.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Generate and validate without writing to the store.",
    )
    parser.add_argument(
        "--store-path",
        default=None,
        help="JSON question file to use instead of the database.",
    )
    return parser.parse_args(argv)


def resolve_policy(settings: Settings, args: argparse.Namespace) -> BatchPolicy:
    """Merge CLI overrides onto the settings-derived batch policy."""
    policy = BatchPolicy.from_settings(settings)
    overrides: dict[str, object] = {"dry_run": bool(args.dry_run)}
    if args.limit is not None and args.limit > 0:
        overrides["limit"] = args.limit
    if args.workers is not None:
        if args.workers < 1:
            raise ConfigurationError("--workers must be >= 1", {"workers": args.workers})
        overrides["worker_count"] = args.workers
    if args.deadline is not None:
        if args.deadline <= 0:
            raise ConfigurationError("--deadline must be positive", {"deadline": args.deadline})
        overrides["deadline_seconds"] = args.deadline
    return replace(policy, **overrides)


def build_pipeline(
    settings: Settings,
    store: QuestionStore,
    ranker: SeverityRanker,
) -> QualityPipeline:
    detector = ranker.detector
    agent = QuestionImproverAgent(settings=settings)
    generation_client = GenerationClient(agent.run, RetryPolicy.from_settings(settings))
    lookup = (
        YouTubeOEmbedClient(timeout_seconds=settings.reference_check_timeout_seconds)
        if settings.reference_check_enabled
        else None
    )
    return QualityPipeline(
        store,
        generation_client,
        detector=detector,
        prompt_builder=PromptBuilder(detector.thresholds, weights=ranker.weights),
        reference_validator=ReferenceValidator(
            lookup,
            timeout_seconds=settings.reference_check_timeout_seconds,
        ),
    )


async def run_improvement(
    settings: Settings,
    policy: BatchPolicy,
    *,
    store_path: str | None = None,
) -> RunSummary:
    """Run one batch against the configured store."""
    detector = IssueDetector(QualityThresholds.from_settings(settings))
    ranker = SeverityRanker(detector)
    path = store_path or settings.question_store_path

    if path:
        store: QuestionStore = JsonFileQuestionStore(path, ranker)
        return await build_pipeline(settings, store, ranker).run(policy)

    engine = create_engine(settings)
    try:
        store = SqlQuestionStore(
            create_session_maker(engine),
            ranker,
            scan_limit=settings.candidate_scan_limit,
        )
        return await build_pipeline(settings, store, ranker).run(policy)
    finally:
        await close_engine(engine)


def main(argv: list[str] | None = None) -> int:
    """Run the improvement batch."""
    args = parse_args(argv)
    # Provider API keys are read from the process environment by pydantic-ai.
    load_dotenv()
    settings = get_settings()
    setup_logging(
        logging.DEBUG if settings.debug else logging.INFO,
        run_fields={"run_id": uuid.uuid4().hex[:12], "environment": settings.environment},
    )
    try:
        policy = resolve_policy(settings, args)
    except ConfigurationError as exc:
        logger.error("Invalid run configuration", extra={"error": exc.message, **exc.details})
        return 2

    logger.info(
        "Question improvement run started",
        extra={
            "app": settings.app_name,
            "version": settings.app_version,
            "limit": policy.limit,
            "workers": policy.worker_count,
            "deadline_seconds": policy.deadline_seconds,
            "dry_run": policy.dry_run,
        },
    )
    try:
        summary = asyncio.run(run_improvement(settings, policy, store_path=args.store_path))
    except StoreError as exc:
        logger.error(
            "Question store unavailable; run aborted",
            extra={"error": exc.message, **exc.details},
        )
        return 1

    log_run_summary(summary)
    try:
        write_run_output(summary, settings.github_output_path)
    except OSError as exc:
        logger.error(
            "Could not write run output",
            extra={"path": settings.github_output_path, "error": str(exc)},
        )
        return 3
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
