"""Machine-readable run summary for CI automation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ItemFailure:
    record_id: str
    reason: str


@dataclass(frozen=True, slots=True)
class RunSummary:
    """Aggregated outcome of one pipeline invocation."""

    improved_ids: tuple[str, ...] = ()
    failures: tuple[ItemFailure, ...] = ()
    skipped_ids: tuple[str, ...] = ()
    total_questions: int | None = None
    dry_run: bool = False
    reference_warnings: int = 0

    @property
    def improved_count(self) -> int:
        return len(self.improved_ids)

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped_ids)

    def to_output(self) -> dict[str, str]:
        """Flat key/value form. List values are comma-delimited."""
        return {
            "improved_count": str(self.improved_count),
            "failed_count": str(self.failed_count),
            "skipped_count": str(self.skipped_count),
            "total_questions": "" if self.total_questions is None else str(self.total_questions),
            "improved_ids": ",".join(self.improved_ids),
            "failed_ids": ",".join(failure.record_id for failure in self.failures),
            "failure_reasons": ";".join(
                f"{failure.record_id}={failure.reason}" for failure in self.failures
            ),
        }


def _single_line(value: str) -> str:
    return " ".join(value.splitlines())


def write_run_output(summary: RunSummary, output_path: str | Path | None) -> bool:
    """Append ``key=value`` lines to the automation output file.

    Returns False when no output location is configured.
    """
    if not output_path:
        logger.warning("No run output path configured; summary is only logged")
        return False

    path = Path(output_path)
    lines = "".join(
        f"{key}={_single_line(value)}\n" for key, value in summary.to_output().items()
    )
    with path.open("a", encoding="utf-8") as handle:
        handle.write(lines)
    logger.info("Run output written", extra={"path": str(path)})
    return True


def log_run_summary(summary: RunSummary) -> None:
    logger.info(
        "Quality pipeline run summary",
        extra={
            "improved_count": summary.improved_count,
            "failed_count": summary.failed_count,
            "skipped_count": summary.skipped_count,
            "total_questions": summary.total_questions,
            "improved_ids": list(summary.improved_ids),
            "failures": [
                {"record_id": failure.record_id, "reason": failure.reason}
                for failure in summary.failures
            ],
            "dry_run": summary.dry_run,
            "reference_warnings": summary.reference_warnings,
        },
    )
