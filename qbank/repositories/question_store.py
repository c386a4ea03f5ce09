"""Content store implementations for question records.

Both stores return candidates already ranked by severity and share the same
upsert contract: writing the same record twice leaves the store unchanged,
and a failed write never leaves a partially written record behind.
"""

from __future__ import annotations

import asyncio
import json
import logging
import operator
from datetime import datetime, timezone
from functools import reduce
from pathlib import Path
from time import monotonic
from typing import Any, Protocol

import pydantic
from sqlalchemy import Select, and_, case, distinct, func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from qbank.core.database import session_scope
from qbank.core.db_retry import run_with_transient_db_retry
from qbank.core.exceptions import StoreReadError, StoreWriteError
from qbank.models.question import Question
from qbank.schemas.question import ContentRecord
from qbank.services.issue_detector import (
    INTERVIEW_CONTEXT_HEADINGS,
    INTERVIEW_CONTEXT_KEYWORDS,
    TRUNCATION_MARKER,
)
from qbank.services.severity import DEFAULT_ISSUE_WEIGHT, SeverityRanker

logger = logging.getLogger(__name__)

DEFAULT_SCAN_LIMIT = 500

_WHITESPACE = " \t\r\n\f\v"


def _is_blank(column: Any) -> Any:
    return or_(column.is_(None), column == "")


class QuestionStore(Protocol):
    """Read ranked candidates and upsert records by identifier."""

    async def fetch_candidates(self, limit: int) -> list[ContentRecord]: ...

    async def upsert(self, record: ContentRecord) -> None: ...

    async def count(self) -> int: ...


class SqlQuestionStore:
    """Postgres-backed store using async SQLAlchemy.

    Issue conditions are mirrored in SQL so the scan window is ordered by the
    same weighted severity the ranker applies locally.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        ranker: SeverityRanker | None = None,
        *,
        scan_limit: int = DEFAULT_SCAN_LIMIT,
        retry_base_delay_seconds: float = 0.2,
    ) -> None:
        self.session_maker = session_maker
        self.ranker = ranker or SeverityRanker()
        self.scan_limit = scan_limit
        self.retry_base_delay_seconds = retry_base_delay_seconds

    def _issue_conditions(self) -> dict[str, Any]:
        """SQL predicate per issue name, matching :data:`ISSUE_RULES`."""
        limits = self.ranker.detector.thresholds
        answer_length = func.char_length(func.btrim(Question.answer, _WHITESPACE))
        explanation_length = func.char_length(func.btrim(Question.explanation, _WHITESPACE))
        diagram_length = func.char_length(func.btrim(Question.diagram, _WHITESPACE))
        company = func.jsonb_array_elements_text(Question.companies).table_valued("value")
        distinct_companies = select(func.count(distinct(company.c.value))).scalar_subquery()

        return {
            "short_answer": answer_length < limits.answer_min_length,
            "long_answer": answer_length > limits.answer_max_length,
            "short_explanation": explanation_length < limits.explanation_min_length,
            "no_diagram": or_(
                Question.diagram.is_(None),
                diagram_length < limits.diagram_min_length,
            ),
            "truncated": Question.explanation.contains(TRUNCATION_MARKER),
            "no_question_mark": ~func.rtrim(Question.question, _WHITESPACE).like("%?"),
            "no_source_url": _is_blank(Question.source_url),
            "no_short_video": _is_blank(Question.short_video),
            "no_long_video": _is_blank(Question.long_video),
            "no_companies": distinct_companies < limits.min_companies,
            "missing_interview_context": and_(
                *(
                    ~Question.explanation.ilike(f"%{keyword}%")
                    for keyword in INTERVIEW_CONTEXT_KEYWORDS
                ),
                *(
                    ~Question.explanation.contains(heading)
                    for heading in INTERVIEW_CONTEXT_HEADINGS
                ),
            ),
        }

    def _deficiency_filter(self) -> Any:
        return or_(*self._issue_conditions().values())

    def _severity_expression(self) -> Any:
        weights = self.ranker.weights
        terms = [
            case((condition, weights.get(name, DEFAULT_ISSUE_WEIGHT)), else_=0)
            for name, condition in self._issue_conditions().items()
        ]
        return reduce(operator.add, terms)

    def candidate_query(self) -> Select[tuple[Question]]:
        """Most severe deficient rows first, capped at ``scan_limit``."""
        return (
            select(Question)
            .where(self._deficiency_filter())
            .order_by(self._severity_expression().desc(), Question.id.asc())
            .limit(self.scan_limit)
        )

    async def fetch_candidates(self, limit: int) -> list[ContentRecord]:
        started = monotonic()

        async def _read() -> list[Question]:
            async with session_scope(self.session_maker, commit_on_exit=False) as session:
                result = await session.execute(self.candidate_query())
                return list(result.scalars().all())

        try:
            rows = await run_with_transient_db_retry(
                _read,
                operation_name="fetch_candidates",
                base_delay_seconds=self.retry_base_delay_seconds,
            )
        except Exception as exc:
            logger.warning(
                "Candidate query failed",
                extra={"error": str(exc), "duration_ms": round((monotonic() - started) * 1000, 2)},
            )
            raise StoreReadError("Candidate selection failed", {"error": str(exc)}) from exc

        ranked = self.ranker.select((row.to_record() for row in rows), limit)
        logger.info(
            "Candidates selected",
            extra={
                "scanned": len(rows),
                "selected": len(ranked),
                "duration_ms": round((monotonic() - started) * 1000, 2),
            },
        )
        return ranked

    def upsert_statement(self, record: ContentRecord) -> Any:
        values = Question.values_from_record(record)
        update_columns = {key: value for key, value in values.items() if key != "id"}
        return (
            pg_insert(Question)
            .values(**values)
            .on_conflict_do_update(index_elements=[Question.id], set_=update_columns)
        )

    async def upsert(self, record: ContentRecord) -> None:
        statement = self.upsert_statement(record)

        async def _write() -> None:
            async with session_scope(self.session_maker) as session:
                await session.execute(statement)

        try:
            await run_with_transient_db_retry(
                _write,
                operation_name="upsert_question",
                base_delay_seconds=self.retry_base_delay_seconds,
                log_context={"record_id": record.id},
            )
        except Exception as exc:
            raise StoreWriteError(record.id, str(exc)) from exc

    async def count(self) -> int:
        async def _count() -> int:
            async with session_scope(self.session_maker, commit_on_exit=False) as session:
                result = await session.execute(select(func.count()).select_from(Question))
                return int(result.scalar_one())

        try:
            return await run_with_transient_db_retry(
                _count,
                operation_name="count_questions",
                base_delay_seconds=self.retry_base_delay_seconds,
            )
        except Exception as exc:
            raise StoreReadError("Question count failed", {"error": str(exc)}) from exc


class JsonFileQuestionStore:
    """Single-file JSON store: ``{"questions": {id: record}, "lastUpdated": ...}``."""

    def __init__(self, path: str | Path, ranker: SeverityRanker | None = None) -> None:
        self.path = Path(path)
        self.ranker = ranker or SeverityRanker()
        self._write_lock = asyncio.Lock()

    def _load(self) -> dict[str, Any]:
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreReadError(
                f"Could not read question store at {self.path}",
                {"path": str(self.path), "error": str(exc)},
            ) from exc
        if not isinstance(payload, dict) or not isinstance(payload.get("questions"), dict):
            raise StoreReadError(
                f"Question store at {self.path} has no questions object",
                {"path": str(self.path)},
            )
        return payload

    def _write_atomically(self, payload: dict[str, Any]) -> None:
        """Persist JSON atomically (write temp + rename)."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(
            json.dumps(payload, indent=2, ensure_ascii=False) + "\n",
            encoding="utf-8",
        )
        tmp_path.replace(self.path)

    @staticmethod
    def _parse_records(questions: dict[str, Any]) -> list[ContentRecord]:
        records: list[ContentRecord] = []
        for record_id, document in questions.items():
            if not isinstance(document, dict):
                continue
            try:
                records.append(ContentRecord.model_validate({**document, "id": record_id}))
            except pydantic.ValidationError as exc:
                logger.warning(
                    "Skipping malformed question document",
                    extra={"record_id": record_id, "errors": exc.error_count()},
                )
        return records

    async def fetch_candidates(self, limit: int) -> list[ContentRecord]:
        payload = self._load()
        records = self._parse_records(payload["questions"])
        ranked = self.ranker.select(records, limit)
        logger.info(
            "Candidates selected",
            extra={"scanned": len(records), "selected": len(ranked), "path": str(self.path)},
        )
        return ranked

    async def upsert(self, record: ContentRecord) -> None:
        async with self._write_lock:
            try:
                payload = self._load()
            except StoreReadError as exc:
                raise StoreWriteError(record.id, exc.message) from exc

            existing = payload["questions"].get(record.id)
            # Keys the pipeline does not model are carried over untouched.
            document = {**(existing if isinstance(existing, dict) else {}), **record.to_document()}
            if existing == document:
                return

            payload["questions"][record.id] = document
            payload["lastUpdated"] = datetime.now(timezone.utc).isoformat()
            try:
                self._write_atomically(payload)
            except OSError as exc:
                raise StoreWriteError(record.id, str(exc)) from exc

    async def count(self) -> int:
        return len(self._load()["questions"])
