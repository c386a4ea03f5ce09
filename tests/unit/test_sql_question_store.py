"""Unit tests for the Postgres question store."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError

from qbank.core.exceptions import StoreReadError, StoreWriteError
from qbank.models.question import Question
from qbank.repositories.question_store import SqlQuestionStore
from qbank.schemas.question import ContentRecord
from qbank.services.issue_detector import ISSUE_RULES, detect

ANSWER = "A B-tree keeps keys sorted in wide nodes so lookups touch few pages. " * 3
EXPLANATION = "## Interview Context\n\n" + "Interviewers ask this to gauge storage engine depth. " * 3


class _FakeResult:
    def __init__(self, rows: list[Question] | None = None, value: int | None = None) -> None:
        self.rows = rows or []
        self.value = value

    def scalars(self) -> _FakeResult:
        return self

    def all(self) -> list[Question]:
        return self.rows

    def scalar_one(self) -> int | None:
        return self.value


class _FakeSession:
    def __init__(self, outcomes: list[_FakeResult | BaseException]) -> None:
        self.outcomes = outcomes
        self.statements: list[Any] = []
        self.commit_calls = 0
        self.rollback_calls = 0

    async def __aenter__(self) -> _FakeSession:
        return self

    async def __aexit__(self, *exc_info: object) -> bool:
        return False

    async def execute(self, statement: Any) -> _FakeResult:
        self.statements.append(statement)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def commit(self) -> None:
        self.commit_calls += 1

    async def rollback(self) -> None:
        self.rollback_calls += 1


def _store(session: _FakeSession) -> SqlQuestionStore:
    return SqlQuestionStore(lambda: session, retry_base_delay_seconds=0.0)  # type: ignore[arg-type]


def _dropped_connection() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("server closed the connection unexpectedly"))


def _record(**overrides: Any) -> ContentRecord:
    values: dict[str, Any] = {
        "id": "db-1",
        "channel": "database",
        "question": "How does a B-tree index speed up lookups?",
        "answer": ANSWER.strip(),
        "explanation": EXPLANATION,
        "diagram": "flowchart TD\n  Root --> Leaf",
        "source_url": "https://example.org/btree",
        "companies": ("Oracle", "Google"),
        "videos": {
            "shortVideo": "https://youtu.be/abcdefghij1",
            "longVideo": "https://youtu.be/abcdefghij2",
        },
    }
    values.update(overrides)
    return ContentRecord.model_validate(values)


def _row(record_id: str, **overrides: Any) -> Question:
    values: dict[str, Any] = {
        "id": record_id,
        "channel": "database",
        "sub_channel": "general",
        "question": "How does a B-tree index speed up lookups?",
        "answer": "Short.",
        "explanation": "",
        "diagram": None,
        "difficulty": "intermediate",
        "tags": [],
        "source_url": None,
        "companies": [],
        "short_video": None,
        "long_video": None,
    }
    values.update(overrides)
    return Question(**values)


def _compiled(statement: Any, *, literal: bool = True) -> str:
    compile_kwargs = {"literal_binds": True} if literal else {}
    return str(statement.compile(dialect=postgresql.dialect(), compile_kwargs=compile_kwargs))


def test_every_issue_rule_has_a_sql_condition() -> None:
    store = SqlQuestionStore(None)  # type: ignore[arg-type]

    assert set(store._issue_conditions()) == {name for name, _ in ISSUE_RULES}


@pytest.mark.parametrize(
    ("overrides", "issue", "fragment"),
    [
        ({"explanation": EXPLANATION + " [truncated]"}, "truncated", "[truncated"),
        ({"companies": ("Google", "Google")}, "no_companies", "count(DISTINCT"),
        ({"diagram": "          \n   "}, "no_diagram", "btrim(questions.diagram"),
        ({"source_url": ""}, "no_source_url", "questions.source_url = ''"),
    ],
)
def test_candidate_query_covers_detected_issues(
    overrides: dict[str, Any],
    issue: str,
    fragment: str,
) -> None:
    assert detect(_record(**overrides)) == {issue}

    sql = _compiled(SqlQuestionStore(None).candidate_query())  # type: ignore[arg-type]

    assert fragment in sql


def test_candidate_query_orders_by_severity_before_scan_limit() -> None:
    store = SqlQuestionStore(None, scan_limit=50)  # type: ignore[arg-type]

    sql = _compiled(store.candidate_query())
    order_clause = sql.split("ORDER BY", 1)[1]

    assert "CASE WHEN" in order_clause
    assert "last_updated" not in order_clause
    assert order_clause.rstrip().endswith("LIMIT 50")


def test_upsert_statement_updates_all_columns_except_identity_and_creation_time() -> None:
    record = _record(last_updated=datetime(2026, 1, 1, tzinfo=timezone.utc))

    sql = _compiled(SqlQuestionStore(None).upsert_statement(record), literal=False)  # type: ignore[arg-type]
    set_clause = sql.split("ON CONFLICT (id) DO UPDATE SET", 1)[1]

    assert "created_at" not in set_clause
    assert not re.search(r"(^|[\s,])id = ", set_clause)
    for column in ("answer", "explanation", "companies", "short_video", "last_updated"):
        assert f"{column} = " in set_clause


@pytest.mark.asyncio
async def test_fetch_candidates_retries_transient_errors_and_ranks_locally() -> None:
    session = _FakeSession(
        [
            _dropped_connection(),
            _FakeResult(rows=[_row("db-minor", answer=ANSWER.strip()), _row("db-major")]),
        ]
    )

    candidates = await _store(session).fetch_candidates(5)

    assert [record.id for record in candidates] == ["db-major", "db-minor"]
    assert len(session.statements) == 2
    assert session.rollback_calls == 1
    assert session.commit_calls == 0


@pytest.mark.asyncio
async def test_fetch_candidates_translates_permanent_error_to_read_error() -> None:
    session = _FakeSession(
        [
            _dropped_connection(),
            ProgrammingError("SELECT", {}, Exception("relation does not exist")),
        ]
    )

    with pytest.raises(StoreReadError):
        await _store(session).fetch_candidates(5)

    assert len(session.statements) == 2


@pytest.mark.asyncio
async def test_upsert_commits_after_transient_retry() -> None:
    session = _FakeSession([_dropped_connection(), _FakeResult()])

    await _store(session).upsert(_record())

    assert len(session.statements) == 2
    assert session.commit_calls == 1


@pytest.mark.asyncio
async def test_upsert_translates_permanent_error_to_write_error() -> None:
    session = _FakeSession([IntegrityError("INSERT", {}, Exception("violates not-null"))])

    with pytest.raises(StoreWriteError) as exc_info:
        await _store(session).upsert(_record())

    assert exc_info.value.record_id == "db-1"
    assert len(session.statements) == 1
    assert session.commit_calls == 0
    assert session.rollback_calls == 1


@pytest.mark.asyncio
async def test_count_reads_scalar_and_translates_failures() -> None:
    assert await _store(_FakeSession([_FakeResult(value=7)])).count() == 7

    with pytest.raises(StoreReadError):
        await _store(_FakeSession([ValueError("bad cursor")])).count()
