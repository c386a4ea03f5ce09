"""Interview question model."""

from __future__ import annotations

from typing import Any

from sqlalchemy import String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from qbank.models.base import Base, TimestampMixin
from qbank.schemas.question import ContentRecord, VideoRefs


class Question(Base, TimestampMixin):
    """A persisted interview question and its learning material."""

    __tablename__ = "questions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    channel: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    sub_channel: Mapped[str] = mapped_column(String(100), nullable=False, default="general")
    question: Mapped[str] = mapped_column(Text, nullable=False)
    answer: Mapped[str] = mapped_column(Text, nullable=False, default="")
    explanation: Mapped[str] = mapped_column(Text, nullable=False, default="")
    diagram: Mapped[str | None] = mapped_column(Text, nullable=True)
    difficulty: Mapped[str] = mapped_column(String(30), nullable=False, default="intermediate")
    tags: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    source_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    companies: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    short_video: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    long_video: Mapped[str | None] = mapped_column(String(2048), nullable=True)

    def __repr__(self) -> str:
        return f"<Question {self.id} ({self.channel})>"

    def to_record(self) -> ContentRecord:
        return ContentRecord(
            id=self.id,
            channel=self.channel,
            sub_channel=self.sub_channel,
            question=self.question,
            answer=self.answer or "",
            explanation=self.explanation or "",
            diagram=self.diagram,
            difficulty=self.difficulty,
            tags=tuple(self.tags or ()),
            source_url=self.source_url,
            companies=tuple(self.companies or ()),
            videos=VideoRefs(short_video=self.short_video, long_video=self.long_video),
            last_updated=self.last_updated,
        )

    @staticmethod
    def values_from_record(record: ContentRecord) -> dict[str, Any]:
        """Column values for an upsert of ``record``. ``created_at`` is left to the server."""
        values: dict[str, Any] = {
            "id": record.id,
            "channel": record.channel,
            "sub_channel": record.sub_channel,
            "question": record.question,
            "answer": record.answer,
            "explanation": record.explanation,
            "diagram": record.diagram,
            "difficulty": record.difficulty,
            "tags": list(record.tags),
            "source_url": record.source_url,
            "companies": list(record.companies),
            "short_video": record.videos.short_video,
            "long_video": record.videos.long_video,
        }
        if record.last_updated is not None:
            values["last_updated"] = record.last_updated
        return values
