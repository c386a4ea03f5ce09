"""Domain schemas for question records flowing through the quality pipeline."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class VideoRefs(BaseModel):
    """Short-form and long-form video references for a question."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    short_video: str | None = Field(default=None, alias="shortVideo")
    long_video: str | None = Field(default=None, alias="longVideo")

    @field_validator("short_video", "long_video", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class ContentRecord(BaseModel):
    """Persisted interview question. The identifier never changes."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    channel: str = "general"
    sub_channel: str = Field(default="general", alias="subChannel")
    question: str
    answer: str = ""
    explanation: str = ""
    diagram: str | None = None
    difficulty: str = "intermediate"
    tags: tuple[str, ...] = ()
    source_url: str | None = Field(default=None, alias="sourceUrl")
    companies: tuple[str, ...] = ()
    videos: VideoRefs = Field(default_factory=VideoRefs)
    last_updated: datetime | None = Field(default=None, alias="lastUpdated")

    @field_validator("tags", "companies", mode="before")
    @classmethod
    def _coerce_string_list(cls, value: object) -> object:
        if value is None:
            return ()
        if isinstance(value, str):
            return (value,)
        return value

    @field_validator("videos", mode="before")
    @classmethod
    def _coerce_videos(cls, value: object) -> object:
        if value is None:
            return VideoRefs()
        return value

    def to_document(self) -> dict[str, Any]:
        """Serialize to the camelCase document shape used by file stores."""
        return self.model_dump(mode="json", by_alias=True)


class CandidateResponse(BaseModel):
    """Validated field proposals from the generative service.

    Only ever constructed by the response validator; an instance implies the
    payload passed both structural and content checks.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    question: str
    answer: str
    explanation: str
    diagram: str
    companies: tuple[str, ...] = ()
    source_url: str | None = Field(default=None, alias="sourceUrl")
    videos: VideoRefs = Field(default_factory=VideoRefs)

    @field_validator("question", "answer", "explanation", "diagram", mode="before")
    @classmethod
    def _strip_text(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("companies", mode="before")
    @classmethod
    def _coerce_companies(cls, value: object) -> object:
        if value is None:
            return ()
        return value

    @field_validator("source_url", mode="before")
    @classmethod
    def _normalize_source_url(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        cleaned = value.strip()
        if not cleaned or cleaned.lower() in {"null", "none"}:
            return None
        return cleaned

    @field_validator("videos", mode="before")
    @classmethod
    def _coerce_videos(cls, value: object) -> object:
        if value is None:
            return VideoRefs()
        return value
