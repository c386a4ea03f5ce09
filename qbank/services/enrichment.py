"""Field-preserving merge of validated proposals into an existing record."""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import datetime

from qbank.schemas.question import CandidateResponse, ContentRecord, VideoRefs

KNOWN_COMPANIES = (
    "Google",
    "Amazon",
    "Meta",
    "Microsoft",
    "Apple",
    "Netflix",
    "Uber",
    "Airbnb",
    "LinkedIn",
    "Twitter",
    "Stripe",
    "Salesforce",
    "Oracle",
    "Adobe",
    "Spotify",
    "Shopify",
    "Dropbox",
    "Atlassian",
    "Databricks",
    "Snowflake",
    "OpenAI",
    "GitHub",
    "IBM",
    "Intel",
    "Nvidia",
    "PayPal",
    "Coinbase",
    "Cloudflare",
    "DoorDash",
    "Lyft",
)
_KNOWN_BY_LOWER = {name.lower(): name for name in KNOWN_COMPANIES}

COMPANY_ALIASES = {
    "facebook": "Meta",
    "fb": "Meta",
    "aws": "Amazon",
    "amazon web services": "Amazon",
    "msft": "Microsoft",
    "goog": "Google",
    "alphabet": "Google",
    "x": "Twitter",
    "x.com": "Twitter",
    "openai": "OpenAI",
    "github": "GitHub",
}

_COMPANY_NAME_RE = re.compile(r"^[A-Za-z0-9\s&.-]+$")


def normalize_company(name: str) -> str | None:
    cleaned = " ".join(name.split())
    if len(cleaned) < 2 and cleaned.lower() not in COMPANY_ALIASES:
        return None
    lowered = cleaned.lower()
    if lowered in COMPANY_ALIASES:
        return COMPANY_ALIASES[lowered]
    if lowered in _KNOWN_BY_LOWER:
        return _KNOWN_BY_LOWER[lowered]
    if not _COMPANY_NAME_RE.match(cleaned):
        return None
    return " ".join(word[:1].upper() + word[1:] for word in cleaned.split(" "))


def normalize_companies(names: Iterable[str]) -> tuple[str, ...]:
    """Canonicalize, deduplicate and sort organization names."""
    normalized = {
        company
        for company in (normalize_company(name) for name in names if isinstance(name, str))
        if company
    }
    return tuple(sorted(normalized))


def _prefer(candidate_value: str | None, original_value: str | None) -> str | None:
    if candidate_value and candidate_value.strip():
        return candidate_value
    return original_value


def merge(
    original: ContentRecord,
    candidate: CandidateResponse,
    verified_refs: VideoRefs,
    now: datetime,
) -> ContentRecord:
    """Combine ``candidate`` into ``original``.

    Non-empty candidate fields overwrite; empty or absent ones keep the
    original value. The identifier is never changed and ``last_updated`` is
    always set to ``now``.
    """
    companies = normalize_companies(candidate.companies)
    videos = VideoRefs(
        short_video=verified_refs.short_video or original.videos.short_video,
        long_video=verified_refs.long_video or original.videos.long_video,
    )
    return original.model_copy(
        update={
            "question": _prefer(candidate.question, original.question),
            "answer": _prefer(candidate.answer, original.answer),
            "explanation": _prefer(candidate.explanation, original.explanation),
            "diagram": _prefer(candidate.diagram, original.diagram),
            "source_url": _prefer(candidate.source_url, original.source_url),
            "companies": companies or original.companies,
            "videos": videos,
            "last_updated": now,
        }
    )
