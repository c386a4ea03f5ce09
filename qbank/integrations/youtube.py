"""YouTube video availability lookup via the public oEmbed endpoint."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)

YOUTUBE_OEMBED_URL = "https://www.youtube.com/oembed"
YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v={video_id}"

_VIDEO_URL_RE = re.compile(
    r"(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/|youtube\.com/shorts/)"
    r"([a-zA-Z0-9_-]{11})"
)
_BARE_VIDEO_ID_RE = re.compile(r"^[a-zA-Z0-9_-]{11}$")

# Placeholder and meme ids that models emit when they do not know a real video.
BLOCKED_VIDEO_IDS = frozenset(
    {
        "dQw4w9WgXcQ",
        "oHg5SJYRHA0",
        "xvFZjo5PgG0",
        "DLzxrzFCyOs",
        "kJQP7kiw5Fk",
        "9bZkp7q19f0",
        "jNQXAC9IVRw",
        "AAAAAAAAAAA",
        "BBBBBBBBBBB",
        "CCCCCCCCCCC",
        "xxxxxxxxxxx",
        "yyyyyyyyyyy",
        "zzzzzzzzzzz",
        "12345678901",
        "abcdefghijk",
    }
)

BLOCKED_TITLE_PATTERNS = (
    re.compile(r"official\s+(music\s+)?video", re.IGNORECASE),
    re.compile(r"\(official\)", re.IGNORECASE),
    re.compile(r"music\s+video", re.IGNORECASE),
    re.compile(r"lyric(s)?\s+video", re.IGNORECASE),
    re.compile(r"\blyrics\b", re.IGNORECASE),
    re.compile(r"\bft\.\s", re.IGNORECASE),
    re.compile(r"\bfeat\.\s", re.IGNORECASE),
    re.compile(r"rick\s*astley", re.IGNORECASE),
    re.compile(r"never\s+gonna\s+give", re.IGNORECASE),
    re.compile(r"despacito", re.IGNORECASE),
    re.compile(r"gangnam", re.IGNORECASE),
    re.compile(r"baby\s+shark", re.IGNORECASE),
    re.compile(r"vevo$", re.IGNORECASE),
)


@dataclass(frozen=True, slots=True)
class VideoAvailability:
    """Result of one availability lookup."""

    video_id: str
    available: bool
    reason: str | None = None
    title: str | None = None


def extract_youtube_video_id(reference: str | None) -> str | None:
    """Return the 11-character video id from a URL or bare id."""
    if not reference:
        return None
    candidate = reference.strip()
    match = _VIDEO_URL_RE.search(candidate)
    if match:
        return match.group(1)
    if _BARE_VIDEO_ID_RE.match(candidate):
        return candidate
    return None


def canonical_video_url(video_id: str) -> str:
    return YOUTUBE_WATCH_URL.format(video_id=video_id)


def is_blocked_title(title: str | None) -> bool:
    if not title:
        return False
    return any(pattern.search(title) for pattern in BLOCKED_TITLE_PATTERNS)


class YouTubeOEmbedClient:
    """Check that a video exists and is plausibly educational."""

    def __init__(
        self,
        timeout_seconds: float = 5.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self._http_client = http_client

    async def check(self, video_id: str) -> VideoAvailability:
        if video_id in BLOCKED_VIDEO_IDS:
            return VideoAvailability(video_id=video_id, available=False, reason="blocked_id")

        params = {"url": canonical_video_url(video_id), "format": "json"}
        if self._http_client is not None:
            response = await self._http_client.get(
                YOUTUBE_OEMBED_URL,
                params=params,
                timeout=self.timeout_seconds,
            )
        else:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.get(YOUTUBE_OEMBED_URL, params=params)

        if response.status_code in (401, 403, 404):
            return VideoAvailability(video_id=video_id, available=False, reason="not_found")
        response.raise_for_status()

        payload = response.json()
        title = payload.get("title") if isinstance(payload, dict) else None
        if is_blocked_title(title):
            logger.info(
                "Video rejected by title filter",
                extra={"video_id": video_id, "title": title},
            )
            return VideoAvailability(
                video_id=video_id,
                available=False,
                reason="blocked_title",
                title=title,
            )
        return VideoAvailability(video_id=video_id, available=True, title=title)
