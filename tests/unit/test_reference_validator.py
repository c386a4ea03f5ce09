"""Tests for video reference verification and fallback."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from qbank.integrations.youtube import (
    VideoAvailability,
    YouTubeOEmbedClient,
    extract_youtube_video_id,
    is_blocked_title,
)
from qbank.schemas.question import VideoRefs
from qbank.services.reference_validator import ReferenceValidator

EXISTING = VideoRefs(
    short_video="https://www.youtube.com/watch?v=Existing001",
    long_video="https://www.youtube.com/watch?v=Existing002",
)


class _FakeLookup:
    def __init__(self, available: set[str], *, errors: dict[str, BaseException] | None = None) -> None:
        self.available = available
        self.errors = errors or {}
        self.checked: list[str] = []

    async def check(self, video_id: str) -> VideoAvailability:
        self.checked.append(video_id)
        if video_id in self.errors:
            raise self.errors[video_id]
        if video_id in self.available:
            return VideoAvailability(video_id=video_id, available=True, title="System design")
        return VideoAvailability(video_id=video_id, available=False, reason="not_found")


@pytest.mark.parametrize(
    ("reference", "expected"),
    [
        ("https://www.youtube.com/watch?v=abcDEF12345", "abcDEF12345"),
        ("https://youtu.be/abcDEF12345?t=30", "abcDEF12345"),
        ("https://www.youtube.com/embed/abcDEF12345", "abcDEF12345"),
        ("https://youtube.com/shorts/abcDEF12345", "abcDEF12345"),
        ("abcDEF12345", "abcDEF12345"),
        ("https://vimeo.com/12345", None),
        ("", None),
    ],
)
def test_extract_video_id(reference: str, expected: str | None) -> None:
    assert extract_youtube_video_id(reference) == expected


def test_title_filter_rejects_music_videos() -> None:
    assert is_blocked_title("Rick Astley - Never Gonna Give You Up (Official Music Video)")
    assert is_blocked_title("Some Song (Lyric Video)")
    assert not is_blocked_title("Consistent Hashing Explained | System Design")


@pytest.mark.asyncio
async def test_verified_reference_replaces_slot_with_canonical_url() -> None:
    lookup = _FakeLookup({"NewShort001"})
    validator = ReferenceValidator(lookup)

    verified = await validator.verify(
        VideoRefs(short_video="https://youtu.be/NewShort001"),
        EXISTING,
    )

    assert verified.refs.short_video == "https://www.youtube.com/watch?v=NewShort001"
    assert verified.refs.long_video == EXISTING.long_video
    assert verified.warnings == ()
    assert lookup.checked == ["NewShort001"]


@pytest.mark.asyncio
async def test_unavailable_reference_falls_back_per_slot() -> None:
    lookup = _FakeLookup({"NewLong0001"})
    validator = ReferenceValidator(lookup)

    verified = await validator.verify(
        VideoRefs(
            short_video="https://youtu.be/Missing0001",
            long_video="https://youtu.be/NewLong0001",
        ),
        EXISTING,
    )

    assert verified.refs.short_video == EXISTING.short_video
    assert verified.refs.long_video == "https://www.youtube.com/watch?v=NewLong0001"
    assert [(w.slot, w.reason) for w in verified.warnings] == [("short_video", "not_found")]


@pytest.mark.asyncio
async def test_lookup_errors_and_timeouts_become_warnings() -> None:
    async def _slow_check(video_id: str) -> VideoAvailability:
        await asyncio.Event().wait()
        return VideoAvailability(video_id=video_id, available=True)

    lookup = _FakeLookup(set(), errors={"Broken00001": httpx.ConnectError("down")})
    validator = ReferenceValidator(lookup, timeout_seconds=0.01)

    verified = await validator.verify(VideoRefs(short_video="Broken00001"), VideoRefs())
    assert verified.refs == VideoRefs()
    assert verified.warnings[0].reason == "lookup_failed:ConnectError"

    lookup.check = _slow_check
    verified = await validator.verify(VideoRefs(long_video="Slowpoke001"), VideoRefs())
    assert verified.refs.long_video is None
    assert verified.warnings[0].reason == "timeout"


@pytest.mark.asyncio
async def test_unrecognized_or_unverifiable_references_are_never_kept() -> None:
    validator = ReferenceValidator(None)

    verified = await validator.verify(
        VideoRefs(short_video="https://vimeo.com/1", long_video="https://youtu.be/Fresh000001"),
        EXISTING,
    )

    assert verified.refs == EXISTING
    assert sorted(w.reason for w in verified.warnings) == [
        "unrecognized_reference",
        "verification_disabled",
    ]


@pytest.mark.asyncio
async def test_unchanged_reference_skips_lookup() -> None:
    lookup = _FakeLookup(set())

    verified = await ReferenceValidator(lookup).verify(EXISTING, EXISTING)

    assert verified.refs == EXISTING
    assert lookup.checked == []


@pytest.mark.asyncio
async def test_oembed_client_reports_availability() -> None:
    requests: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        video_url = request.url.params["url"]
        if video_url.endswith("Gone0000001"):
            return httpx.Response(404)
        if video_url.endswith("Music000001"):
            return httpx.Response(200, json={"title": "Despacito (Official Video)"})
        return httpx.Response(200, json={"title": "Raft Consensus Explained"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as http_client:
        client = YouTubeOEmbedClient(http_client=http_client)

        ok = await client.check("Good0000001")
        gone = await client.check("Gone0000001")
        music = await client.check("Music000001")
        blocked = await client.check("dQw4w9WgXcQ")

    assert ok.available and ok.title == "Raft Consensus Explained"
    assert (gone.available, gone.reason) == (False, "not_found")
    assert (music.available, music.reason) == (False, "blocked_title")
    assert (blocked.available, blocked.reason) == (False, "blocked_id")
    assert len(requests) == 3
    assert requests[0].url.params["format"] == "json"
