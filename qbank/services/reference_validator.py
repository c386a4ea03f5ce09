"""Independent verification of proposed video references."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Protocol

from qbank.core.exceptions import ReferenceWarning
from qbank.integrations.youtube import (
    VideoAvailability,
    canonical_video_url,
    extract_youtube_video_id,
)
from qbank.schemas.question import VideoRefs

logger = logging.getLogger(__name__)

VIDEO_SLOTS = ("short_video", "long_video")


class AvailabilityLookup(Protocol):
    def check(self, video_id: str) -> Awaitable[VideoAvailability]: ...


@dataclass(frozen=True, slots=True)
class VerifiedReferences:
    refs: VideoRefs
    warnings: tuple[ReferenceWarning, ...] = ()


class ReferenceValidator:
    """Verify each proposed reference slot, falling back to the existing value.

    A slot is only ever set to a reference that the lookup confirmed, or left
    at the record's pre-existing value. Lookup failures never propagate.
    """

    def __init__(
        self,
        lookup: AvailabilityLookup | None,
        *,
        timeout_seconds: float = 5.0,
    ) -> None:
        self.lookup = lookup
        self.timeout_seconds = timeout_seconds

    async def verify(self, proposed: VideoRefs, existing: VideoRefs) -> VerifiedReferences:
        resolved: dict[str, str | None] = {}
        warnings: list[ReferenceWarning] = []

        for slot in VIDEO_SLOTS:
            current = getattr(existing, slot)
            candidate = getattr(proposed, slot)
            if not candidate or candidate == current:
                resolved[slot] = current
                continue

            verified, warning = await self._verify_slot(slot, candidate)
            if warning is not None:
                warnings.append(warning)
                logger.info(
                    "Reference rejected; keeping existing value",
                    extra={"slot": slot, "reference": candidate, "reason": warning.reason},
                )
                resolved[slot] = current
            else:
                resolved[slot] = verified

        return VerifiedReferences(refs=VideoRefs(**resolved), warnings=tuple(warnings))

    async def _verify_slot(
        self,
        slot: str,
        reference: str,
    ) -> tuple[str | None, ReferenceWarning | None]:
        video_id = extract_youtube_video_id(reference)
        if video_id is None:
            return None, ReferenceWarning(slot, reference, "unrecognized_reference")
        if self.lookup is None:
            return None, ReferenceWarning(slot, reference, "verification_disabled")

        try:
            availability = await asyncio.wait_for(
                self.lookup.check(video_id),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            return None, ReferenceWarning(slot, reference, "timeout")
        except Exception as exc:
            return None, ReferenceWarning(slot, reference, f"lookup_failed:{type(exc).__name__}")

        if not availability.available:
            return None, ReferenceWarning(slot, reference, availability.reason or "unavailable")
        return canonical_video_url(video_id), None
