"""SET_ACTIVITY payload construction."""

from __future__ import annotations

import time
import uuid
from typing import Any, Optional

from models import TrackInfo

LISTENING_ACTIVITY_TYPE = 2
FALLBACK_IMAGE = "apple_music"
FALLBACK_IMAGE_TEXT = "Apple Music"


def build_activity(
    info: TrackInfo,
    artwork_url: Optional[str] = None,
    now: Optional[float] = None,
) -> dict[str, Any]:
    assets: dict[str, Any] = {
        "large_image": artwork_url or FALLBACK_IMAGE,
        "large_text": info.album,
    }
    if artwork_url:
        assets["small_image"] = FALLBACK_IMAGE
        assets["small_text"] = FALLBACK_IMAGE_TEXT

    activity: dict[str, Any] = {
        "type": LISTENING_ACTIVITY_TYPE,
        "details": info.track,
        "state": f"by {info.artist}",
        "assets": assets,
    }

    # Progress bar only when the duration is known
    if info.duration_s > 0:
        start = (time.time() if now is None else now) - info.elapsed_s
        end = start + info.duration_s
        activity["timestamps"] = {
            "start": int(start * 1000),
            "end": int(end * 1000),
        }
    return activity


def build_set_activity(pid: int, activity: dict[str, Any]) -> dict[str, Any]:
    return {
        "cmd": "SET_ACTIVITY",
        "args": {"pid": pid, "activity": activity},
        "nonce": str(uuid.uuid4()),
    }


def build_clear_activity(pid: int) -> dict[str, Any]:
    return {
        "cmd": "SET_ACTIVITY",
        "args": {"pid": pid},
        "nonce": str(uuid.uuid4()),
    }
