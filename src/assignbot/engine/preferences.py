from __future__ import annotations

from typing import Mapping

from assignbot.core.models import ReviewPrefs, RotationMode

DEFAULT_PREFS = ReviewPrefs()


def validate_prefs(capacity: int | None, rotation_mode: RotationMode | str) -> ReviewPrefs:
    if capacity is not None and capacity < 0:
        raise ValueError("capacity must be non-negative")
    return ReviewPrefs(capacity=capacity, rotation_mode=RotationMode(rotation_mode))


class InMemoryReviewPreferences:
    """Preferences held in a dict; used in tests and when no storage is configured."""

    def __init__(self, prefs: Mapping[str, ReviewPrefs] | None = None) -> None:
        self._prefs = {username.lower(): value for username, value in (prefs or {}).items()}

    def set(self, username: str, prefs: ReviewPrefs) -> None:
        self._prefs[username.lower()] = prefs

    async def get(self, username: str) -> ReviewPrefs:
        return self._prefs.get(username.lower(), DEFAULT_PREFS)
