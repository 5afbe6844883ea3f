"""Achievements shown on the student report.

There is no achievements collection yet: the listing comes from a placeholder
source with fixed entries. Callers treat the source as an external
collaborator that may fail, and fall back to an empty list.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class AchievementSource(Protocol):
    async def for_user(self, user_id: str) -> list[dict]: ...


class PlaceholderAchievementSource:
    """Fixed sample achievements dated relative to now."""

    ENTRIES = (
        ("Outstanding result", "Scored above 90% in the final exam", 7, "academic"),
        ("Perfect attendance", "Attended every session last month", 14, "attendance"),
        ("Active participation", "Took an active part in discussions and activities", 21, "participation"),
    )

    def __init__(self, now: Optional[datetime] = None):
        self._now = now

    async def for_user(self, user_id: str) -> list[dict]:
        now = self._now or datetime.utcnow()
        return [
            {
                "title": title,
                "description": description,
                "date": (now - timedelta(days=days_ago)).isoformat(),
                "type": kind,
            }
            for title, description, days_ago, kind in self.ENTRIES
        ]


_source: AchievementSource = PlaceholderAchievementSource()


def get_achievement_source() -> AchievementSource:
    return _source


async def list_user_achievements(user_id: str, source: Optional[AchievementSource] = None) -> list[dict]:
    source = source or get_achievement_source()
    try:
        return await source.for_user(user_id)
    except Exception as e:
        logger.warning(f"Achievements unavailable for user {user_id}: {e}")
        return []
