"""Attendance counters for the dashboard and per-user statistics.

Counts are recomputed from the attendance collection on every request, so
a dashboard query sees every write committed before it started.
"""
from __future__ import annotations

import math
from datetime import date, timedelta
from typing import Iterable, Optional

from pydantic import BaseModel

from app.config import settings
from app.models.attendance import AttendanceRecord, AttendanceStatus, AttendanceType
from app.services.attendance import build_attendance_filter, group_member_ids
from app.timezone import local_today


class AttendanceSummary(BaseModel):
    present: int = 0
    late: int = 0
    absent: int = 0
    total: int = 0
    unique_users: int = 0
    attendance_rate: int = 0


def attendance_rate(present: int, total: int) -> int:
    """Present share of total as a whole percent, half rounded up; 0 when there is nothing to count."""
    if total <= 0:
        return 0
    return math.floor(present * 100 / total + 0.5)


def summary_from_counts(counts: dict[str, int], unique_users: int = 0) -> AttendanceSummary:
    present = counts.get(AttendanceStatus.PRESENT.value, 0)
    late = counts.get(AttendanceStatus.LATE.value, 0)
    absent = counts.get(AttendanceStatus.ABSENT.value, 0)
    total = present + late + absent
    return AttendanceSummary(
        present=present,
        late=late,
        absent=absent,
        total=total,
        unique_users=unique_users,
        attendance_rate=attendance_rate(present, total),
    )


def _status_value(status) -> str:
    return getattr(status, "value", status)


def summarize_records(records: Iterable) -> AttendanceSummary:
    """Same counters as the aggregation pipeline, computed from loaded records."""
    counts: dict[str, int] = {}
    users: set[str] = set()
    for record in records:
        if not getattr(record, "is_valid", True):
            continue
        key = _status_value(record.status)
        counts[key] = counts.get(key, 0) + 1
        users.add(record.user_id)
    return summary_from_counts(counts, len(users))


def default_range(start_date: Optional[date], end_date: Optional[date]) -> tuple[date, date]:
    end = end_date or local_today()
    start = start_date or (end - timedelta(days=settings.dashboard_default_days))
    return start, end


async def _count_by(query: dict, field: str) -> dict[str, int]:
    rows = await AttendanceRecord.find(query).aggregate(
        [{"$group": {"_id": f"${field}", "count": {"$sum": 1}}}]
    ).to_list()
    return {str(row["_id"]): row["count"] for row in rows}


async def _unique_users(query: dict) -> int:
    rows = await AttendanceRecord.find(query).aggregate(
        [
            {"$group": {"_id": None, "users": {"$addToSet": "$user_id"}}},
            {"$project": {"count": {"$size": "$users"}}},
        ]
    ).to_list()
    return rows[0]["count"] if rows else 0


async def _daily_trends(query: dict) -> list[dict]:
    rows = await AttendanceRecord.find(query).aggregate(
        [
            {
                "$group": {
                    "_id": "$attendance_day",
                    "count": {"$sum": 1},
                    "present": {"$sum": {"$cond": [{"$eq": ["$status", "present"]}, 1, 0]}},
                }
            },
            {"$sort": {"_id": 1}},
        ]
    ).to_list()
    return [{"date": row["_id"], "count": row["count"], "present": row["present"]} for row in rows]


async def summarize(query: dict) -> AttendanceSummary:
    counts = await _count_by(query, "status")
    return summary_from_counts(counts, await _unique_users(query))


async def attendance_dashboard(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    course_id: Optional[str] = None,
    group_id: Optional[str] = None,
) -> dict:
    start, end = default_range(start_date, end_date)
    user_ids = await group_member_ids(group_id) if group_id else None
    query = build_attendance_filter(
        start_date=start,
        end_date=end,
        course_id=course_id,
        user_ids=user_ids,
    )

    summary = await summarize(query)
    by_type = await _count_by(query, "attendance_type")
    return {
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
        "summary": summary.model_dump(),
        "daily_trends": await _daily_trends(query),
        "by_type": {t.value: by_type.get(t.value, 0) for t in AttendanceType},
    }


async def user_attendance_stats(
    user_id: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> dict:
    query = build_attendance_filter(start_date=start_date, end_date=end_date, user_id=user_id)
    summary = await summarize(query)
    by_type = await _count_by(query, "attendance_type")
    return {
        "user_id": user_id,
        **summary.model_dump(exclude={"unique_users"}),
        "by_type": {t.value: by_type.get(t.value, 0) for t in AttendanceType},
    }
