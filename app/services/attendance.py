"""Attendance recording, duplicate handling, edits and listings."""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Optional

from app.config import settings
from app.errors import ConflictError, NotFoundError, ValidationError
from app.models.attendance import (
    AttendanceContext,
    AttendanceRecord,
    AttendanceStatus,
    AttendanceType,
    ScanMethod,
)
from app.models.course import Course, LiveMeeting
from app.models.group import Group
from app.services.queries import safe_object_id
from app.timezone import day_bounds, local_day, to_local, utc_now

logger = logging.getLogger(__name__)

DUPLICATE_POLICIES = ("reject", "overwrite", "append")
INSERT = "insert"
OVERWRITE = "overwrite"


def validate_status(value: Any) -> AttendanceStatus:
    try:
        return AttendanceStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in AttendanceStatus)
        raise ValidationError(f"Invalid attendance status '{value}' (expected one of: {allowed})")


def duplicate_action(existing: Optional[AttendanceRecord], policy: str) -> str:
    """What to do with a new mark given an existing one for the same user/day/context."""
    if policy not in DUPLICATE_POLICIES:
        raise ValueError(f"Unknown duplicate policy: {policy}")
    if existing is None or policy == "append":
        return INSERT
    if policy == "overwrite":
        return OVERWRITE
    raise ConflictError("Attendance already recorded for today")


async def resolve_context(course_id: Optional[str] = None, live_meeting_id: Optional[str] = None) -> AttendanceContext:
    """Validate the optional course / live meeting; the meeting decides the type when both are given."""
    context = AttendanceContext()

    if course_id:
        oid = safe_object_id(course_id)
        course = await Course.get(oid) if oid else None
        if not course:
            raise NotFoundError("Course not found")
        context.course_id = str(course.id)
        context.attendance_type = AttendanceType.COURSE

    if live_meeting_id:
        oid = safe_object_id(live_meeting_id)
        meeting = await LiveMeeting.get(oid) if oid else None
        if not meeting:
            raise NotFoundError("Live meeting not found")
        context.live_meeting_id = str(meeting.id)
        context.attendance_type = AttendanceType.LIVE_MEETING

    return context


async def find_existing(user_id: str, day: str, context: AttendanceContext) -> Optional[AttendanceRecord]:
    return await AttendanceRecord.find_one(
        {
            "user_id": user_id,
            "attendance_day": day,
            "context_key": context.key,
            "is_valid": True,
        }
    )


async def record_attendance(
    user,
    staff,
    status: Any,
    context: AttendanceContext,
    method: ScanMethod,
    qr_data: Optional[dict] = None,
    scan_location: Optional[str] = None,
    notes: Optional[str] = None,
    policy: Optional[str] = None,
) -> AttendanceRecord:
    """Write one attendance mark for an already-resolved user."""
    status = validate_status(status)
    policy = policy or settings.attendance_duplicate_policy

    now = utc_now()
    day = local_day(now)
    user_id = str(user.id)

    existing = None
    if policy != "append":
        existing = await find_existing(user_id, day, context)
    try:
        action = duplicate_action(existing, policy)
    except ConflictError:
        logger.warning(f"Duplicate attendance rejected for user {user_id} on {day} ({context.key})")
        raise

    if action == OVERWRITE:
        existing.status = status
        existing.scanned_by = str(staff.id)
        existing.scan_method = method
        existing.scan_location = scan_location
        existing.qr_data = qr_data
        existing.notes = notes
        existing.attendance_date = now
        existing.updated_at = now
        await existing.save()
        logger.info(f"Attendance overwritten for user {user_id} on {day} ({context.key}): {status.value}")
        return existing

    record = AttendanceRecord(
        user_id=user_id,
        scanned_by=str(staff.id),
        attendance_type=context.attendance_type,
        course_id=context.course_id,
        live_meeting_id=context.live_meeting_id,
        status=status,
        scan_method=method,
        scan_location=scan_location or None,
        qr_data=qr_data,
        notes=notes or None,
        attendance_date=now,
        attendance_day=day,
        context_key=context.key,
    )
    await record.insert()
    logger.info(f"Attendance recorded for user {user_id} on {day} ({context.key}): {status.value} via {method.value}")
    return record


async def get_record(record_id: str) -> AttendanceRecord:
    oid = safe_object_id(record_id)
    record = await AttendanceRecord.get(oid) if oid else None
    if not record:
        raise NotFoundError("Attendance record not found")
    return record


async def update_attendance(record_id: str, status: Optional[str] = None, notes: Optional[str] = None, notes_set: bool = False) -> AttendanceRecord:
    if status is not None:
        status = validate_status(status)
    record = await get_record(record_id)
    if status is not None:
        record.status = status
    if notes_set:
        record.notes = notes
    record.updated_at = utc_now()
    await record.save()
    return record


async def delete_attendance(record_id: str) -> None:
    record = await get_record(record_id)
    await record.delete()
    logger.info(f"Attendance record {record_id} deleted")


async def invalidate_attendance(record_id: str, reason: str) -> AttendanceRecord:
    if not (reason or "").strip():
        raise ValidationError("A reason is required to invalidate attendance")
    record = await get_record(record_id)
    record.is_valid = False
    record.invalid_reason = reason.strip()
    record.updated_at = utc_now()
    await record.save()
    return record


async def group_member_ids(group_id: str) -> list[str]:
    oid = safe_object_id(group_id)
    group = await Group.get(oid) if oid else None
    if not group:
        raise NotFoundError("Group not found")
    return list(group.student_ids)


def build_attendance_filter(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    status: Optional[str] = None,
    attendance_type: Optional[str] = None,
    user_id: Optional[str] = None,
    user_ids: Optional[list[str]] = None,
    course_id: Optional[str] = None,
    live_meeting_id: Optional[str] = None,
    include_invalid: bool = False,
) -> dict:
    query: dict[str, Any] = {}
    if not include_invalid:
        query["is_valid"] = True

    if start_date or end_date:
        lower, upper = day_bounds(start_date or end_date, end_date or start_date)
        query["attendance_date"] = {"$gte": lower, "$lte": upper}

    if status:
        query["status"] = validate_status(status).value
    if attendance_type:
        try:
            query["attendance_type"] = AttendanceType(attendance_type).value
        except ValueError:
            raise ValidationError(f"Invalid attendance type '{attendance_type}'")
    if user_id:
        query["user_id"] = user_id
    elif user_ids is not None:
        query["user_id"] = {"$in": user_ids}
    if course_id:
        query["course_id"] = course_id
    if live_meeting_id:
        query["live_meeting_id"] = live_meeting_id
    return query


def attendance_rows(records: list, user_map: dict[str, dict]) -> list[dict]:
    """Flat rows for the CSV / Excel export."""
    rows = []
    for record in records:
        user = user_map.get(record.user_id) or {}
        rows.append(
            {
                "Date": record.attendance_day,
                "Time": to_local(record.attendance_date).strftime("%H:%M") if isinstance(record.attendance_date, datetime) else "",
                "User ID": record.user_id,
                "Full Name": user.get("full_name", "Unknown"),
                "Phone Number": user.get("phone_number") or "",
                "Type": getattr(record.attendance_type, "value", record.attendance_type),
                "Status": getattr(record.status, "value", record.status),
                "Method": getattr(record.scan_method, "value", record.scan_method),
                "Notes": record.notes or "",
            }
        )
    return rows
