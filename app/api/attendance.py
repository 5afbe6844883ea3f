import io
from datetime import date
from typing import Any, Optional

import pandas as pd
from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from app.api.deps import CurrentUser, ScannerStaff, StaffOnly
from app.errors import ForbiddenError
from app.models.attendance import (
    AttendanceInvalidate,
    AttendanceRecord,
    AttendanceStatus,
    AttendanceUpdate,
    ScanMethod,
    attendance_to_dict,
)
from app.models.user import STAFF_ROLES, user_summary
from app.services import attendance as attendance_service
from app.services import dashboard as dashboard_service
from app.services.identity import (
    IdentityQuery,
    normalize_qr_text,
    parse_qr_payload,
    resolve_identity,
    verify_qr_matches,
)
from app.services.queries import build_user_map, paginate
from app.timezone import month_range, utc_now

router = APIRouter()


class ScanQRRequest(BaseModel):
    qr_data: Any
    course_id: Optional[str] = None
    live_meeting_id: Optional[str] = None
    scan_location: Optional[str] = None
    notes: Optional[str] = None


class TakeByPhoneRequest(BaseModel):
    phone_number: Optional[str] = None
    user_id: Optional[str] = None
    student_id: Optional[str] = None
    status: str = AttendanceStatus.PRESENT.value
    course_id: Optional[str] = None
    live_meeting_id: Optional[str] = None
    scan_location: Optional[str] = None
    notes: Optional[str] = None


class DecodeQRRequest(BaseModel):
    text: str


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date format (YYYY-MM-DD)")


def _capture_response(record: AttendanceRecord, user, staff, message: str) -> dict:
    student = user_summary(user)
    return {
        "success": True,
        "message": message,
        "data": {
            "attendance": attendance_to_dict(record, student, user_summary(staff)),
            "user": student,
            # The dashboard for this day is stale until refetched
            "invalidates": {"dashboard_day": record.attendance_day},
        },
    }


async def _listing(query: dict, page: int, limit: int) -> dict:
    records, meta = await paginate(AttendanceRecord, query, page, limit, "-attendance_date")
    user_map = await build_user_map(
        [r.user_id for r in records] + [r.scanned_by for r in records]
    )
    docs = [
        attendance_to_dict(r, user_map.get(r.user_id), user_map.get(r.scanned_by))
        for r in records
    ]
    return {"success": True, "data": {"docs": docs, **meta}}


def _ensure_self_or_staff(user, user_id: str) -> None:
    if user_id != str(user.id) and user.role not in STAFF_ROLES:
        raise ForbiddenError("Access denied")


@router.post("/scan-qr", status_code=201)
async def scan_qr_attendance(data: ScanQRRequest, staff: ScannerStaff):
    """Record attendance from a scanned QR code (status: present)."""
    payload = parse_qr_payload(data.qr_data)
    user = await resolve_identity(payload.to_query())
    verify_qr_matches(payload, user)
    context = await attendance_service.resolve_context(data.course_id, data.live_meeting_id)

    record = await attendance_service.record_attendance(
        user,
        staff,
        AttendanceStatus.PRESENT,
        context,
        ScanMethod.QR_CODE,
        qr_data=data.qr_data,
        scan_location=data.scan_location,
        notes=data.notes,
    )
    return _capture_response(record, user, staff, "Attendance recorded")


@router.post("/decode-qr")
async def decode_qr_text(data: DecodeQRRequest, staff: ScannerStaff):
    """Normalize raw scanned text into a QR payload for /scan-qr."""
    return {"success": True, "message": "QR decoded successfully", "data": {"qr_data": normalize_qr_text(data.text)}}


@router.post("/take-by-phone", status_code=201)
async def take_attendance_by_phone(data: TakeByPhoneRequest, staff: ScannerStaff):
    """Record attendance by phone number, user id and/or student id."""
    status = attendance_service.validate_status(data.status)
    user = await resolve_identity(
        IdentityQuery(user_id=data.user_id, student_id=data.student_id, phone_number=data.phone_number)
    )
    context = await attendance_service.resolve_context(data.course_id, data.live_meeting_id)

    record = await attendance_service.record_attendance(
        user,
        staff,
        status,
        context,
        ScanMethod.MANUAL,
        qr_data={
            "type": "attendance",
            "method": "phone_and_id",
            "userId": str(user.id),
            "fullName": user.full_name,
            "phoneNumber": user.phone_number,
            "timestamp": utc_now().isoformat(),
        },
        scan_location=data.scan_location,
        notes=data.notes,
    )
    return _capture_response(record, user, staff, "Attendance recorded by phone / ID")


@router.get("/")
async def list_attendance(
    staff: StaffOnly,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=200),
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    status: Optional[str] = None,
    attendance_type: Optional[str] = None,
    user_id: Optional[str] = None,
    course_id: Optional[str] = None,
    live_meeting_id: Optional[str] = None,
    group_id: Optional[str] = None,
):
    """All attendance records, newest first."""
    user_ids = await attendance_service.group_member_ids(group_id) if group_id else None
    query = attendance_service.build_attendance_filter(
        start_date=_parse_date(start_date),
        end_date=_parse_date(end_date),
        status=status,
        attendance_type=attendance_type,
        user_id=user_id,
        user_ids=user_ids,
        course_id=course_id,
        live_meeting_id=live_meeting_id,
    )
    return await _listing(query, page, limit)


@router.get("/dashboard")
async def get_attendance_dashboard(
    staff: StaffOnly,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    course_id: Optional[str] = None,
    group_id: Optional[str] = None,
):
    data = await dashboard_service.attendance_dashboard(
        start_date=_parse_date(start_date),
        end_date=_parse_date(end_date),
        course_id=course_id,
        group_id=group_id,
    )
    return {"success": True, "data": data}


@router.get("/report")
async def download_attendance_report(
    staff: StaffOnly,
    start_date: str,
    end_date: str,
    course_id: Optional[str] = None,
    group_id: Optional[str] = None,
    format: str = Query("csv", enum=["csv", "excel"]),
):
    """Download attendance for a date range as CSV or Excel."""
    d_from = _parse_date(start_date)
    d_to = _parse_date(end_date)
    user_ids = await attendance_service.group_member_ids(group_id) if group_id else None
    query = attendance_service.build_attendance_filter(
        start_date=d_from, end_date=d_to, course_id=course_id, user_ids=user_ids
    )
    records = await AttendanceRecord.find(query).sort("attendance_date").to_list()
    if not records:
        raise HTTPException(status_code=404, detail="No records found for the given criteria")

    user_map = await build_user_map([r.user_id for r in records])
    df = pd.DataFrame(attendance_service.attendance_rows(records, user_map))
    filename = f"attendance_{start_date}_{end_date}"

    if format == "csv":
        stream = io.StringIO()
        df.to_csv(stream, index=False)
        return StreamingResponse(
            iter([stream.getvalue()]),
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}.csv"},
        )
    else:
        output = io.BytesIO()
        with pd.ExcelWriter(output, engine="openpyxl") as writer:
            df.to_excel(writer, index=False, sheet_name="Attendance")
        output.seek(0)
        return StreamingResponse(
            output,
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers={"Content-Disposition": f"attachment; filename={filename}.xlsx"},
        )


@router.get("/user/{user_id}")
async def get_user_attendance(
    user_id: str,
    user: CurrentUser,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=200),
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    status: Optional[str] = None,
    attendance_type: Optional[str] = None,
):
    """Attendance of one user; students may only read their own."""
    _ensure_self_or_staff(user, user_id)
    query = attendance_service.build_attendance_filter(
        start_date=_parse_date(start_date),
        end_date=_parse_date(end_date),
        status=status,
        attendance_type=attendance_type,
        user_id=user_id,
    )
    return await _listing(query, page, limit)


@router.get("/user/{user_id}/stats")
async def get_user_attendance_stats(
    user_id: str,
    user: CurrentUser,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
):
    _ensure_self_or_staff(user, user_id)
    data = await dashboard_service.user_attendance_stats(
        user_id, start_date=_parse_date(start_date), end_date=_parse_date(end_date)
    )
    return {"success": True, "data": data}


@router.get("/group/{group_id}")
async def get_group_attendance(
    group_id: str,
    staff: StaffOnly,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    status: Optional[str] = None,
):
    """Attendance of a group's students; defaults to the current month."""
    user_ids = await attendance_service.group_member_ids(group_id)
    d_from, d_to = _parse_date(start_date), _parse_date(end_date)
    if not (d_from and d_to):
        d_from, d_to = month_range()
    query = attendance_service.build_attendance_filter(
        start_date=d_from, end_date=d_to, status=status, user_ids=user_ids
    )
    return await _listing(query, page, limit)


@router.put("/{record_id}")
async def update_attendance(record_id: str, data: AttendanceUpdate, staff: StaffOnly):
    record = await attendance_service.update_attendance(
        record_id,
        status=data.status,
        notes=data.notes,
        notes_set="notes" in data.model_fields_set,
    )
    return {"success": True, "message": "Attendance record updated", "data": attendance_to_dict(record)}


@router.post("/{record_id}/invalidate")
async def invalidate_attendance(record_id: str, data: AttendanceInvalidate, staff: StaffOnly):
    """Keep the record but exclude it from listings and counts."""
    record = await attendance_service.invalidate_attendance(record_id, data.reason)
    return {"success": True, "message": "Attendance record invalidated", "data": attendance_to_dict(record)}


@router.delete("/{record_id}")
async def delete_attendance(record_id: str, staff: StaffOnly):
    await attendance_service.delete_attendance(record_id)
    return {"success": True, "message": "Attendance record deleted"}
