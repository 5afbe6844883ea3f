from datetime import datetime
from enum import Enum
from typing import Any, Optional

from beanie import Document, Indexed
from pydantic import BaseModel, Field
from pymongo import ASCENDING, DESCENDING, IndexModel


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    LATE = "late"
    ABSENT = "absent"


class AttendanceType(str, Enum):
    COURSE = "course"
    LIVE_MEETING = "live_meeting"
    GENERAL = "general"


class ScanMethod(str, Enum):
    QR_CODE = "qr_code"
    MANUAL = "manual"


class AttendanceRecord(Document):
    """One attendance mark for a user, taken by a staff member."""
    user_id: Indexed(str)
    scanned_by: str  # staff user_id
    attendance_type: AttendanceType = AttendanceType.GENERAL
    course_id: Optional[str] = None
    live_meeting_id: Optional[str] = None
    status: AttendanceStatus = AttendanceStatus.PRESENT
    scan_method: ScanMethod = ScanMethod.QR_CODE
    scan_location: Optional[str] = None
    qr_data: Optional[dict[str, Any]] = None  # original payload, kept for verification
    notes: Optional[str] = None

    attendance_date: datetime = Field(default_factory=datetime.utcnow)
    # Local calendar day and context, together the duplicate key with user_id
    attendance_day: str
    context_key: str = "general"

    is_valid: bool = True
    invalid_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "attendance"
        use_state_management = True
        indexes = [
            IndexModel([("user_id", ASCENDING), ("attendance_day", ASCENDING), ("context_key", ASCENDING)]),
            IndexModel([("attendance_date", DESCENDING)]),
            IndexModel([("course_id", ASCENDING), ("attendance_date", DESCENDING)]),
            IndexModel([("scanned_by", ASCENDING), ("attendance_date", DESCENDING)]),
        ]


class AttendanceContext(BaseModel):
    """Course / live meeting (or neither) an attendance mark is scoped to."""
    attendance_type: AttendanceType = AttendanceType.GENERAL
    course_id: Optional[str] = None
    live_meeting_id: Optional[str] = None

    @property
    def key(self) -> str:
        if self.live_meeting_id:
            return f"live_meeting:{self.live_meeting_id}"
        if self.course_id:
            return f"course:{self.course_id}"
        return "general"


class AttendanceUpdate(BaseModel):
    status: Optional[str] = None
    notes: Optional[str] = None


class AttendanceInvalidate(BaseModel):
    reason: str


def attendance_to_dict(record, user: Optional[dict] = None, scanned_by: Optional[dict] = None) -> dict:
    return {
        "id": str(record.id),
        "user_id": record.user_id,
        "user": user,
        "scanned_by": record.scanned_by,
        "scanned_by_user": scanned_by,
        "attendance_type": record.attendance_type,
        "course_id": record.course_id,
        "live_meeting_id": record.live_meeting_id,
        "status": record.status,
        "scan_method": record.scan_method,
        "scan_location": record.scan_location,
        "notes": record.notes,
        "attendance_date": record.attendance_date.isoformat() if record.attendance_date else None,
        "attendance_day": record.attendance_day,
        "is_valid": record.is_valid,
        "invalid_reason": record.invalid_reason,
    }
