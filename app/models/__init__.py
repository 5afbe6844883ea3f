"""Beanie document models and Pydantic schemas."""
from app.models.user import User, UserRole, UserCreate, UserOut
from app.models.course import Course, LiveMeeting
from app.models.group import Group
from app.models.attendance import (
    AttendanceRecord,
    AttendanceStatus,
    AttendanceType,
    AttendanceContext,
    ScanMethod,
)
from app.models.exam import Exam, ExamQuestion, ExamAnswer, ExamAttemptResult
from app.models.course_access import CourseAccessCode, CourseAccessGrant

__all__ = [
    "User",
    "UserRole",
    "UserCreate",
    "UserOut",
    "Course",
    "LiveMeeting",
    "Group",
    "AttendanceRecord",
    "AttendanceStatus",
    "AttendanceType",
    "AttendanceContext",
    "ScanMethod",
    "Exam",
    "ExamQuestion",
    "ExamAnswer",
    "ExamAttemptResult",
    "CourseAccessCode",
    "CourseAccessGrant",
]
