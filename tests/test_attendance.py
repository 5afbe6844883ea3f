from datetime import date
from types import SimpleNamespace

import pytest
from beanie import PydanticObjectId

from app.errors import ConflictError, ValidationError
from app.models.attendance import AttendanceContext, AttendanceStatus, AttendanceType, ScanMethod
from app.services import attendance as attendance_service
from app.services.dashboard import summarize_records
from app.services.identity import IdentityQuery, resolve_identity


class InMemoryAttendance:
    """Stands in for the attendance collection."""

    def __init__(self):
        self.records = []

    def record_class(self):
        store = self

        class Record(SimpleNamespace):
            def __init__(self, **fields):
                super().__init__(id=PydanticObjectId(), is_valid=True, invalid_reason=None, **fields)

            async def insert(self):
                store.records.append(self)

            async def save(self):
                pass

        return Record

    async def find_existing(self, user_id, day, context):
        for record in self.records:
            if (
                record.user_id == user_id
                and record.attendance_day == day
                and record.context_key == context.key
                and record.is_valid
            ):
                return record
        return None


@pytest.fixture
def store(monkeypatch):
    store = InMemoryAttendance()
    monkeypatch.setattr(attendance_service, "AttendanceRecord", store.record_class())
    monkeypatch.setattr(attendance_service, "find_existing", store.find_existing)
    return store


class OneUserDirectory:
    def __init__(self, user):
        self.user = user

    async def by_id(self, user_id):
        return self.user if str(self.user.id) == user_id else None

    async def by_student_id(self, student_id):
        return None

    async def by_phone(self, phone_number):
        return self.user if self.user.phone_number == phone_number else None


def test_validate_status():
    assert attendance_service.validate_status("late") is AttendanceStatus.LATE
    for bad in ("excused", "", None, "PRESENT"):
        with pytest.raises(ValidationError):
            attendance_service.validate_status(bad)


def test_duplicate_action_policies():
    existing = object()
    assert attendance_service.duplicate_action(None, "reject") == "insert"
    assert attendance_service.duplicate_action(existing, "append") == "insert"
    assert attendance_service.duplicate_action(existing, "overwrite") == "overwrite"
    with pytest.raises(ConflictError):
        attendance_service.duplicate_action(existing, "reject")


def test_context_keys():
    assert AttendanceContext().key == "general"
    assert AttendanceContext(attendance_type=AttendanceType.COURSE, course_id="c1").key == "course:c1"
    meeting = AttendanceContext(attendance_type=AttendanceType.LIVE_MEETING, course_id="c1", live_meeting_id="m1")
    assert meeting.key == "live_meeting:m1"


async def test_invalid_status_writes_nothing(store, make_user, staff):
    with pytest.raises(ValidationError):
        await attendance_service.record_attendance(
            make_user(), staff, "excused", AttendanceContext(), ScanMethod.MANUAL, policy="append"
        )
    assert store.records == []


async def test_phone_scan_shows_on_dashboard(store, make_user, staff):
    student = make_user(phone_number="01012345678")
    user = await resolve_identity(IdentityQuery(phone_number="01012345678"), OneUserDirectory(student))

    record = await attendance_service.record_attendance(
        user, staff, "present", AttendanceContext(), ScanMethod.MANUAL
    )

    assert record.user_id == str(student.id)
    assert record.scanned_by == str(staff.id)
    summary = summarize_records(r for r in store.records if r.attendance_day == record.attendance_day)
    assert (summary.present, summary.late, summary.absent, summary.total) == (1, 0, 0, 1)
    assert summary.attendance_rate == 100


async def test_second_scan_rejected(store, make_user, staff):
    student = make_user()
    context = AttendanceContext(attendance_type=AttendanceType.COURSE, course_id="c1")
    await attendance_service.record_attendance(student, staff, "present", context, ScanMethod.QR_CODE, policy="reject")

    with pytest.raises(ConflictError):
        await attendance_service.record_attendance(student, staff, "late", context, ScanMethod.QR_CODE, policy="reject")
    assert len(store.records) == 1


async def test_second_scan_in_other_context_is_allowed(store, make_user, staff):
    student = make_user()
    course = AttendanceContext(attendance_type=AttendanceType.COURSE, course_id="c1")
    await attendance_service.record_attendance(student, staff, "present", course, ScanMethod.QR_CODE, policy="reject")
    await attendance_service.record_attendance(
        student, staff, "present", AttendanceContext(), ScanMethod.QR_CODE, policy="reject"
    )
    assert len(store.records) == 2


async def test_second_scan_appended(store, make_user, staff):
    student = make_user()
    context = AttendanceContext()
    await attendance_service.record_attendance(student, staff, "present", context, ScanMethod.QR_CODE, policy="append")
    await attendance_service.record_attendance(student, staff, "late", context, ScanMethod.QR_CODE, policy="append")

    assert len(store.records) == 2
    summary = summarize_records(store.records)
    assert summary.total == 2
    assert summary.unique_users == 1


async def test_second_scan_overwrites(store, make_user, staff):
    student = make_user()
    context = AttendanceContext()
    first = await attendance_service.record_attendance(
        student, staff, "present", context, ScanMethod.QR_CODE, policy="overwrite"
    )
    second = await attendance_service.record_attendance(
        student, staff, "late", context, ScanMethod.MANUAL, notes="bus delay", policy="overwrite"
    )

    assert second is first
    assert len(store.records) == 1
    assert first.status is AttendanceStatus.LATE
    assert first.notes == "bus delay"


def test_filter_defaults_to_valid_records():
    assert attendance_service.build_attendance_filter() == {"is_valid": True}


def test_filter_with_range_and_fields():
    query = attendance_service.build_attendance_filter(
        start_date=date(2026, 10, 1),
        end_date=date(2026, 10, 19),
        status="absent",
        user_ids=["u1", "u2"],
        course_id="c1",
    )
    assert query["status"] == "absent"
    assert query["user_id"] == {"$in": ["u1", "u2"]}
    assert query["course_id"] == "c1"
    assert query["attendance_date"]["$gte"] < query["attendance_date"]["$lte"]


def test_filter_rejects_unknown_values():
    with pytest.raises(ValidationError):
        attendance_service.build_attendance_filter(status="excused")
    with pytest.raises(ValidationError):
        attendance_service.build_attendance_filter(attendance_type="lab")
