import os

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("TIMEZONE", "Africa/Cairo")

from types import SimpleNamespace
from uuid import uuid4

import pytest
from beanie import PydanticObjectId, init_beanie
from mongomock_motor import AsyncMongoMockClient

from app.models import (
    AttendanceRecord,
    Course,
    CourseAccessCode,
    CourseAccessGrant,
    Exam,
    ExamAttemptResult,
    Group,
    LiveMeeting,
)
from app.models.user import UserRole


@pytest.fixture
async def mongo():
    """Beanie over an in-memory MongoDB, one fresh database per test."""
    client = AsyncMongoMockClient()
    await init_beanie(
        database=client[f"learning_center_{uuid4().hex}"],
        document_models=[
            AttendanceRecord,
            Course,
            LiveMeeting,
            Group,
            Exam,
            ExamAttemptResult,
            CourseAccessCode,
            CourseAccessGrant,
        ],
    )
    yield client


@pytest.fixture
def make_user():
    def _make(**overrides):
        fields = {
            "id": PydanticObjectId(),
            "full_name": "Student One",
            "email": "student@example.com",
            "phone_number": "01012345678",
            "student_id": None,
            "role": UserRole.USER,
            "is_active": True,
            "assigned_course_ids": [],
        }
        fields.update(overrides)
        return SimpleNamespace(**fields)

    return _make


@pytest.fixture
def staff(make_user):
    return make_user(
        full_name="Front Desk",
        email="desk@example.com",
        phone_number="01099999999",
        role=UserRole.ASSISTANT,
    )
