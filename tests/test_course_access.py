from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest
from beanie import PydanticObjectId
from pydantic import ValidationError as PydanticValidationError

from app.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.models.course import Course
from app.models.course_access import CodeGenerateRequest, CourseAccessCode, CourseAccessGrant
from app.models.user import UserRole
from app.services import course_access as access_service
from app.services.course_access import (
    CODE_ALPHABET,
    ensure_can_manage,
    generate_code,
    managed_course_ids,
    normalize_code,
    redemption_error,
)

NOW = datetime(2026, 10, 19, 12, 0)


def _code(**overrides):
    fields = {
        "code": "ABCDEF1234",
        "course_id": "c1",
        "max_uses": 1,
        "used_count": 0,
        "redeemed_by": [],
        "expires_at": None,
        "is_active": True,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


def test_generate_code():
    code = generate_code(12)
    assert len(code) == 12
    assert set(code) <= set(CODE_ALPHABET)


def test_normalize_code():
    assert normalize_code("  abcd12 ") == "ABCD12"
    assert normalize_code(None) == ""


def test_managed_course_ids(make_user):
    assert managed_course_ids(make_user(role=UserRole.ADMIN)) is None
    assert managed_course_ids(make_user(role=UserRole.INSTRUCTOR, assigned_course_ids=["c1"])) == ["c1"]
    assert managed_course_ids(make_user(role=UserRole.ASSISTANT)) == []


def test_instructor_limited_to_assigned_courses(make_user):
    instructor = make_user(role=UserRole.INSTRUCTOR, assigned_course_ids=["c1"])
    ensure_can_manage(instructor, "c1")
    with pytest.raises(ForbiddenError):
        ensure_can_manage(instructor, "c2")
    ensure_can_manage(make_user(role=UserRole.SUPER_ADMIN), "c2")


def test_redeemable_code():
    assert redemption_error(_code(), "u1", NOW) is None


@pytest.mark.parametrize(
    "code,error",
    [
        (None, NotFoundError),
        (_code(is_active=False), NotFoundError),
        (_code(expires_at=NOW - timedelta(minutes=1)), ValidationError),
        (_code(used_count=1, redeemed_by=["u2"]), ConflictError),
        (_code(max_uses=5, used_count=1, redeemed_by=["u1"]), ConflictError),
    ],
)
def test_redemption_errors(code, error):
    assert isinstance(redemption_error(code, "u1", NOW), error)


def test_multi_use_code_accepts_new_user():
    assert redemption_error(_code(max_uses=3, used_count=2, redeemed_by=["u2", "u3"]), "u1", NOW) is None


def test_generate_request_requires_positive_counts():
    with pytest.raises(PydanticValidationError):
        CodeGenerateRequest(course_id="c1", quantity=0)
    with pytest.raises(PydanticValidationError):
        CodeGenerateRequest(course_id="c1", max_uses=0)
    assert CodeGenerateRequest(course_id="c1", quantity=5).max_uses == 1


@pytest.fixture
async def courses(mongo):
    physics, chemistry = Course(title="Physics"), Course(title="Chemistry")
    await physics.insert()
    await chemistry.insert()
    return str(physics.id), str(chemistry.id)


@pytest.fixture
def admin(make_user):
    return make_user(full_name="Center Admin", role=UserRole.ADMIN)


async def test_generate_codes(courses, admin):
    physics, _ = courses
    codes = await access_service.generate_codes(admin, physics, quantity=5, max_uses=2, access_days=30)

    assert len({c.code for c in codes}) == 5
    assert all(c.course_id == physics and c.max_uses == 2 and c.used_count == 0 for c in codes)
    assert await CourseAccessCode.find({"course_id": physics}).count() == 5


async def test_generate_codes_for_unknown_course(mongo, admin):
    with pytest.raises(NotFoundError):
        await access_service.generate_codes(admin, str(PydanticObjectId()), quantity=1)


async def test_single_use_code_cannot_be_redeemed_twice(courses, admin, make_user):
    physics, _ = courses
    [code] = await access_service.generate_codes(admin, physics, quantity=1)
    first, second = make_user(), make_user(phone_number="01055555555")

    grant = await access_service.redeem_code(first, code.code.lower())
    assert grant.course_id == physics
    with pytest.raises(ConflictError):
        await access_service.redeem_code(second, code.code)

    stored = await CourseAccessCode.get(code.id)
    assert stored.used_count == 1
    assert stored.redeemed_by == [str(first.id)]
    assert await CourseAccessGrant.find({"course_id": physics}).count() == 1


async def test_losing_a_redemption_race_leaves_no_grant(courses, admin, make_user, monkeypatch):
    physics, _ = courses
    [code] = await access_service.generate_codes(admin, physics, quantity=1)
    await access_service.redeem_code(make_user(), code.code)

    # Both redeemers passed the pre-check; only the conditional update decides
    monkeypatch.setattr(access_service, "redemption_error", lambda code, user_id, now: None)
    late = make_user(phone_number="01055555555")
    with pytest.raises(ConflictError):
        await access_service.redeem_code(late, code.code)

    assert await CourseAccessGrant.find({"user_id": str(late.id)}).count() == 0
    assert (await CourseAccessCode.get(code.id)).used_count == 1


async def test_multi_use_code_counts_each_user_once(courses, admin, make_user):
    physics, _ = courses
    [code] = await access_service.generate_codes(admin, physics, quantity=1, max_uses=3)
    student = make_user()

    await access_service.redeem_code(student, code.code)
    with pytest.raises(ConflictError):
        await access_service.redeem_code(student, code.code)
    await access_service.redeem_code(make_user(phone_number="01055555555"), code.code)

    assert (await CourseAccessCode.get(code.id)).used_count == 2


async def test_bulk_delete_limited_to_instructor_courses(courses, admin, make_user):
    physics, chemistry = courses
    own = await access_service.generate_codes(admin, physics, quantity=2)
    other = await access_service.generate_codes(admin, chemistry, quantity=2)
    instructor = make_user(role=UserRole.INSTRUCTOR, assigned_course_ids=[physics])

    deleted = await access_service.bulk_delete_codes(instructor, [str(c.id) for c in own + other] + ["bogus"])

    assert deleted == 2
    assert await CourseAccessCode.find({"course_id": physics}).count() == 0
    assert await CourseAccessCode.find({"course_id": chemistry}).count() == 2


async def test_check_access(courses, admin, make_user):
    physics, chemistry = courses
    [code] = await access_service.generate_codes(admin, physics, quantity=1, access_days=30)
    student = make_user()

    assert (await access_service.check_access(student, physics))["has_access"] is False
    await access_service.redeem_code(student, code.code)

    result = await access_service.check_access(student, physics)
    assert result["has_access"] is True
    assert result["source"] == "code"
    assert result["access_expires_at"] is not None
    assert (await access_service.check_access(student, chemistry))["has_access"] is False


@pytest.mark.parametrize("role", [UserRole.ASSISTANT, UserRole.INSTRUCTOR, UserRole.ADMIN, UserRole.SUPER_ADMIN])
async def test_staff_always_have_access(courses, make_user, role):
    _, chemistry = courses
    result = await access_service.check_access(make_user(role=role), chemistry)
    assert result == {"course_id": chemistry, "has_access": True, "source": "role", "access_expires_at": None}
