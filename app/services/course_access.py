"""Course access codes: bulk generation, listing, deletion, redemption and access checks."""
from __future__ import annotations

import logging
import secrets
import string
from datetime import timedelta
from typing import Optional

from beanie import UpdateResponse

from app.config import settings
from app.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.models.course import Course
from app.models.course_access import CourseAccessCode, CourseAccessGrant
from app.models.user import STAFF_ROLES, UserRole
from app.services.queries import paginate, safe_object_id
from app.timezone import to_utc_naive, utc_now

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
FULL_ACCESS_ROLES = (UserRole.ADMIN, UserRole.SUPER_ADMIN)


def generate_code(length: Optional[int] = None) -> str:
    length = length or settings.access_code_length
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(raw: str) -> str:
    return (raw or "").strip().upper()


def managed_course_ids(user) -> Optional[list[str]]:
    """Courses a user may manage codes for; None means all of them."""
    if user.role in FULL_ACCESS_ROLES:
        return None
    if user.role == UserRole.INSTRUCTOR:
        return list(user.assigned_course_ids)
    return []


def ensure_can_manage(user, course_id: str) -> None:
    allowed = managed_course_ids(user)
    if allowed is not None and course_id not in allowed:
        raise ForbiddenError("You can only manage access codes for your assigned courses")


def code_is_used(code) -> bool:
    return code.used_count >= code.max_uses


def redemption_error(code, user_id: str, now) -> Optional[Exception]:
    """Why `user_id` cannot redeem `code` right now, or None."""
    if code is None or not code.is_active:
        return NotFoundError("Invalid access code")
    if code.expires_at and code.expires_at < now:
        return ValidationError("Access code has expired")
    if user_id in code.redeemed_by:
        return ConflictError("You have already redeemed this code")
    if code_is_used(code):
        return ConflictError("Access code has already been used")
    return None


async def generate_codes(
    staff,
    course_id: str,
    quantity: int,
    max_uses: int = 1,
    expires_at=None,
    access_days: Optional[int] = None,
) -> list[CourseAccessCode]:
    if not 1 <= quantity <= settings.access_code_max_batch:
        raise ValidationError(f"Quantity must be between 1 and {settings.access_code_max_batch}")
    if expires_at is not None:
        expires_at = to_utc_naive(expires_at)
    if expires_at is not None and expires_at <= utc_now():
        raise ValidationError("Expiry must be in the future")
    ensure_can_manage(staff, course_id)

    oid = safe_object_id(course_id)
    course = await Course.get(oid) if oid else None
    if not course:
        raise NotFoundError("Course not found")

    codes: set[str] = set()
    while len(codes) < quantity:
        batch = {generate_code() for _ in range(quantity - len(codes))}
        taken = await CourseAccessCode.find({"code": {"$in": list(batch)}}).to_list()
        codes |= batch - {c.code for c in taken}

    docs = [
        CourseAccessCode(
            code=code,
            course_id=course_id,
            max_uses=max_uses,
            expires_at=expires_at,
            access_days=access_days,
            created_by=str(staff.id),
        )
        for code in sorted(codes)
    ]
    await CourseAccessCode.insert_many(docs)
    logger.info(f"Generated {len(docs)} access codes for course {course_id} by {staff.id}")
    return await CourseAccessCode.find({"code": {"$in": list(codes)}}).sort("code").to_list()


async def list_codes(
    staff,
    course_id: Optional[str] = None,
    is_used: Optional[bool] = None,
    is_active: Optional[bool] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list, dict]:
    query: dict = {}
    allowed = managed_course_ids(staff)
    if course_id:
        ensure_can_manage(staff, course_id)
        query["course_id"] = course_id
    elif allowed is not None:
        query["course_id"] = {"$in": allowed}

    if is_used is True:
        query["$expr"] = {"$gte": ["$used_count", "$max_uses"]}
    elif is_used is False:
        query["$expr"] = {"$lt": ["$used_count", "$max_uses"]}
    if is_active is not None:
        query["is_active"] = is_active

    return await paginate(CourseAccessCode, query, page, limit, "-created_at")


async def delete_code(staff, code_id: str) -> None:
    oid = safe_object_id(code_id)
    code = await CourseAccessCode.get(oid) if oid else None
    if not code:
        raise NotFoundError("Access code not found")
    ensure_can_manage(staff, code.course_id)
    await code.delete()


async def bulk_delete_codes(staff, ids: list[str]) -> int:
    oids = [oid for oid in (safe_object_id(i) for i in ids) if oid]
    if not oids:
        raise ValidationError("No valid code ids supplied")
    query: dict = {"_id": {"$in": oids}}
    allowed = managed_course_ids(staff)
    if allowed is not None:
        query["course_id"] = {"$in": allowed}
    result = await CourseAccessCode.find(query).delete()
    deleted = result.deleted_count if result else 0
    logger.info(f"Bulk-deleted {deleted} access codes by {staff.id}")
    return deleted


async def redeem_code(user, raw_code: str) -> CourseAccessGrant:
    code_str = normalize_code(raw_code)
    if not code_str:
        raise ValidationError("Access code is required")

    user_id = str(user.id)
    now = utc_now()
    code = await CourseAccessCode.find_one({"code": code_str})
    error = redemption_error(code, user_id, now)
    if error:
        raise error

    grant = CourseAccessGrant(
        user_id=user_id,
        course_id=code.course_id,
        code_id=str(code.id),
        granted_at=now,
        access_expires_at=now + timedelta(days=code.access_days) if code.access_days else None,
    )
    await grant.insert()

    # Conditional increment: a concurrent redemption of the last use makes this match nothing
    try:
        updated = await CourseAccessCode.find_one(
            {
                "_id": code.id,
                "is_active": True,
                "used_count": {"$lt": code.max_uses},
                "redeemed_by": {"$ne": user_id},
            }
        ).update(
            {
                "$inc": {"used_count": 1},
                "$push": {"redeemed_by": user_id},
                "$set": {"last_redeemed_at": now},
            },
            response_type=UpdateResponse.NEW_DOCUMENT,
        )
    except Exception:
        await grant.delete()
        raise
    if not updated:
        await grant.delete()
        raise ConflictError("Access code has already been used")

    logger.info(f"Access code {code.code} redeemed by {user_id} for course {code.course_id}")
    return grant


async def check_access(user, course_id: str) -> dict:
    if user.role in STAFF_ROLES:
        return {"course_id": course_id, "has_access": True, "source": "role", "access_expires_at": None}

    now = utc_now()
    grant = await CourseAccessGrant.find_one(
        {
            "user_id": str(user.id),
            "course_id": course_id,
            "$or": [{"access_expires_at": None}, {"access_expires_at": {"$gt": now}}],
        }
    )
    return {
        "course_id": course_id,
        "has_access": grant is not None,
        "source": "code" if grant else None,
        "access_expires_at": grant.access_expires_at.isoformat() if grant and grant.access_expires_at else None,
    }
