"""Identity resolution for attendance: user id, student id, phone number or QR payload.

Callers state which identifiers they hold (no guessing). Resolution order is
user_id, then student_id, then phone_number; the first that resolves wins.
Every supplied identifier is still looked up so that two identifiers pointing
at two different users are rejected instead of one being picked silently.
"""
from __future__ import annotations

import json
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Protocol

from beanie import PydanticObjectId
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from app.config import settings
from app.errors import AmbiguousIdentityError, NotFoundError, ValidationError
from app.models.user import User

OBJECT_ID_RE = re.compile(r"^[a-f\d]{24}$", re.IGNORECASE)
_OBJECT_ID_SEARCH_RE = re.compile(r"[a-f\d]{24}", re.IGNORECASE)
_PHONE_SEARCH_RE = re.compile(r"01\d{9}")

QR_PAYLOAD_TYPE = "attendance"
RESOLUTION_ORDER = ("user_id", "student_id", "phone_number")


class IdentityQuery(BaseModel):
    user_id: Optional[str] = None
    student_id: Optional[str] = None
    phone_number: Optional[str] = None

    def normalized(self) -> "IdentityQuery":
        return IdentityQuery(
            **{key: (getattr(self, key) or "").strip() or None for key in RESOLUTION_ORDER}
        )

    def supplied(self) -> list[str]:
        return [key for key in RESOLUTION_ORDER if getattr(self, key)]


class UserDirectory(Protocol):
    async def by_id(self, user_id: str) -> Optional[User]: ...

    async def by_student_id(self, student_id: str) -> Optional[User]: ...

    async def by_phone(self, phone_number: str) -> Optional[User]: ...


class MongoUserDirectory:
    """Lookups against the users collection; inactive users count as missing."""

    async def by_id(self, user_id: str) -> Optional[User]:
        user = await User.get(PydanticObjectId(user_id))
        return user if user and user.is_active else None

    async def by_student_id(self, student_id: str) -> Optional[User]:
        return await User.find_one({"student_id": student_id, "is_active": True})

    async def by_phone(self, phone_number: str) -> Optional[User]:
        return await User.find_one({"phone_number": phone_number, "is_active": True})


def select_identity(query: IdentityQuery, matches: dict[str, Any]):
    """Pick the single user identified by the lookups in `matches`.

    `matches` maps each supplied identifier kind to the user it resolved to
    (or None).
    """
    resolved = [(kind, matches[kind]) for kind in RESOLUTION_ORDER if matches.get(kind) is not None]
    if not resolved:
        raise NotFoundError("User not found")

    kind, user = resolved[0]
    for other_kind, other in resolved[1:]:
        if str(other.id) != str(user.id):
            raise AmbiguousIdentityError(
                f"{kind} and {other_kind} identify different users"
            )

    if query.phone_number and matches.get("phone_number") is None:
        raise ValidationError("Phone number does not match user")
    return user


async def resolve_identity(query: IdentityQuery, directory: Optional[UserDirectory] = None):
    query = query.normalized()
    if not query.supplied():
        raise ValidationError("Phone number, user ID or student ID is required")
    if query.user_id and not OBJECT_ID_RE.match(query.user_id):
        raise ValidationError("Invalid user ID")

    directory = directory or MongoUserDirectory()
    matches: dict[str, Any] = {}
    if query.user_id:
        matches["user_id"] = await directory.by_id(query.user_id)
    if query.student_id:
        matches["student_id"] = await directory.by_student_id(query.student_id)
    if query.phone_number:
        matches["phone_number"] = await directory.by_phone(query.phone_number)
    return select_identity(query, matches)


class QRPayload(BaseModel):
    """Decoded attendance QR code as produced by the user's QR card."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str
    user_id: Optional[str] = Field(None, alias="userId")
    phone_number: Optional[str | int] = Field(None, alias="phoneNumber")
    full_name: Optional[str] = Field(None, alias="fullName")
    timestamp: Optional[Any] = None

    def to_query(self) -> IdentityQuery:
        return IdentityQuery(user_id=self.user_id, phone_number=self.phone_number)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    """QR timestamps are ISO strings or epoch milliseconds; returns aware UTC."""
    if value in (None, ""):
        return None
    if isinstance(value, bool):
        raise ValidationError("Invalid QR timestamp")
    if isinstance(value, (int, float)):
        try:
            seconds = value / 1000 if value > 1e11 else value
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            raise ValidationError("Invalid QR timestamp")
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError("Invalid QR timestamp")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_qr_payload(data: Any, now: Optional[datetime] = None) -> QRPayload:
    if not isinstance(data, dict):
        raise ValidationError("Invalid QR data")
    try:
        payload = QRPayload.model_validate(data)
    except PydanticValidationError:
        raise ValidationError("Invalid QR data")

    payload.user_id = (payload.user_id or "").strip() or None
    payload.phone_number = str(payload.phone_number or "").strip() or None
    if payload.type != QR_PAYLOAD_TYPE or not (payload.user_id or payload.phone_number):
        raise ValidationError("QR data incomplete or invalid - user ID or phone number required")

    issued_at = _parse_timestamp(payload.timestamp)
    if issued_at is not None:
        now = now or datetime.now(timezone.utc)
        if now - issued_at > timedelta(minutes=settings.qr_max_age_minutes):
            raise ValidationError("QR code expired, please generate a new one")
        if issued_at - now > timedelta(minutes=settings.qr_clock_skew_minutes):
            raise ValidationError("QR code timestamp is in the future")
    return payload


def verify_qr_matches(payload: QRPayload, user) -> None:
    if payload.full_name and payload.full_name != user.full_name:
        raise ValidationError("QR data does not match user data")


def normalize_qr_text(text: str) -> dict:
    """Turn raw scanned text into a QR payload dict ({type, userId?, phoneNumber?})."""
    raw = (text or "").strip()
    out: dict[str, Any] = {"type": QR_PAYLOAD_TYPE}

    try:
        parsed = json.loads(raw)
    except ValueError:
        parsed = None

    if isinstance(parsed, dict):
        user_id = str(parsed.get("userId") or "")
        if OBJECT_ID_RE.match(user_id):
            out["userId"] = user_id
        if parsed.get("phoneNumber"):
            out["phoneNumber"] = str(parsed["phoneNumber"])
    else:
        match = _OBJECT_ID_SEARCH_RE.search(raw)
        if match:
            out["userId"] = match.group(0)
        else:
            match = _PHONE_SEARCH_RE.search(raw)
            if match:
                out["phoneNumber"] = match.group(0)

    if "userId" not in out and "phoneNumber" not in out:
        raise ValidationError("QR decoded but missing userId/phoneNumber")
    return out
