"""Redeemable course access codes and the access grants they produce."""
from datetime import datetime
from typing import Optional

from beanie import Document, Indexed
from pydantic import BaseModel, Field, field_validator


class CourseAccessCode(Document):
    code: Indexed(str, unique=True)
    course_id: Indexed(str)
    max_uses: int = 1  # 1 = single-use
    used_count: int = 0
    redeemed_by: list[str] = Field(default_factory=list)  # user_ids
    last_redeemed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    access_days: Optional[int] = None  # access window granted on redemption
    is_active: bool = True
    created_by: str
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "course_access_codes"
        use_state_management = True


class CourseAccessGrant(Document):
    user_id: Indexed(str)
    course_id: Indexed(str)
    code_id: Optional[str] = None
    granted_at: datetime = Field(default_factory=datetime.utcnow)
    access_expires_at: Optional[datetime] = None

    class Settings:
        name = "course_access_grants"


class CodeGenerateRequest(BaseModel):
    course_id: str
    quantity: int = 1
    max_uses: int = 1
    expires_at: Optional[datetime] = None
    access_days: Optional[int] = None

    @field_validator("quantity", "max_uses")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value


class CodeRedeemRequest(BaseModel):
    code: str


class CodeBulkDeleteRequest(BaseModel):
    ids: list[str]


def access_code_to_dict(code) -> dict:
    return {
        "id": str(code.id),
        "code": code.code,
        "course_id": code.course_id,
        "max_uses": code.max_uses,
        "used_count": code.used_count,
        "is_used": code.used_count >= code.max_uses,
        "redeemed_by": list(code.redeemed_by),
        "expires_at": code.expires_at.isoformat() if code.expires_at else None,
        "access_days": code.access_days,
        "is_active": code.is_active,
        "created_by": code.created_by,
        "created_at": code.created_at.isoformat() if code.created_at else None,
    }
