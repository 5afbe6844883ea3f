"""User directory: students, assistants, instructors and admins."""
from datetime import datetime
from enum import Enum
from typing import Optional

from beanie import Document, Indexed
from pydantic import BaseModel, EmailStr, Field
from pymongo import ASCENDING, IndexModel


class UserRole(str, Enum):
    USER = "USER"  # student
    ASSISTANT = "ASSISTANT"
    INSTRUCTOR = "INSTRUCTOR"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


STAFF_ROLES = (UserRole.ASSISTANT, UserRole.INSTRUCTOR, UserRole.ADMIN, UserRole.SUPER_ADMIN)


class User(Document):
    """User document. Never hard-deleted; is_active=False hides it."""

    email: Indexed(EmailStr, unique=True)
    hashed_password: str
    role: UserRole = UserRole.USER
    full_name: str
    phone_number: Optional[str] = None
    student_id: Optional[str] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    # Instructor-specific: courses they may manage access codes for
    assigned_course_ids: list[str] = Field(default_factory=list)

    class Settings:
        name = "users"
        use_state_management = True
        indexes = [
            # Phone numbers are unique among users that have one
            IndexModel(
                [("phone_number", ASCENDING)],
                unique=True,
                partialFilterExpression={"phone_number": {"$type": "string"}},
            ),
            IndexModel([("student_id", ASCENDING)]),
        ]


class UserCreate(BaseModel):
    email: EmailStr
    password: str
    role: UserRole = UserRole.USER
    full_name: str
    phone_number: Optional[str] = None
    student_id: Optional[str] = None
    assigned_course_ids: list[str] = Field(default_factory=list)


class UserOut(BaseModel):
    id: str
    email: str
    role: UserRole
    full_name: str
    phone_number: Optional[str] = None
    student_id: Optional[str] = None
    is_active: bool
    assigned_course_ids: list[str] = []

    class Config:
        from_attributes = True


def user_summary(user) -> dict:
    """Short user view embedded in attendance responses."""
    return {
        "id": str(user.id),
        "full_name": user.full_name,
        "phone_number": user.phone_number,
        "email": user.email,
    }


def user_to_out(user) -> UserOut:
    return UserOut(
        id=str(user.id),
        email=user.email,
        role=user.role,
        full_name=user.full_name,
        phone_number=user.phone_number,
        student_id=user.student_id,
        is_active=user.is_active,
        assigned_course_ids=list(user.assigned_course_ids),
    )
