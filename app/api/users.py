"""User directory management (admin)."""
import re
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from app.api.deps import AdminOnly, get_password_hash
from app.models.user import User, UserCreate, UserRole, user_to_out
from app.services.queries import safe_object_id

router = APIRouter()


class PasswordUpdate(BaseModel):
    password: str


@router.get("/")
async def list_users(
    admin: AdminOnly,
    role: Optional[UserRole] = None,
    q: Optional[str] = Query(None, description="Search by name, phone or student ID"),
    include_inactive: bool = False,
):
    query: dict = {}
    if not include_inactive:
        query["is_active"] = True
    if role:
        query["role"] = role.value
    if q and q.strip():
        search = re.escape(q.strip())
        query["$or"] = [
            {"full_name": {"$regex": search, "$options": "i"}},
            {"phone_number": {"$regex": search}},
            {"student_id": q.strip()},
        ]
    users = await User.find(query).sort("full_name").to_list()
    return [user_to_out(u) for u in users]


@router.post("/", status_code=201)
async def create_user(data: UserCreate, admin: AdminOnly):
    email = data.email.lower()
    if await User.find_one(User.email == email):
        raise HTTPException(status_code=400, detail="Email already registered")
    phone = (data.phone_number or "").strip() or None
    if phone and await User.find_one(User.phone_number == phone):
        raise HTTPException(status_code=400, detail="Phone number already registered")

    u = User(
        email=email,
        hashed_password=get_password_hash(data.password),
        role=data.role,
        full_name=data.full_name,
        phone_number=phone,
        student_id=(data.student_id or "").strip() or None,
        assigned_course_ids=data.assigned_course_ids,
    )
    await u.insert()
    return user_to_out(u)


@router.post("/{user_id}/set-password")
async def set_user_password(user_id: str, data: PasswordUpdate, admin: AdminOnly):
    """Set or reset a user's password (admin-only)."""
    oid = safe_object_id(user_id)
    u = await User.get(oid) if oid else None
    if not u:
        raise HTTPException(status_code=404, detail="User not found")
    u.hashed_password = get_password_hash(data.password)
    u.updated_at = datetime.utcnow()
    await u.save()
    return {"id": str(u.id)}


@router.delete("/{user_id}", status_code=204)
async def deactivate_user(user_id: str, admin: AdminOnly):
    """Soft delete: the user keeps their history but can no longer sign in or be scanned."""
    oid = safe_object_id(user_id)
    u = await User.get(oid) if oid else None
    if not u:
        raise HTTPException(status_code=404, detail="User not found")
    u.is_active = False
    u.updated_at = datetime.utcnow()
    await u.save()
    return None
