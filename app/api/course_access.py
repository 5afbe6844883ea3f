"""Course access codes: management for staff, redemption for everyone."""
from typing import Optional

from fastapi import APIRouter, Query

from app.api.deps import CurrentUser, ManagerOnly
from app.models.course_access import (
    CodeBulkDeleteRequest,
    CodeGenerateRequest,
    CodeRedeemRequest,
    access_code_to_dict,
)
from app.services import course_access as access_service

router = APIRouter()


@router.post("/admin/codes", status_code=201)
async def generate_access_codes(data: CodeGenerateRequest, staff: ManagerOnly):
    """Generate a batch of codes for one course."""
    codes = await access_service.generate_codes(
        staff,
        course_id=data.course_id,
        quantity=data.quantity,
        max_uses=data.max_uses,
        expires_at=data.expires_at,
        access_days=data.access_days,
    )
    return {
        "success": True,
        "message": f"Generated {len(codes)} access codes",
        "data": [access_code_to_dict(c) for c in codes],
    }


@router.get("/admin/codes")
async def list_access_codes(
    staff: ManagerOnly,
    course_id: Optional[str] = None,
    is_used: Optional[bool] = None,
    is_active: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=500),
):
    codes, meta = await access_service.list_codes(
        staff, course_id=course_id, is_used=is_used, is_active=is_active, page=page, limit=limit
    )
    return {"success": True, "data": {"docs": [access_code_to_dict(c) for c in codes], **meta}}


@router.delete("/admin/codes/{code_id}")
async def delete_access_code(code_id: str, staff: ManagerOnly):
    await access_service.delete_code(staff, code_id)
    return {"success": True, "message": "Access code deleted"}


@router.post("/admin/codes/bulk-delete")
async def bulk_delete_access_codes(data: CodeBulkDeleteRequest, staff: ManagerOnly):
    deleted = await access_service.bulk_delete_codes(staff, data.ids)
    return {"success": True, "message": f"Deleted {deleted} access codes", "data": {"deleted_count": deleted}}


@router.post("/redeem")
async def redeem_access_code(data: CodeRedeemRequest, user: CurrentUser):
    grant = await access_service.redeem_code(user, data.code)
    return {
        "success": True,
        "message": "Access code redeemed",
        "data": {
            "course_id": grant.course_id,
            "granted_at": grant.granted_at.isoformat(),
            "access_expires_at": grant.access_expires_at.isoformat() if grant.access_expires_at else None,
        },
    }


@router.get("/check/{course_id}")
async def check_course_access(course_id: str, user: CurrentUser):
    return {"success": True, "data": await access_service.check_access(user, course_id)}
