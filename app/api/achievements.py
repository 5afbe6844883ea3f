from fastapi import APIRouter

from app.api.deps import CurrentUser
from app.services.achievements import list_user_achievements

router = APIRouter()


@router.get("/user/{user_id}")
async def get_user_achievements(user_id: str, user: CurrentUser):
    """Achievements for the student report; empty when the source is unavailable."""
    return {"success": True, "data": await list_user_achievements(user_id)}
