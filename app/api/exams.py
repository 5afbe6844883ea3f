from fastapi import APIRouter

from app.api.deps import CurrentUser
from app.models.exam import ExamSubmission
from app.services import exam_replay

router = APIRouter()


def _attempt_summary(attempt) -> dict:
    return {
        "id": str(attempt.id),
        "exam_id": attempt.exam_id,
        "correct_answers": attempt.correct_answers,
        "total_questions": attempt.total_questions,
        "score": attempt.score,
        "submitted_at": attempt.submitted_at.isoformat() if attempt.submitted_at else None,
    }


@router.post("/{exam_id}/attempts", status_code=201)
async def submit_attempt(exam_id: str, data: ExamSubmission, user: CurrentUser):
    """Score and store one attempt; attempts are never edited afterwards."""
    attempt = await exam_replay.submit_exam_attempt(exam_id, user, data.answers)
    return {"success": True, "data": _attempt_summary(attempt)}


@router.get("/{exam_id}/attempts")
async def list_my_attempts(exam_id: str, user: CurrentUser):
    attempts = await exam_replay.list_attempts(exam_id, str(user.id))
    return {"success": True, "data": [_attempt_summary(a) for a in attempts]}


@router.get("/attempts/{attempt_id}/review")
async def review_attempt(attempt_id: str, user: CurrentUser):
    """Question-by-question replay of a past attempt."""
    return {"success": True, "data": await exam_replay.review_attempt(attempt_id, user)}
