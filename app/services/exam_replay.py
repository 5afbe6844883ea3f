"""Exam history replay: per-question, per-option review state for a past attempt.

Replay never scores anything; correctness comes from the recorded answers.
Option lists are first cut to `number_of_options`; a correct-answer index
that does not point into the rendered options falls back to 0, and a
selected index outside them counts as not answered.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from pydantic import BaseModel

from app.errors import ForbiddenError, NotFoundError, ValidationError
from app.models.exam import Exam, ExamAnswer, ExamAttemptResult
from app.models.user import STAFF_ROLES
from app.services.queries import safe_object_id

logger = logging.getLogger(__name__)

NOT_ANSWERED = "Not answered"
NOT_AVAILABLE = "Not available"


class OptionView(BaseModel):
    index: int
    text: str
    is_correct_option: bool
    is_user_choice: bool
    style: str  # correct | wrong_choice | neutral


class QuestionView(BaseModel):
    index: int
    question: str
    options: list[OptionView]
    correct_index: int
    selected_index: Optional[int] = None
    answered: bool
    is_correct: Optional[bool] = None
    user_answer_text: str
    correct_answer_text: str
    explanation: Optional[str] = None
    image: Optional[str] = None


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _in_bounds(value: Any, size: int) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value < size


def rendered_options(question: Any) -> list[str]:
    options = list(_field(question, "options") or [])
    limit = _field(question, "number_of_options")
    if isinstance(limit, int) and limit >= 0:
        options = options[:limit]
    return options


def answers_by_index(answers: Iterable[Any]) -> dict[int, Any]:
    """Index recorded answers by question; a later answer for the same index wins."""
    indexed: dict[int, Any] = {}
    for answer in answers or []:
        indexed[_field(answer, "question_index")] = answer
    return indexed


def replay_question(index: int, question: Any, answer: Optional[Any]) -> QuestionView:
    options = rendered_options(question)
    correct = _field(question, "correct_answer")
    correct_index = correct if _in_bounds(correct, len(options)) else 0

    selected = _field(answer, "selected_answer") if answer is not None else None
    selected_index = selected if _in_bounds(selected, len(options)) else None
    is_correct = bool(_field(answer, "is_correct")) if answer is not None else None

    views = []
    for i, text in enumerate(options):
        is_correct_option = i == correct_index
        is_user_choice = i == selected_index
        if is_correct_option:
            style = "correct"
        elif is_user_choice and not is_correct:
            style = "wrong_choice"
        else:
            style = "neutral"
        views.append(
            OptionView(
                index=i,
                text=text,
                is_correct_option=is_correct_option,
                is_user_choice=is_user_choice,
                style=style,
            )
        )

    return QuestionView(
        index=index,
        question=_field(question, "question") or "",
        options=views,
        correct_index=correct_index,
        selected_index=selected_index,
        answered=selected_index is not None,
        is_correct=is_correct,
        user_answer_text=options[selected_index] if selected_index is not None else NOT_ANSWERED,
        correct_answer_text=options[correct_index] if options else NOT_AVAILABLE,
        explanation=_field(question, "explanation"),
        image=_field(question, "image"),
    )


def replay_exam(questions: list[Any], answers: Iterable[Any]) -> list[QuestionView]:
    indexed = answers_by_index(answers)
    return [replay_question(i, q, indexed.get(i)) for i, q in enumerate(questions)]


def score_answers(exam: Exam, submitted: list[Any]) -> list[ExamAnswer]:
    """Mark each submitted answer against the exam; unknown question indexes are rejected.

    Several answers for one question collapse to the last one, as in replay.
    """
    for item in submitted:
        index = _field(item, "question_index")
        if not _in_bounds(index, len(exam.questions)):
            raise ValidationError(f"Question index {index} is out of range")

    answers = []
    for index, item in sorted(answers_by_index(submitted).items()):
        question = exam.questions[index]
        options = rendered_options(question)
        correct = question.correct_answer if _in_bounds(question.correct_answer, len(options)) else 0
        selected = _field(item, "selected_answer")
        answers.append(
            ExamAnswer(
                question_index=index,
                selected_answer=selected,
                is_correct=_in_bounds(selected, len(options)) and selected == correct,
            )
        )
    return answers


async def get_exam(exam_id: str) -> Exam:
    oid = safe_object_id(exam_id)
    exam = await Exam.get(oid) if oid else None
    if not exam:
        raise NotFoundError("Exam not found")
    return exam


async def submit_exam_attempt(exam_id: str, user, submitted: list[Any]) -> ExamAttemptResult:
    exam = await get_exam(exam_id)
    answers = score_answers(exam, submitted)
    correct = sum(1 for a in answers if a.is_correct)
    total = len(exam.questions)
    result = ExamAttemptResult(
        user_id=str(user.id),
        exam_id=str(exam.id),
        answers=answers,
        correct_answers=correct,
        total_questions=total,
        score=round(correct * 100 / total) if total else 0,
    )
    await result.insert()
    logger.info(f"Exam {exam.id} submitted by user {user.id}: {correct}/{total}")
    return result


async def list_attempts(exam_id: str, user_id: str) -> list[ExamAttemptResult]:
    return (
        await ExamAttemptResult.find({"exam_id": exam_id, "user_id": user_id})
        .sort("-submitted_at")
        .to_list()
    )


async def review_attempt(attempt_id: str, viewer) -> dict:
    oid = safe_object_id(attempt_id)
    attempt = await ExamAttemptResult.get(oid) if oid else None
    if not attempt:
        raise NotFoundError("Exam attempt not found")
    if attempt.user_id != str(viewer.id) and viewer.role not in STAFF_ROLES:
        raise ForbiddenError("Access denied")

    exam = await get_exam(attempt.exam_id)
    return {
        "attempt_id": str(attempt.id),
        "exam_id": attempt.exam_id,
        "title": exam.title,
        "correct_answers": attempt.correct_answers,
        "total_questions": attempt.total_questions,
        "score": attempt.score,
        "submitted_at": attempt.submitted_at.isoformat() if attempt.submitted_at else None,
        "questions": [view.model_dump() for view in replay_exam(exam.questions, attempt.answers)],
    }
