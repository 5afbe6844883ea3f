from types import SimpleNamespace

import pytest
from beanie import PydanticObjectId

from app.errors import ForbiddenError, NotFoundError, ValidationError
from app.models.exam import Exam, ExamAttemptResult, ExamQuestion, SubmittedAnswer
from app.services.exam_replay import (
    NOT_ANSWERED,
    NOT_AVAILABLE,
    answers_by_index,
    list_attempts,
    rendered_options,
    replay_exam,
    replay_question,
    review_attempt,
    score_answers,
    submit_exam_attempt,
)


def _answer(index, selected, is_correct):
    return {"question_index": index, "selected_answer": selected, "is_correct": is_correct}


def test_correct_answer_marks_one_option():
    question = ExamQuestion(question="2 + 2", options=["3", "4", "5"], correct_answer=1)
    view = replay_question(0, question, _answer(0, 1, True))

    assert [o.style for o in view.options] == ["neutral", "correct", "neutral"]
    assert view.options[1].is_user_choice
    assert view.user_answer_text == "4"
    assert view.correct_answer_text == "4"
    assert view.is_correct is True


def test_wrong_choice_is_flagged():
    question = ExamQuestion(question="2 + 2", options=["3", "4", "5"], correct_answer=1)
    view = replay_question(0, question, _answer(0, 2, False))

    assert [o.style for o in view.options] == ["neutral", "correct", "wrong_choice"]
    assert view.user_answer_text == "5"
    assert view.correct_answer_text == "4"


def test_not_answered():
    question = ExamQuestion(question="Capital of Egypt", options=["Cairo", "Giza"], correct_answer=0)
    view = replay_question(0, question, None)

    assert view.answered is False
    assert view.is_correct is None
    assert view.user_answer_text == NOT_ANSWERED
    assert [o.style for o in view.options] == ["correct", "neutral"]
    assert not any(o.is_user_choice for o in view.options)


def test_correct_index_past_rendered_options_falls_back_to_first():
    question = ExamQuestion(question="q", options=["A", "B", "C"], correct_answer=2, number_of_options=2)
    assert rendered_options(question) == ["A", "B"]

    view = replay_question(0, question, None)
    assert view.correct_index == 0
    assert len(view.options) == 2
    assert view.correct_answer_text == "A"


def test_correct_index_out_of_range_falls_back_to_first():
    question = ExamQuestion(question="q", options=["A", "B", "C"], correct_answer=5)
    view = replay_question(0, question, None)
    assert view.correct_index == 0
    assert view.options[0].style == "correct"


def test_selected_index_out_of_range_is_not_answered():
    question = ExamQuestion(question="q", options=["A", "B"], correct_answer=1)
    view = replay_question(0, question, _answer(0, 7, False))
    assert view.answered is False
    assert view.user_answer_text == NOT_ANSWERED
    assert [o.style for o in view.options] == ["neutral", "correct"]


def test_question_without_options():
    question = ExamQuestion(question="Essay", options=[])
    view = replay_question(0, question, None)
    assert view.options == []
    assert view.correct_answer_text == NOT_AVAILABLE


def test_later_answer_for_same_question_wins():
    answers = [_answer(0, 0, False), _answer(0, 1, True)]
    assert answers_by_index(answers)[0]["selected_answer"] == 1


def test_replay_exam_from_stored_dicts():
    questions = [
        {"question": "one", "options": ["a", "b"], "correct_answer": 0},
        {"question": "two", "options": ["c", "d"], "correct_answer": 1},
    ]
    views = replay_exam(questions, [_answer(1, 0, False)])

    assert [v.index for v in views] == [0, 1]
    assert views[0].answered is False
    assert views[1].options[0].style == "wrong_choice"
    assert views[1].options[1].style == "correct"


def test_score_answers():
    exam = SimpleNamespace(
        questions=[
            ExamQuestion(question="one", options=["a", "b"], correct_answer=1),
            ExamQuestion(question="two", options=["c", "d", "e"], correct_answer=2, number_of_options=2),
        ]
    )
    scored = score_answers(
        exam,
        [SubmittedAnswer(question_index=0, selected_answer=1), SubmittedAnswer(question_index=1, selected_answer=0)],
    )
    assert [a.is_correct for a in scored] == [True, True]


def test_score_answers_rejects_unknown_question():
    exam = SimpleNamespace(questions=[ExamQuestion(question="one", options=["a"])])
    with pytest.raises(ValidationError):
        score_answers(exam, [SubmittedAnswer(question_index=3, selected_answer=0)])


def test_repeated_answers_score_once():
    exam = SimpleNamespace(questions=[ExamQuestion(question="one", options=["a", "b"], correct_answer=1)])
    scored = score_answers(
        exam,
        [
            SubmittedAnswer(question_index=0, selected_answer=1),
            SubmittedAnswer(question_index=0, selected_answer=1),
            SubmittedAnswer(question_index=0, selected_answer=0),
        ],
    )
    assert len(scored) == 1
    assert scored[0].selected_answer == 0
    assert scored[0].is_correct is False


@pytest.fixture
async def exam(mongo):
    exam = Exam(
        title="Unit 1 quiz",
        questions=[
            ExamQuestion(question="2 + 2", options=["3", "4"], correct_answer=1),
            ExamQuestion(question="3 * 3", options=["6", "9", "12"], correct_answer=1),
        ],
    )
    await exam.insert()
    return exam


async def test_submitted_attempt_never_exceeds_question_count(exam, make_user):
    student = make_user()
    answers = [SubmittedAnswer(question_index=0, selected_answer=1)] * 3 + [
        SubmittedAnswer(question_index=1, selected_answer=1)
    ]

    attempt = await submit_exam_attempt(str(exam.id), student, answers)

    assert (attempt.correct_answers, attempt.total_questions, attempt.score) == (2, 2, 100)
    stored = await ExamAttemptResult.get(attempt.id)
    assert [a.question_index for a in stored.answers] == [0, 1]


async def test_attempt_history_is_per_user(exam, make_user):
    student, other = make_user(), make_user(phone_number="01055555555")
    await submit_exam_attempt(str(exam.id), student, [SubmittedAnswer(question_index=0, selected_answer=0)])
    await submit_exam_attempt(str(exam.id), student, [SubmittedAnswer(question_index=0, selected_answer=1)])
    await submit_exam_attempt(str(exam.id), other, [])

    attempts = await list_attempts(str(exam.id), str(student.id))

    assert len(attempts) == 2
    assert {a.score for a in attempts} == {0, 50}


async def test_review_is_owner_or_staff_only(exam, make_user, staff):
    owner = make_user()
    attempt = await submit_exam_attempt(str(exam.id), owner, [SubmittedAnswer(question_index=1, selected_answer=2)])

    review = await review_attempt(str(attempt.id), owner)
    assert review["score"] == 0
    assert review["questions"][0]["answered"] is False
    assert [o["style"] for o in review["questions"][1]["options"]] == ["neutral", "correct", "wrong_choice"]

    assert (await review_attempt(str(attempt.id), staff))["attempt_id"] == str(attempt.id)
    with pytest.raises(ForbiddenError):
        await review_attempt(str(attempt.id), make_user(phone_number="01055555555"))


async def test_review_of_unknown_attempt(mongo, make_user):
    with pytest.raises(NotFoundError):
        await review_attempt(str(PydanticObjectId()), make_user())
