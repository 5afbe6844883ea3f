"""Exams and submitted attempts. Attempts are written once and never edited."""
from datetime import datetime
from typing import Optional

from beanie import Document, Indexed
from pydantic import BaseModel, Field


class ExamQuestion(BaseModel):
    question: str
    options: list[str] = Field(default_factory=list)
    correct_answer: Optional[int] = 0
    number_of_options: Optional[int] = None  # how many of the options are shown
    explanation: Optional[str] = None
    image: Optional[str] = None


class Exam(Document):
    title: str
    course_id: Optional[str] = None
    lesson_id: Optional[str] = None
    questions: list[ExamQuestion] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "exams"


class ExamAnswer(BaseModel):
    question_index: int
    selected_answer: Optional[int] = None
    is_correct: bool = False


class ExamAttemptResult(Document):
    user_id: Indexed(str)
    exam_id: Indexed(str)
    answers: list[ExamAnswer] = Field(default_factory=list)
    correct_answers: int = 0
    total_questions: int = 0
    score: int = 0  # percent
    submitted_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "exam_results"


class SubmittedAnswer(BaseModel):
    question_index: int
    selected_answer: Optional[int] = None


class ExamSubmission(BaseModel):
    answers: list[SubmittedAnswer]
