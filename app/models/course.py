from datetime import datetime
from typing import Optional

from beanie import Document
from pydantic import Field


class Course(Document):
    """Course that attendance and access codes can be scoped to."""
    title: str
    instructor_id: Optional[str] = None
    is_published: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "courses"


class LiveMeeting(Document):
    """Live session of a course; attendance can be taken per meeting."""
    title: str
    course_id: Optional[str] = None
    scheduled_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "live_meetings"
