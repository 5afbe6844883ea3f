from datetime import datetime
from typing import Optional

from beanie import Document
from pydantic import Field


class Group(Document):
    """Study group; used to filter attendance listings and the dashboard."""
    name: str
    course_id: Optional[str] = None
    student_ids: list[str] = Field(default_factory=list)
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "groups"
