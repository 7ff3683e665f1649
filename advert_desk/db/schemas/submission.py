# db/schemas/submission.py
from datetime import datetime
from typing import Any, Optional
from pydantic import Field, model_validator
from advert_desk.db.schemas._base import OrmModel
from advert_desk.db.enums import StudentClass, AdvertCategory
from advert_desk.utils.sentinels import ServerTimestamp, SERVER_TIMESTAMP

class MarkRead(OrmModel):
    score: int = Field(ge=0, le=20)
    feedback: str = ""
    marked_by: str = ""
    marked_at: Optional[datetime] = None

class MarkUpdate(OrmModel):
    score: int = Field(ge=0, le=20)
    feedback: str = ""
    marked_by: str = ""
    marked_at: datetime | ServerTimestamp = SERVER_TIMESTAMP

class SubmissionBase(OrmModel):
    student_name: str
    student_class: StudentClass
    category: AdvertCategory
    brand: str
    canva_url: str
    notes: str = ""
    student_email: Optional[str] = None

class SubmissionCreate(SubmissionBase): ...

class SubmissionRead(SubmissionBase):
    id: str
    created_at: Optional[datetime] = None
    mark: Optional[MarkRead] = None

    @model_validator(mode="before")
    @classmethod
    def _collect_mark(cls, data: Any) -> Any:
        # rows keep the mark as flat columns; fold them into the sub-record
        if isinstance(data, dict) or not hasattr(data, "mark_score"):
            return data
        values = {name: getattr(data, name) for name in (
            "id", "student_name", "student_class", "student_email", "category",
            "brand", "canva_url", "notes", "created_at",
        )}
        if data.mark_score is not None:
            values["mark"] = MarkRead(
                score=data.mark_score,
                feedback=data.mark_feedback or "",
                marked_by=data.marked_by or "",
                marked_at=data.marked_at,
            )
        return values

    @property
    def is_marked(self) -> bool:
        return self.mark is not None and isinstance(self.mark.score, int)
