# db/models/submission.py
import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import Enum as SAEnum, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from advert_desk.db.models._base import Base
from advert_desk.db.enums import StudentClass, AdvertCategory
from advert_desk.utils.clock import utcnow

COLLECTION = "y9_canva_submissions"

def _new_id() -> str:
    return uuid.uuid4().hex

class Submission(Base):
    __tablename__ = COLLECTION

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    student_name: Mapped[str] = mapped_column(String(128), nullable=False)
    student_class: Mapped[StudentClass] = mapped_column(SAEnum(StudentClass, name="student_class", values_callable=lambda e: [m.value for m in e]), nullable=False)
    student_email: Mapped[Optional[str]] = mapped_column(String(254), nullable=True)
    category: Mapped[AdvertCategory] = mapped_column(SAEnum(AdvertCategory, name="advert_category", values_callable=lambda e: [m.value for m in e]), nullable=False)
    brand: Mapped[str] = mapped_column(String(128), nullable=False)
    canva_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    # assigned here rather than by the server clock so rapid inserts keep a strict order
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    mark_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    mark_feedback: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    marked_by: Mapped[Optional[str]] = mapped_column(String(254), nullable=True)
    marked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)

    __table_args__ = (
        Index("ix_y9_canva_submissions_created_at", "created_at"),
    )
