# db/schemas/teacher.py
import uuid
from datetime import datetime
from typing import Optional
from pydantic import EmailStr
from advert_desk.db.schemas._base import OrmModel

class TeacherBase(OrmModel):
    email: EmailStr
    tg_chat_id: Optional[int] = None

class TeacherCreate(TeacherBase):
    password_hash: str

class TeacherRead(TeacherBase):
    id: uuid.UUID
    created_at: datetime

class TeacherCredentials(TeacherRead):
    password_hash: str
    reset_token_hash: Optional[str] = None
    reset_expires_at: Optional[datetime] = None
