import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional, ClassVar, Self, Any, List, Tuple

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.exc import IntegrityError

from advert_desk.config import Settings
from advert_desk.db.models._base import Base
from advert_desk.db.models.submission import Submission
from advert_desk.db.models.teacher import Teacher
from advert_desk.db.models.audit_log import AuditLog
from advert_desk.db.schemas.submission import SubmissionRead, SubmissionCreate, MarkUpdate
from advert_desk.db.schemas.teacher import TeacherCreate, TeacherRead, TeacherCredentials
from advert_desk.db.schemas.audit_log import AuditLogCreate, AuditLogRead
from advert_desk.utils.clock import utcnow
from advert_desk.utils.sentinels import ServerTimestamp


class DataBase():
    """
    Async SQLAlchemy database singleton.
    Usage:
        db = DataBase()  # same instance everywhere
        async with db.session() as s:
            ...
    """
    _instance: ClassVar[Optional["DataBase"]] = None

    def __new__(cls, *args: Any, **kwargs: Any) -> Self:
        if cls._instance is None:
            cls._instance = super().__new__(cls)

        return cls._instance

    def __init__(self, echo: bool = False) -> None:
        if getattr(self, "_initialized", False):
            return

        url = Settings().database_url
        self._engine: AsyncEngine = create_async_engine(url, echo=echo, pool_pre_ping=True)
        self._sessionmaker: async_sessionmaker[AsyncSession] = async_sessionmaker(
            bind=self._engine,
            expire_on_commit=False,
            autoflush=False,
        )

        self._initialized = True

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Provides an AsyncSession with safe commit/rollback semantics.
        """
        session: AsyncSession = self._sessionmaker()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    # --- schema management helpers ---

    async def create_all(self) -> None:
        """
        Create tables based on Base metadata. There is no migration tooling; new
        columns need a fresh database.
        """
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self._engine.dispose()

    # ---------- Submission: reads ----------

    async def list_submissions(self) -> list[SubmissionRead]:
        """
        Return ALL submissions, newest first (id breaks ties).
        """
        async with self.session() as s:
            stmt = select(Submission).order_by(Submission.created_at.desc(), Submission.id.desc())
            rows = (await s.execute(stmt)).scalars().all()
            return [SubmissionRead.model_validate(r) for r in rows]

    # ---------- Submission: writes ----------

    async def create_submission(self, data: SubmissionCreate) -> SubmissionRead:
        """
        Insert a new submission row. id and created_at are assigned here.
        """
        async with self.session() as s:
            db_obj = Submission(
                student_name=data.student_name,
                student_class=data.student_class,
                student_email=data.student_email,
                category=data.category,
                brand=data.brand,
                canva_url=data.canva_url,
                notes=data.notes,
            )
            s.add(db_obj)
            # Commit in context manager; ensure we have generated values:
            await s.flush()
            await s.refresh(db_obj)
            return SubmissionRead.model_validate(db_obj)

    async def replace_submission_mark(self, sub_id: str, mark: MarkUpdate) -> SubmissionRead:
        """
        Overwrite the whole mark of a submission. Nothing of the previous mark survives.

        Raises:
            LookupError: if the submission does not exist.
        """
        async with self.session() as s:
            db_obj = await s.get(Submission, sub_id)
            if db_obj is None:
                raise LookupError("Submission not found.")

            marked_at = utcnow() if isinstance(mark.marked_at, ServerTimestamp) else mark.marked_at
            db_obj.mark_score = mark.score
            db_obj.mark_feedback = mark.feedback
            db_obj.marked_by = mark.marked_by
            db_obj.marked_at = marked_at

            await s.flush()
            await s.refresh(db_obj)
            return SubmissionRead.model_validate(db_obj)

    async def delete_submission(self, sub_id: str) -> None:
        """
        Remove a submission by id.

        Raises:
            LookupError: if nothing was deleted.
        """
        async with self.session() as s:
            res = await s.execute(delete(Submission).where(Submission.id == sub_id))
            if not res.rowcount:
                raise LookupError("Submission not found.")

    # ---------- Teacher accounts ----------

    async def create_teacher(self, data: TeacherCreate) -> TeacherRead:
        """
        Create a teacher account. Email is stored lower-cased.
        On unique-constraint violation, re-raises IntegrityError for the caller to handle.
        """
        teacher = Teacher(
            email=str(data.email).lower(),
            password_hash=data.password_hash,
            tg_chat_id=data.tg_chat_id,
        )
        async with self.session() as s:
            s.add(teacher)
            try:
                await s.flush()
            except IntegrityError:
                # rollback happens in context manager
                raise
            await s.refresh(teacher)

        return TeacherRead.model_validate(teacher)

    async def get_teacher_credentials(self, email: Optional[str]) -> Optional[TeacherCredentials]:
        """
        Fetch a teacher together with the secret columns, by email (case-insensitive).
        """
        if not email:
            return None
        async with self.session() as s:
            stmt = select(Teacher).where(Teacher.email == email.strip().lower())
            row = (await s.execute(stmt)).scalar_one_or_none()

        return TeacherCredentials.model_validate(row) if row is not None else None

    async def get_teacher_by_reset_token(self, token_hash: str) -> Optional[TeacherCredentials]:
        if not token_hash:
            return None
        async with self.session() as s:
            stmt = select(Teacher).where(Teacher.reset_token_hash == token_hash)
            row = (await s.execute(stmt)).scalar_one_or_none()

        return TeacherCredentials.model_validate(row) if row is not None else None

    async def update_teacher(
        self,
        teacher_id: uuid.UUID,
        *,
        tg_chat_id: Optional[int] = None,
        password_hash: Optional[str] = None,
        reset_token_hash: Optional[str] = None,
        reset_expires_at: Optional[datetime] = None,
        clear_reset: bool = False,
    ) -> TeacherRead:
        """
        Update the mutable teacher columns. Only non-None arguments are applied;
        ``clear_reset`` drops any pending reset token.

        Raises:
            LookupError: if the teacher does not exist.
        """
        async with self.session() as s:
            db_obj = await s.get(Teacher, teacher_id)
            if db_obj is None:
                raise LookupError("Teacher not found.")

            if tg_chat_id is not None:
                db_obj.tg_chat_id = tg_chat_id
            if password_hash is not None:
                db_obj.password_hash = password_hash
            if reset_token_hash is not None:
                db_obj.reset_token_hash = reset_token_hash
                db_obj.reset_expires_at = reset_expires_at
            if clear_reset:
                db_obj.reset_token_hash = None
                db_obj.reset_expires_at = None

            await s.flush()
            await s.refresh(db_obj)
            return TeacherRead.model_validate(db_obj)

    # ---------------------------------
    # Audit log helpers
    # ---------------------------------

    async def create_audit_log(self, payload: AuditLogCreate) -> AuditLogRead:
        """Persist a new audit log entry."""
        async with self.session() as s:
            record = AuditLog(
                actor=payload.actor,
                action=payload.action,
                payload=dict(payload.payload or {}),
            )
            s.add(record)
            await s.flush()
            await s.refresh(record)
            return AuditLogRead.model_validate(record)

    async def list_audit_logs(
        self,
        *,
        limit: int = 100,
        offset: int = 0,
        actor: str | None = None,
        action: str | None = None,
    ) -> Tuple[List[AuditLogRead], int]:
        """Return paginated audit log entries filtered by actor/action."""
        limit = max(0, int(limit))
        offset = max(0, int(offset))

        async with self.session() as s:
            stmt = select(AuditLog).order_by(AuditLog.created_at.desc())
            count_stmt = select(func.count(AuditLog.id))
            if actor:
                stmt = stmt.where(AuditLog.actor == actor)
                count_stmt = count_stmt.where(AuditLog.actor == actor)
            if action:
                stmt = stmt.where(AuditLog.action == action)
                count_stmt = count_stmt.where(AuditLog.action == action)

            if limit:
                stmt = stmt.limit(limit)
            if offset:
                stmt = stmt.offset(offset)

            rows = (await s.execute(stmt)).scalars().all()
            total = int((await s.execute(count_stmt)).scalar_one())

        return [AuditLogRead.model_validate(row) for row in rows], total
