# bot/services/auth.py
from __future__ import annotations

import asyncio
import hashlib
import logging
import secrets
from datetime import timedelta
from typing import Awaitable, Callable, ClassVar, Dict, List, Optional, Self

import bcrypt
from pydantic import TypeAdapter, EmailStr, ValidationError

from advert_desk.config import Settings
from advert_desk.db.database import DataBase
from advert_desk.db.schemas.teacher import TeacherCreate, TeacherRead
from advert_desk.bot.services.audit_log import audit_logger, instrument_service_class
from advert_desk.bot.services.backend import store_call
from advert_desk.utils.clock import utcnow
from advert_desk.utils.errors import FieldValidationError, RemoteRejectedError

logger = logging.getLogger(__name__)

AuthListener = Callable[[Optional[TeacherRead]], None]
ResetSender = Callable[[TeacherRead, str], Awaitable[None]]

# bcrypt only looks at the first 72 bytes
PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_BYTES = 72

_email_adapter = TypeAdapter(EmailStr)


def _hash_token(token: str) -> str:
	return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _check_new_password(password: str) -> bytes:
	raw = (password or "").encode("utf-8")
	if len(password or "") < PASSWORD_MIN_LENGTH or len(raw) > PASSWORD_MAX_BYTES:
		raise FieldValidationError("auth.errors.password_length", min=PASSWORD_MIN_LENGTH, max=PASSWORD_MAX_BYTES)
	return raw


class AuthService:
	"""Teacher accounts: credential checks, password resets and per-device sessions."""

	_instance: ClassVar[Optional["AuthService"]] = None

	def __new__(cls) -> Self:
		if cls._instance is None:
			cls._instance = super().__new__(cls)
		return cls._instance

	def __init__(self) -> None:
		if getattr(self, "_initialized", False):
			return

		self._sessions: Dict[str, AuthSession] = dict()
		self._reset_sender: Optional[ResetSender] = None
		self._initialized = True

	@property
	def _database(self) -> DataBase:
		return DataBase()

	def session(self, device_id: int | str) -> "AuthSession":
		"""Auth state for one device; the same object is returned for the same device."""
		key = str(device_id)
		if key not in self._sessions:
			self._sessions[key] = AuthSession(self, device_id)
		return self._sessions[key]

	def bind_reset_sender(self, sender: ResetSender) -> None:
		"""Provide the channel that delivers reset codes to teachers."""
		self._reset_sender = sender

	async def create_teacher(self, email: str, password: str, tg_chat_id: Optional[int] = None) -> TeacherRead:
		try:
			address = _email_adapter.validate_python((email or "").strip())
		except ValidationError:
			raise FieldValidationError("auth.errors.email_invalid")
		raw = _check_new_password(password)
		password_hash = (await asyncio.to_thread(bcrypt.hashpw, raw, bcrypt.gensalt())).decode("ascii")
		async with store_call():
			teacher = await self._database.create_teacher(
				TeacherCreate(email=address, password_hash=password_hash, tg_chat_id=tg_chat_id)
			)
		logger.info("Teacher account %s created", teacher.email)
		return teacher

	async def verify_credentials(self, email: str, password: str) -> TeacherRead:
		"""
		Raises:
			RemoteRejectedError: unknown email or wrong password (same message for both).
		"""
		async with store_call():
			creds = await self._database.get_teacher_credentials(email)
		raw = (password or "").encode("utf-8")
		if creds is None or len(raw) > PASSWORD_MAX_BYTES:
			raise RemoteRejectedError("Invalid email or password.")
		ok = await asyncio.to_thread(bcrypt.checkpw, raw, creds.password_hash.encode("ascii"))
		if not ok:
			raise RemoteRejectedError("Invalid email or password.")
		return TeacherRead.model_validate(creds.model_dump())

	async def remember_chat(self, teacher: TeacherRead, chat_id: int) -> TeacherRead:
		if teacher.tg_chat_id == chat_id:
			return teacher
		async with store_call():
			return await self._database.update_teacher(teacher.id, tg_chat_id=chat_id)

	async def request_password_reset(self, email: str) -> None:
		"""
		Issue a one-time reset code and hand it to the bound sender.

		Unknown emails are accepted silently so the response does not reveal which
		accounts exist.
		"""
		async with store_call():
			creds = await self._database.get_teacher_credentials(email)
		if creds is None:
			logger.info("Password reset requested for unknown email")
			return

		token = secrets.token_urlsafe(24)
		expires = utcnow() + timedelta(minutes=Settings().reset_token_ttl_minutes)
		async with store_call():
			teacher = await self._database.update_teacher(
				creds.id, reset_token_hash=_hash_token(token), reset_expires_at=expires
			)

		if self._reset_sender is None or teacher.tg_chat_id is None:
			logger.warning("No delivery channel for reset code of %s", teacher.email)
			return
		await self._reset_sender(teacher, token)

	async def confirm_password_reset(self, token: str, new_password: str) -> TeacherRead:
		raw = _check_new_password(new_password)
		async with store_call():
			creds = await self._database.get_teacher_by_reset_token(_hash_token((token or "").strip()))
		if creds is None or creds.reset_expires_at is None or creds.reset_expires_at < utcnow():
			raise RemoteRejectedError("Reset code is invalid or has expired.")
		password_hash = (await asyncio.to_thread(bcrypt.hashpw, raw, bcrypt.gensalt())).decode("ascii")
		async with store_call():
			return await self._database.update_teacher(creds.id, password_hash=password_hash, clear_reset=True)


class AuthSession:
	"""Signed-in state of a single device, with push notification of changes."""

	def __init__(self, service: AuthService, device_id: int | str) -> None:
		self._service = service
		self.device_id = device_id
		self._current: Optional[TeacherRead] = None
		self._listeners: List[AuthListener] = []

	@property
	def current_user(self) -> Optional[TeacherRead]:
		return self._current

	@property
	def identity(self) -> str:
		return str(self._current.email) if self._current is not None else ""

	def on_auth_state_changed(self, listener: AuthListener) -> Callable[[], None]:
		"""Register ``listener``; it is called at once with the current state."""
		self._listeners.append(listener)
		listener(self._current)

		def _unsubscribe() -> None:
			if listener in self._listeners:
				self._listeners.remove(listener)

		return _unsubscribe

	def _set(self, teacher: Optional[TeacherRead]) -> None:
		self._current = teacher
		for listener in list(self._listeners):
			try:
				listener(teacher)
			except Exception:
				logger.exception("Auth listener failed on device %s", self.device_id)

	async def sign_in(self, email: str, password: str) -> TeacherRead:
		teacher = await self._service.verify_credentials(email, password)
		if isinstance(self.device_id, int):
			teacher = await self._service.remember_chat(teacher, self.device_id)
		audit_logger.bind_actor(str(teacher.email))
		self._set(teacher)
		logger.info("Teacher %s signed in on device %s", teacher.email, self.device_id)
		return teacher

	async def sign_out(self) -> None:
		previous = self._current
		self._set(None)
		if previous is not None:
			logger.info("Teacher %s signed out on device %s", previous.email, self.device_id)

	async def send_password_reset(self, email: str) -> None:
		await self._service.request_password_reset(email)


instrument_service_class(
	AuthService,
	prefix="services.auth",
	actor_fields=("email",),
	exclude={"remember_chat"},
)
