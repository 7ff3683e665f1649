# flows/moderation.py
from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from advert_desk.db.enums import MarkFilter
from advert_desk.db.schemas.submission import MarkUpdate, SubmissionRead
from advert_desk.db.schemas.teacher import TeacherRead
from advert_desk.bot.services.auth import AuthSession
from advert_desk.bot.services.submission import SubmissionService, Unsubscribe
from advert_desk.flows.status import BoardView, Clipboard, Downloads, PreviewViewer, StatusReporter
from advert_desk.utils.canva import BLANK_TARGET, preview_url
from advert_desk.utils.errors import FieldValidationError
from advert_desk.utils.export import CSV_FILENAME, build_csv, build_summary, filter_rows
from advert_desk.utils.sentinels import SERVER_TIMESTAMP

logger = logging.getLogger(__name__)

SCORE_MIN = 0
SCORE_MAX = 20


@dataclass
class ReplaceCache:
	rows: List[SubmissionRead]


@dataclass
class ReportStatus:
	text: str = ""
	key: Optional[str] = None
	params: Dict[str, Any] = field(default_factory=dict)
	error: Optional[BaseException] = None


@dataclass
class AuthChanged:
	teacher: Optional[TeacherRead]


Command = Union[ReplaceCache, ReportStatus, AuthChanged]


def parse_score(raw: Any) -> int:
	"""
	Raises:
		FieldValidationError: unless ``raw`` is a whole number from 0 to 20.
	"""
	try:
		value = float(str(raw).strip())
	except (TypeError, ValueError):
		raise FieldValidationError("moderation.errors.score", min=SCORE_MIN, max=SCORE_MAX)
	if not math.isfinite(value) or not value.is_integer() or not SCORE_MIN <= value <= SCORE_MAX:
		raise FieldValidationError("moderation.errors.score", min=SCORE_MIN, max=SCORE_MAX)
	return int(value)


class ModerationFlow:
	"""
	Teacher board for one device.

	The cached snapshot is written only by the inbox consumer. Subscription
	deliveries, action results and auth changes are queued as commands and
	applied one at a time in arrival order; actions never touch the cache.
	"""

	def __init__(
		self,
		session: AuthSession,
		status: StatusReporter,
		board: BoardView,
		viewer: PreviewViewer,
		clipboard: Clipboard,
		downloads: Downloads,
		service: Optional[SubmissionService] = None,
	) -> None:
		self.session = session
		self.status = status
		self.board = board
		self.viewer = viewer
		self.clipboard = clipboard
		self.downloads = downloads
		self._service = service

		self.class_filter = ""
		self.mark_filter = MarkFilter.ALL
		self.pending_delete: Optional[str] = None
		self.preview_id: Optional[str] = None

		self._cache: List[SubmissionRead] = []
		self._inbox: asyncio.Queue[Command] = asyncio.Queue()
		self._consumer: Optional[asyncio.Task] = None
		self._unsubscribe: Optional[Unsubscribe] = None
		self._auth_unsubscribe: Optional[Unsubscribe] = None

	@property
	def service(self) -> SubmissionService:
		return self._service if self._service is not None else SubmissionService()

	@property
	def cache(self) -> List[SubmissionRead]:
		return list(self._cache)

	@property
	def visible_rows(self) -> List[SubmissionRead]:
		return filter_rows(self._cache, self.class_filter, self.mark_filter)

	@property
	def is_subscribed(self) -> bool:
		return self._unsubscribe is not None

	# --- lifecycle ---

	def start(self) -> None:
		if self._consumer is not None:
			return
		self._consumer = asyncio.create_task(self._consume(), name=f"moderation-{self.session.device_id}")
		self._auth_unsubscribe = self.session.on_auth_state_changed(
			lambda teacher: self._inbox.put_nowait(AuthChanged(teacher))
		)

	async def settle(self) -> None:
		"""Wait until every queued command has been applied."""
		await self._inbox.join()

	async def close(self) -> None:
		if self._auth_unsubscribe is not None:
			self._auth_unsubscribe()
			self._auth_unsubscribe = None
		self._stop_subscription()
		await self.close_preview()
		if self._consumer is not None:
			await self.settle()
			self._consumer.cancel()
			try:
				await self._consumer
			except asyncio.CancelledError:
				pass
			self._consumer = None

	# --- inbox ---

	def _report(self, **kwargs: Any) -> None:
		self._inbox.put_nowait(ReportStatus(**kwargs))

	async def _consume(self) -> None:
		while True:
			command = await self._inbox.get()
			try:
				await self._apply(command)
			except Exception:
				logger.exception("Moderation command %s failed", type(command).__name__)
			finally:
				self._inbox.task_done()

	async def _apply(self, command: Command) -> None:
		if isinstance(command, ReplaceCache):
			self._cache = list(command.rows)
			await self._render()
		elif isinstance(command, ReportStatus):
			if command.error is not None:
				await self.status.error(command.error)
			elif command.key is not None:
				await self.status.key(command.key, **command.params)
			else:
				await self.status.set(command.text)
		elif isinstance(command, AuthChanged):
			await self._on_auth(command.teacher)

	async def _on_auth(self, teacher: Optional[TeacherRead]) -> None:
		await self.board.set_signed_in(str(teacher.email) if teacher is not None else None)
		if teacher is None:
			self._stop_subscription()
			self._cache = []
			await self._render()
			return
		await self._start_subscription()

	async def _start_subscription(self) -> None:
		self._stop_subscription()
		try:
			self._unsubscribe = await self.service.subscribe(
				lambda rows: self._inbox.put_nowait(ReplaceCache(rows)),
				lambda exc: self._report(error=exc),
			)
		except Exception as exc:
			logger.warning("Could not subscribe to submissions: %s", exc)
			await self.status.error(exc)

	def _stop_subscription(self) -> None:
		if self._unsubscribe is not None:
			self._unsubscribe()
			self._unsubscribe = None

	async def _render(self) -> None:
		await self.board.render(self.visible_rows, len(self._cache))

	# --- auth ---

	async def sign_in(self, email: str, password: str) -> bool:
		email = (email or "").strip()
		if not email or not password:
			self._report(key="auth.errors.missing")
			return False
		try:
			await self.session.sign_in(email, password)
		except Exception as exc:
			self._report(error=exc)
			return False
		self._report(key="auth.signed_in")
		return True

	async def request_password_reset(self, email: str) -> bool:
		email = (email or "").strip()
		if not email:
			self._report(key="auth.errors.email_missing")
			return False
		try:
			await self.session.send_password_reset(email)
		except Exception as exc:
			self._report(error=exc)
			return False
		self._report(key="auth.reset_sent")
		return True

	async def sign_out(self) -> None:
		await self.close_preview()
		self.pending_delete = None
		try:
			await self.session.sign_out()
		except Exception as exc:
			self._report(error=exc)
			return
		self._report(key="auth.signed_out")

	# --- board ---

	async def set_filters(self, class_filter: Optional[str] = None, mark_filter: Optional[str] = None) -> None:
		if class_filter is not None:
			self.class_filter = class_filter
		if mark_filter is not None:
			self.mark_filter = MarkFilter(mark_filter)
		await self._render()

	async def refresh(self) -> None:
		await self._render()

	def _find(self, sub_id: str) -> Optional[SubmissionRead]:
		row = next((r for r in self._cache if r.id == sub_id), None)
		if row is None:
			self._report(key="moderation.errors.not_found")
		return row

	async def preview(self, sub_id: str) -> None:
		row = self._find(sub_id)
		if row is None:
			return
		meta = f"{row.student_name or ''} ({row.student_class or ''}) — {row.brand or ''}"
		try:
			await self.viewer.open(preview_url(row.canva_url), row.canva_url, meta)
		except Exception as exc:
			logger.warning("Viewer failed for %s", sub_id, exc_info=True)
			self._report(error=exc)
			return
		self.preview_id = sub_id

	async def close_preview(self) -> None:
		self.preview_id = None
		try:
			await self.viewer.close(BLANK_TARGET)
		except Exception:
			logger.warning("Viewer did not close cleanly", exc_info=True)

	async def save_mark(self, sub_id: str, score_raw: Any, feedback_raw: Optional[str]) -> bool:
		try:
			score = parse_score(score_raw)
		except FieldValidationError as exc:
			self._report(error=exc)
			return False
		if self._find(sub_id) is None:
			return False

		mark = MarkUpdate(
			score=score,
			feedback=(feedback_raw or "").strip(),
			marked_by=self.session.identity,
			marked_at=SERVER_TIMESTAMP,
		)
		try:
			await self.service.update_mark(sub_id, mark)
		except Exception as exc:
			self._report(error=exc)
			return False
		self._report(key="moderation.saved")
		return True

	def request_delete(self, sub_id: str) -> Optional[SubmissionRead]:
		"""Remember ``sub_id`` as awaiting confirmation; returns the record to confirm."""
		row = self._find(sub_id)
		self.pending_delete = sub_id if row is not None else None
		return row

	def cancel_delete(self, sub_id: Optional[str] = None) -> None:
		if sub_id is None or self.pending_delete == sub_id:
			self.pending_delete = None

	async def confirm_delete(self, sub_id: str) -> bool:
		if self.pending_delete != sub_id:
			self._report(key="moderation.errors.not_confirmed")
			return False
		self.pending_delete = None
		try:
			await self.service.delete(sub_id)
		except Exception as exc:
			self._report(error=exc)
			return False
		if self.preview_id == sub_id:
			await self.close_preview()
		self._report(key="moderation.deleted")
		return True

	async def copy_summary(self, sub_id: str) -> bool:
		row = self._find(sub_id)
		if row is None:
			return False
		try:
			await self.clipboard.write_text(build_summary(row))
		except Exception:
			logger.warning("Clipboard write failed for %s", sub_id, exc_info=True)
			self._report(key="moderation.copy_failed")
			return False
		self._report(key="moderation.copied")
		return True

	async def export_csv(self) -> bool:
		data = build_csv(self.visible_rows).encode("utf-8")
		try:
			await self.downloads.offer(CSV_FILENAME, data)
		except Exception as exc:
			logger.warning("CSV download failed", exc_info=True)
			self._report(error=exc)
			return False
		return True
