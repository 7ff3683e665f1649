import asyncio
import logging
from typing import Callable, ClassVar, Dict, List, Optional, Self, Tuple

from advert_desk.db.database import DataBase
from advert_desk.db.schemas.submission import SubmissionRead, SubmissionCreate, MarkUpdate
from advert_desk.bot.services.audit_log import instrument_service_class
from advert_desk.bot.services.backend import store_call

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[List[SubmissionRead]], None]
ErrorListener = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


class SubmissionService:
	"""
	Document-store style access to the submissions collection.

	Every write is followed by a full, newest-first snapshot pushed to all
	subscribers. Write, snapshot and delivery happen under one lock so listeners
	never see snapshots out of order.
	"""
	_instance: ClassVar[Optional["SubmissionService"]] = None

	def __new__(cls, *args, **kwargs) -> Self:
		if cls._instance is None:
			cls._instance = super().__new__(cls)
		return cls._instance

	def __init__(self) -> None:
		if getattr(self, "_initialized", False):
			return

		self._initialized = True
		self._listeners: Dict[int, Tuple[SnapshotListener, Optional[ErrorListener]]] = dict()
		self._next_token = 0
		self._write_lock = asyncio.Lock()

	@property
	def _database(self) -> DataBase:
		return DataBase()

	async def create(self, payload: SubmissionCreate) -> str:
		"""Add a submission; returns the id the store assigned."""
		async with self._write_lock:
			async with store_call():
				created = await self._database.create_submission(payload)
			logger.info("Submission %s created for %s (%s)", created.id, created.student_name, created.student_class)
			await self._publish()
		return created.id

	async def update_mark(self, sub_id: str, mark: MarkUpdate) -> SubmissionRead:
		"""Replace the mark of ``sub_id`` wholesale."""
		async with self._write_lock:
			async with store_call():
				updated = await self._database.replace_submission_mark(sub_id, mark)
			logger.info("Submission %s marked %s by %s", sub_id, mark.score, mark.marked_by or "-")
			await self._publish()
		return updated

	async def delete(self, sub_id: str) -> None:
		async with self._write_lock:
			async with store_call():
				await self._database.delete_submission(sub_id)
			logger.info("Submission %s deleted", sub_id)
			await self._publish()

	async def list_ordered(self) -> List[SubmissionRead]:
		"""All submissions, newest first."""
		async with store_call():
			return await self._database.list_submissions()

	async def subscribe(
		self,
		on_snapshot: SnapshotListener,
		on_error: Optional[ErrorListener] = None,
	) -> Unsubscribe:
		"""
		Register a listener for full ordered snapshots.

		The current snapshot is delivered before this returns. The returned callable
		removes the listener and is safe to call more than once.
		"""
		async with self._write_lock:
			token = self._next_token
			self._next_token += 1
			self._listeners[token] = (on_snapshot, on_error)
			try:
				rows = await self.list_ordered()
			except Exception:
				self._listeners.pop(token, None)
				raise
			self._deliver(token, rows)

		def _unsubscribe() -> None:
			if self._listeners.pop(token, None) is not None:
				logger.debug("Snapshot listener %s removed", token)

		return _unsubscribe

	@property
	def listener_count(self) -> int:
		return len(self._listeners)

	async def _publish(self) -> None:
		if not self._listeners:
			return
		try:
			rows = await self.list_ordered()
		except Exception as exc:
			logger.warning("Could not build submissions snapshot", exc_info=True)
			for _, on_error in list(self._listeners.values()):
				if on_error is not None:
					on_error(exc)
			return
		for token in list(self._listeners):
			self._deliver(token, rows)

	def _deliver(self, token: int, rows: List[SubmissionRead]) -> None:
		entry = self._listeners.get(token)
		if entry is None:
			return
		on_snapshot, _ = entry
		try:
			on_snapshot(list(rows))
		except Exception:
			# one broken listener must not starve the others
			logger.exception("Snapshot listener %s failed", token)


instrument_service_class(
	SubmissionService,
	prefix="services.submission",
	exclude={"list_ordered", "subscribe"},
)
