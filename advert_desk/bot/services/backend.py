# bot/services/backend.py
"""One-shot readiness signal for the submission store."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, ClassVar, Optional, Self

from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError

from advert_desk.config import Settings
from advert_desk.utils.errors import BackendUnavailableError, RemoteRejectedError

logger = logging.getLogger(__name__)


class BackendReadiness:
	"""
	Resolved once the store schema is initialised, rejected if initialisation fails
	or the deadline passes first. Either outcome happens exactly once; later calls
	to :meth:`initialise` or :meth:`wait` observe the recorded outcome.
	"""

	_instance: ClassVar[Optional["BackendReadiness"]] = None

	def __new__(cls, *args, **kwargs) -> Self:
		if cls._instance is None:
			cls._instance = super().__new__(cls)
		return cls._instance

	def __init__(self, deadline: Optional[float] = None) -> None:
		if getattr(self, "_initialized", False):
			return

		self._deadline = deadline if deadline is not None else Settings().backend_ready_timeout
		self._future: Optional[asyncio.Future[None]] = None
		self._initialized = True

	def _ensure_future(self) -> asyncio.Future[None]:
		if self._future is None:
			self._future = asyncio.get_running_loop().create_future()
		return self._future

	@property
	def is_ready(self) -> bool:
		fut = self._future
		return fut is not None and fut.done() and fut.exception() is None

	@property
	def is_settled(self) -> bool:
		return self._future is not None and self._future.done()

	def resolve(self) -> None:
		fut = self._ensure_future()
		if fut.done():
			return
		fut.set_result(None)
		logger.info("Submission store is ready")

	def reject(self, exc: BaseException) -> None:
		fut = self._ensure_future()
		if fut.done():
			return
		error = exc if isinstance(exc, BackendUnavailableError) else BackendUnavailableError(str(exc) or exc.__class__.__name__)
		fut.set_exception(error)
		# mark retrieved so an unobserved rejection is not reported at shutdown
		fut.exception()
		logger.warning("Submission store unavailable: %s", error)

	async def initialise(self, init: Callable[[], Awaitable[None]]) -> None:
		"""Run ``init`` under the deadline and settle the signal with its outcome."""
		fut = self._ensure_future()
		if fut.done():
			return
		try:
			await asyncio.wait_for(init(), timeout=self._deadline)
		except asyncio.TimeoutError:
			self.reject(BackendUnavailableError("Submission store init timeout."))
		except Exception as exc:
			self.reject(exc)
		else:
			self.resolve()

	async def wait(self) -> None:
		"""
		Wait for the outcome, bounded by the deadline.

		Raises:
			BackendUnavailableError: if the store was rejected or never became ready in time.
		"""
		fut = self._ensure_future()
		if not fut.done():
			try:
				await asyncio.wait_for(asyncio.shield(fut), timeout=self._deadline)
			except asyncio.TimeoutError:
				self.reject(BackendUnavailableError("Submission store init timeout."))
		fut.result()


@asynccontextmanager
async def store_call() -> AsyncIterator[None]:
	"""
	Wait for the store, then translate driver errors into the project's error kinds.

	Raises:
		BackendUnavailableError: store not ready or unreachable.
		RemoteRejectedError: the store refused the write or the record is missing.
	"""
	await BackendReadiness().wait()
	try:
		yield
	except (OperationalError, InterfaceError, OSError) as exc:
		raise BackendUnavailableError(f"Submission store unreachable: {getattr(exc, 'orig', None) or exc}") from exc
	except IntegrityError as exc:
		raise RemoteRejectedError(f"Submission store rejected the write: {getattr(exc, 'orig', None) or exc}") from exc
	except LookupError as exc:
		raise RemoteRejectedError(str(exc)) from exc
