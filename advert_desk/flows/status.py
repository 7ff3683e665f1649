# flows/status.py
"""Single-line status reporting and the UI adapter contracts the flows talk to."""
from __future__ import annotations

import logging
from typing import Any, List, Optional, Protocol

from advert_desk.db.schemas.submission import SubmissionRead
from advert_desk.i18n import Localizer
from advert_desk.utils.errors import FieldValidationError

logger = logging.getLogger(__name__)


class StatusSink(Protocol):
	async def show(self, text: str) -> None: ...


class PreviewViewer(Protocol):
	async def open(self, embed_url: str, external_url: str, meta: str = "") -> None: ...

	async def close(self, blank_url: str) -> None: ...


class BoardView(Protocol):
	async def render(self, rows: List[SubmissionRead], total: int) -> None: ...

	async def set_signed_in(self, identity: Optional[str]) -> None: ...


class Clipboard(Protocol):
	async def write_text(self, text: str) -> None: ...


class Downloads(Protocol):
	async def offer(self, filename: str, data: bytes) -> None: ...


class StatusReporter:
	"""
	Owns the one status line of a flow. Locale keys are rendered through the
	flow's :class:`Localizer`; error messages from the store are shown verbatim.
	"""

	def __init__(self, sink: StatusSink, localizer: Optional[Localizer] = None) -> None:
		self._sink = sink
		self._ = localizer if localizer is not None else Localizer()
		self.current = ""

	async def set(self, text: str) -> None:
		self.current = text
		try:
			await self._sink.show(text)
		except Exception:
			logger.warning("Status sink failed", exc_info=True)

	async def clear(self) -> None:
		await self.set("")

	async def key(self, key: str, **params: Any) -> None:
		await self.set(self._(key, **params))

	async def error(self, exc: BaseException, suffix: str = "") -> None:
		if isinstance(exc, FieldValidationError):
			text = self._(exc.key, **exc.params)
		else:
			text = str(exc) or exc.__class__.__name__
		await self.set(f"{text}{suffix}")
