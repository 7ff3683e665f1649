# bot/services/action_registry.py
from __future__ import annotations

from typing import ClassVar, Dict, Tuple, Optional, Self

UNREGISTERED = "unregistered"


class ActionRegistry:
	"""Maps a reply-keyboard label shown in a chat mode back to its button key."""

	_instance: ClassVar[Optional["ActionRegistry"]] = None

	def __new__(cls) -> Self:
		if cls._instance is None:
			cls._instance = super().__new__(cls)
		return cls._instance

	def __init__(self) -> None:
		if getattr(self, "_initialized", False):
			return

		self._store: Dict[Tuple[str, str], str] = dict() # Key is (text: str, ui_mode: str)
		self._initialized = True

	@staticmethod
	def _normalize_text(text: str) -> str:
		return text.lower().strip()

	def resolve(self, text: str, ui_mode: str) -> str:
		"""Action string ``<button key>:<ui mode>``, or ``unregistered``."""
		key = (self._normalize_text(text), self._normalize_text(ui_mode))
		return self._store.get(key, UNREGISTERED)

	def register(self, text: str, ui_mode: str, action: str) -> None:
		key = (self._normalize_text(text), self._normalize_text(ui_mode))
		self._store[key] = self._normalize_text(action)
