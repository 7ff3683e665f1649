# bot/services/device_storage.py
from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from advert_desk.config import Settings

logger = logging.getLogger(__name__)

DRAFT_KEY = "advert_draft"
BACKUP_KEY = "advert_submissions_local"

DRAFT_FIELDS = ("student_name", "student_class", "category", "brand", "canva_link", "notes")

_unsafe = re.compile(r"[^A-Za-z0-9_.-]")


class DeviceStorage:
	"""
	Small key/value store private to one device (one Telegram chat).

	Values are JSON strings kept in a single file per device. Every failure is
	logged at debug level and swallowed: reads then return ``None`` and writes
	are lost.
	"""

	def __init__(self, device_id: int | str, root: Optional[Path] = None) -> None:
		self.device_id = str(device_id)
		self._root = Path(root) if root is not None else Settings().device_storage_dir
		self._path = self._root / f"{_unsafe.sub('_', self.device_id)}.json"

	@property
	def path(self) -> Path:
		return self._path

	def _read_all(self) -> Dict[str, str]:
		if not self._path.exists():
			return {}
		with open(self._path, encoding="utf-8") as file:
			data = json.load(file)
		return data if isinstance(data, dict) else {}

	def _write_all(self, data: Dict[str, str]) -> None:
		self._root.mkdir(parents=True, exist_ok=True)
		tmp = self._path.with_suffix(".tmp")
		with open(tmp, "w", encoding="utf-8") as file:
			json.dump(data, file, ensure_ascii=False)
		tmp.replace(self._path)

	def get_item(self, key: str) -> Optional[str]:
		try:
			value = self._read_all().get(key)
		except (OSError, ValueError):
			logger.debug("Device %s: cannot read %s", self.device_id, key, exc_info=True)
			return None
		return value if isinstance(value, str) else None

	def set_item(self, key: str, value: str) -> None:
		try:
			data = self._read_all()
			data[key] = value
			self._write_all(data)
		except (OSError, ValueError, TypeError):
			logger.debug("Device %s: cannot write %s", self.device_id, key, exc_info=True)

	def remove_item(self, key: str) -> None:
		try:
			data = self._read_all()
			if data.pop(key, None) is not None:
				self._write_all(data)
		except (OSError, ValueError):
			logger.debug("Device %s: cannot remove %s", self.device_id, key, exc_info=True)

	# --- JSON helpers ---

	def get_json(self, key: str, default: Any = None) -> Any:
		raw = self.get_item(key)
		if raw is None:
			return default
		try:
			return json.loads(raw)
		except ValueError:
			logger.debug("Device %s: %s is not valid JSON", self.device_id, key)
			return default

	def set_json(self, key: str, value: Any) -> None:
		try:
			raw = json.dumps(value, ensure_ascii=False, default=str)
		except (TypeError, ValueError):
			logger.debug("Device %s: %s is not serialisable", self.device_id, key, exc_info=True)
			return
		self.set_item(key, raw)

	# --- draft ---

	def load_draft(self) -> Dict[str, str]:
		data = self.get_json(DRAFT_KEY, {})
		if not isinstance(data, dict):
			return {}
		return {name: str(data.get(name) or "") for name in DRAFT_FIELDS}

	def save_draft(self, fields: Dict[str, str]) -> None:
		self.set_json(DRAFT_KEY, {name: fields.get(name, "") for name in DRAFT_FIELDS})

	def clear_draft(self) -> None:
		self.remove_item(DRAFT_KEY)

	# --- local backup ring ---

	def backup_entries(self) -> List[Dict[str, Any]]:
		"""Backed-up submissions, newest first."""
		data = self.get_json(BACKUP_KEY, [])
		return [entry for entry in data if isinstance(entry, dict)] if isinstance(data, list) else []

	def push_backup(self, entry: Dict[str, Any], limit: Optional[int] = None) -> None:
		cap = limit if limit is not None else Settings().backup_limit
		entries = [entry] + self.backup_entries()
		self.set_json(BACKUP_KEY, entries[:cap])
