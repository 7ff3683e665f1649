import json
import logging
from pathlib import Path
from typing import Optional, Any, Dict
from advert_desk.config import Settings

LOCALES_DIR = Path(__file__).parent / "data" / "locales"
LANGUAGES = {"en": "english"}

logger = logging.getLogger(__name__)

def lang_code2language(lang_code: Optional[str]) -> str:
	"""Telegram sends ``en``, ``en-GB`` and the like; only the primary subtag matters."""
	if not lang_code:
		return Settings().default_language

	primary = lang_code.replace("_", "-").split("-", maxsplit=1)[0].lower()
	return LANGUAGES.get(primary, Settings().default_language)

class Localizer:
	"""
	Dotted keys map onto the locale tree: ``moderation.errors.score`` reads
	``<lang>/moderation.json`` and walks ``errors`` -> ``score``. Keys missing in a
	non-default language fall back to the default one.
	"""

	def __init__(self, lang: Optional[str] = None):
		self._templates: Dict[str, str] = {}
		self.lang = lang if lang is not None else Settings().default_language
		self.i18n_dir = LOCALES_DIR / self.lang
		self._fallback: Optional[Localizer] = None
		if self.lang != Settings().default_language:
			self._fallback = Localizer(Settings().default_language)

	def _lookup(self, key: str) -> str:
		path = self.i18n_dir
		keys = key.split('.')

		while keys:
			k = keys.pop(0)
			if (path / k).is_dir():
				path = path / k
				continue

			path = path / f"{k}.json"
			if not path.exists():
				raise KeyError(f"Key {key} has no file {path}")
			break

		if not keys:
			raise KeyError(f"Key {key} names a file, not a template")

		with open(path, encoding="utf-8") as file:
			node: Any = json.load(file)

		for k in keys:
			if not isinstance(node, dict) or k not in node:
				raise KeyError(f"Key {key} is not found in {path}")
			node = node[k]

		if not isinstance(node, str):
			raise KeyError(f"Key {key} is a group, not a template")
		return node

	def _load_template(self, key: str) -> str:
		try:
			template = self._lookup(key)
		except KeyError:
			if self._fallback is None:
				raise
			logger.debug("No %s template for %s, using %s", self.lang, key, self._fallback.lang)
			template = self._fallback._load_template(key)

		self._templates[key] = template
		return template

	def get(self, key: str, **kwargs: Any) -> str:
		template = self._templates.get(key)
		if template is None:
			template = self._load_template(key)
		return template.format(**kwargs)

	def __call__(self, key: str, **kwargs: Any) -> str:
		return self.get(key, **kwargs)
