# bot/adapters.py
"""Telegram implementations of the flow adapters (status line, viewer, board, clipboard, downloads)."""
from __future__ import annotations

import logging
from html import escape
from typing import List, Optional

from aiogram import Bot
from aiogram.exceptions import TelegramBadRequest
from aiogram.types import (
	BufferedInputFile,
	CopyTextButton,
	InlineKeyboardButton,
	InlineKeyboardMarkup,
	LinkPreviewOptions,
)

from advert_desk.db.enums import UiMode
from advert_desk.db.schemas.submission import SubmissionRead
from advert_desk.i18n import Localizer
from advert_desk.bot.keyboards.keyboard_factory import KeyboardFactory

logger = logging.getLogger(__name__)

# Telegram limits
COPY_TEXT_LIMIT = 256
BOARD_PAGE_LIMIT = 40

CARD_PREFIX = "mod.card"
PREVIEW_CLOSE = "preview.close"


class ChatStatusSink:
	"""The status line of a chat is the last status message sent to it."""

	def __init__(self, bot: Bot, chat_id: int) -> None:
		self._bot = bot
		self._chat_id = chat_id

	async def show(self, text: str) -> None:
		if not text:
			return
		await self._bot.send_message(self._chat_id, escape(text))


class ChatViewer:
	"""One preview message per chat with a link preview and an "open" button."""

	def __init__(self, bot: Bot, chat_id: int, localizer: Localizer) -> None:
		self._bot = bot
		self._chat_id = chat_id
		self._ = localizer
		self._message_id: Optional[int] = None
		self.target: Optional[str] = None

	async def open(self, embed_url: str, external_url: str, meta: str = "") -> None:
		await self.close("")
		keyboard = InlineKeyboardMarkup(inline_keyboard=[
			[InlineKeyboardButton(text=self._("buttons.open_external"), url=external_url)],
			[InlineKeyboardButton(text=self._("buttons.close_preview"), callback_data=PREVIEW_CLOSE)],
		])
		text = self._("preview.title", meta=escape(meta)) if meta else self._("preview.title_plain")
		msg = await self._bot.send_message(
			self._chat_id,
			f"{text}\n{escape(embed_url)}",
			reply_markup=keyboard,
			link_preview_options=LinkPreviewOptions(url=embed_url, prefer_large_media=True, show_above_text=True),
		)
		self._message_id = msg.message_id
		self.target = embed_url

	async def close(self, blank_url: str) -> None:
		self.target = blank_url
		message_id, self._message_id = self._message_id, None
		if message_id is None:
			return
		try:
			await self._bot.delete_message(self._chat_id, message_id)
		except TelegramBadRequest:
			logger.debug("Preview message %s already gone", message_id)


class ChatBoard:
	"""Renders the filtered submissions as one editable message of card buttons."""

	def __init__(self, bot: Bot, chat_id: int, localizer: Localizer) -> None:
		self._bot = bot
		self._chat_id = chat_id
		self._ = localizer
		self._message_id: Optional[int] = None

	def _card_label(self, row: SubmissionRead) -> str:
		badge = self._("moderation.board.marked", score=row.mark.score) if row.is_marked else self._("moderation.board.unmarked")
		return self._("moderation.board.item", name=row.student_name, student_class=row.student_class, brand=row.brand, badge=badge)

	def _build(self, rows: List[SubmissionRead], total: int) -> tuple[str, InlineKeyboardMarkup]:
		if not rows:
			return self._("moderation.board.empty", total=total), InlineKeyboardMarkup(inline_keyboard=[])

		header = self._("moderation.board.header", shown=len(rows), total=total)
		if len(rows) > BOARD_PAGE_LIMIT:
			header += "\n" + self._("moderation.board.truncated", limit=BOARD_PAGE_LIMIT)
		buttons = [
			[InlineKeyboardButton(text=self._card_label(row), callback_data=f"{CARD_PREFIX}:{row.id}")]
			for row in rows[:BOARD_PAGE_LIMIT]
		]
		return header, InlineKeyboardMarkup(inline_keyboard=buttons)

	async def render(self, rows: List[SubmissionRead], total: int) -> None:
		text, keyboard = self._build(rows, total)
		if self._message_id is not None:
			try:
				await self._bot.edit_message_text(
					text=text, chat_id=self._chat_id, message_id=self._message_id, reply_markup=keyboard
				)
				return
			except TelegramBadRequest as exc:
				if "not modified" in str(exc):
					return
				logger.debug("Board message %s cannot be edited, sending a new one", self._message_id)
		msg = await self._bot.send_message(self._chat_id, text, reply_markup=keyboard)
		self._message_id = msg.message_id

	async def set_signed_in(self, identity: Optional[str]) -> None:
		keyboard = KeyboardFactory().build(UiMode.BOARD, self._, signed_in=identity is not None)
		if identity is None:
			self._message_id = None
			await self._bot.send_message(self._chat_id, self._("auth.prompt"), reply_markup=keyboard)
		else:
			await self._bot.send_message(self._chat_id, self._("auth.whoami", email=escape(identity)), reply_markup=keyboard)


class ChatClipboard:
	"""Sends the text as a message, with a copy button when Telegram allows it."""

	def __init__(self, bot: Bot, chat_id: int, localizer: Localizer) -> None:
		self._bot = bot
		self._chat_id = chat_id
		self._ = localizer

	async def write_text(self, text: str) -> None:
		keyboard = None
		if len(text) <= COPY_TEXT_LIMIT:
			keyboard = InlineKeyboardMarkup(inline_keyboard=[
				[InlineKeyboardButton(text=self._("buttons.copy"), copy_text=CopyTextButton(text=text))]
			])
		await self._bot.send_message(self._chat_id, f"<pre>{escape(text)}</pre>", reply_markup=keyboard)


class ChatDownloads:
	def __init__(self, bot: Bot, chat_id: int, localizer: Localizer) -> None:
		self._bot = bot
		self._chat_id = chat_id
		self._ = localizer

	async def offer(self, filename: str, data: bytes) -> None:
		await self._bot.send_document(
			self._chat_id,
			BufferedInputFile(data, filename=filename),
			caption=self._("moderation.export_caption", filename=filename),
		)
