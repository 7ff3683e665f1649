# bot/services/flow_registry.py
"""Per-chat flow instances. A Telegram chat plays the role of a device."""
from __future__ import annotations

import logging
from typing import ClassVar, Dict, Optional

from aiogram import Bot

from advert_desk.db.enums import UiMode
from advert_desk.i18n import Localizer
from advert_desk.bot.adapters import ChatBoard, ChatClipboard, ChatDownloads, ChatStatusSink, ChatViewer
from advert_desk.bot.services.auth import AuthService
from advert_desk.bot.services.device_storage import DeviceStorage
from advert_desk.flows.intake import IntakeFlow
from advert_desk.flows.moderation import ModerationFlow
from advert_desk.flows.status import StatusReporter

logger = logging.getLogger(__name__)


class DeviceContext:
	def __init__(self, bot: Bot, chat_id: int, localizer: Localizer) -> None:
		self.bot = bot
		self.chat_id = chat_id
		self.localizer = localizer
		self.ui_mode = UiMode.HOME
		self.storage = DeviceStorage(chat_id)
		self.status = StatusReporter(ChatStatusSink(bot, chat_id), localizer)
		self.viewer = ChatViewer(bot, chat_id, localizer)
		self.intake = IntakeFlow(self.storage, self.status, self.viewer)
		self._moderation: Optional[ModerationFlow] = None

	@property
	def session(self):
		return AuthService().session(self.chat_id)

	@property
	def has_moderation(self) -> bool:
		return self._moderation is not None

	def moderation(self) -> ModerationFlow:
		"""The teacher board of this chat, started on first use."""
		if self._moderation is None:
			self._moderation = ModerationFlow(
				session=self.session,
				status=self.status,
				board=ChatBoard(self.bot, self.chat_id, self.localizer),
				viewer=self.viewer,
				clipboard=ChatClipboard(self.bot, self.chat_id, self.localizer),
				downloads=ChatDownloads(self.bot, self.chat_id, self.localizer),
			)
			self._moderation.start()
		return self._moderation

	async def close(self) -> None:
		if self._moderation is not None:
			await self._moderation.close()
			self._moderation = None
		await self.intake.close_preview()


class FlowRegistry:
	_instance: ClassVar[Optional["FlowRegistry"]] = None

	def __new__(cls) -> "FlowRegistry":
		if cls._instance is None:
			cls._instance = super().__new__(cls)
		return cls._instance

	def __init__(self) -> None:
		if getattr(self, "_initialized", False):
			return
		self._initialized = True
		self._bot: Optional[Bot] = None
		self._contexts: Dict[int, DeviceContext] = dict()

	def bind_bot(self, bot: Bot) -> None:
		self._bot = bot

	def get(self, chat_id: int, localizer: Optional[Localizer] = None) -> DeviceContext:
		if self._bot is None:
			raise RuntimeError("FlowRegistry has no bot bound.")
		ctx = self._contexts.get(chat_id)
		if ctx is None:
			ctx = DeviceContext(self._bot, chat_id, localizer if localizer is not None else Localizer())
			self._contexts[chat_id] = ctx
			logger.debug("Device context created for chat %s", chat_id)
		return ctx

	async def close_all(self) -> None:
		for chat_id, ctx in list(self._contexts.items()):
			try:
				await ctx.close()
			except Exception:
				logger.warning("Could not close flows of chat %s", chat_id, exc_info=True)
		self._contexts.clear()


flow_registry = FlowRegistry()
