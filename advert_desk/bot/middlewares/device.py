# bot/middlewares/device.py
from typing import Callable, Self, Awaitable, Any, ClassVar, Optional, Dict
from aiogram import BaseMiddleware
from aiogram.types import Chat, User as TgUser
from advert_desk.i18n import lang_code2language, Localizer
from advert_desk.bot.services.flow_registry import FlowRegistry, DeviceContext
from advert_desk.bot.services.audit_log import audit_logger

class DeviceMiddleware(BaseMiddleware):
	"""Attach the chat's :class:`DeviceContext` as ``device`` and bind the audit actor."""

	_instance: ClassVar[Optional["DeviceMiddleware"]] = None

	def __new__(cls, *args, **kwargs) -> Self:
		if cls._instance is None:
			cls._instance = super().__new__(cls)

		return cls._instance

	def __init__(self,  *args, **kwargs) -> None:
		if getattr(self, "_initialized", False):
			return

		self._registry = FlowRegistry()
		self._localizers: Dict[str, Localizer] = dict()

		self._initialized = True

	def get_localizer(self, tg_user: Optional[TgUser]) -> Localizer:
		lang = lang_code2language(tg_user.language_code if tg_user is not None else None)
		if lang not in self._localizers:
			self._localizers[lang] = Localizer(lang)
		return self._localizers[lang]

	def get_device(self, chat: Chat, tg_user: Optional[TgUser]) -> DeviceContext:
		return self._registry.get(chat.id, self.get_localizer(tg_user))

	@staticmethod
	def actor_for(device: DeviceContext, tg_user: Optional[TgUser]) -> str:
		if device.session.identity:
			return device.session.identity
		if tg_user is not None:
			return f"tg:{tg_user.id}"
		return f"chat:{device.chat_id}"

	async def __call__(self,
		handler: Callable[[Any, Dict[str, Any]], Awaitable[Any]],
		event: Any,
		data: dict[str, Any]) -> Any:
		chat: Optional[Chat] = data.get("event_chat")
		if chat is None:
			return

		tg_user: Optional[TgUser] = data.get("event_from_user")
		device = self.get_device(chat, tg_user)
		data["device"] = device
		data["lz"] = device.localizer
		# bind actor context for downstream logs
		token = audit_logger.bind_actor(self.actor_for(device, tg_user))
		try:
			return await handler(event, data)
		finally:
			audit_logger.unbind_actor(token)
