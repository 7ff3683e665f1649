# bot/middlewares/whitelist
from typing import Callable, Awaitable, Any, Dict, Optional
from aiogram import BaseMiddleware
from aiogram.types import User as TgUser
from advert_desk.config import Settings

class WhitelistMiddleware(BaseMiddleware):
	"""Sets ``is_whitelisted`` for operators allowed to manage teacher accounts."""

	async def __call__(self, 
		handler: Callable[[Any, Dict[str, Any]], Awaitable[Any]],
		event: Any,
		data: Dict[str, Any]) -> Any:

		data["is_whitelisted"] = False
		tg_user: Optional[TgUser] = data.get("event_from_user", None)
		if tg_user and tg_user.username:
			data["is_whitelisted"] = tg_user.username in Settings().whitelist

		return await handler(event, data)
