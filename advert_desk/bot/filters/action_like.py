# bot/filters/action_like.py
from fnmatch import fnmatchcase
from aiogram.filters import BaseFilter
from aiogram.types import Message
from typing import Any, Optional
from advert_desk.bot.services.action_registry import ActionRegistry

class ActionLike(BaseFilter):
    """Match a reply-keyboard tap by ``<button key>:<ui mode>`` glob patterns."""

    def __init__(self, *patterns: str):
        self.patterns = tuple(p.lower() for p in patterns)

    async def __call__(self, event: Message, device: Optional[Any] = None, **kwargs) -> bool:
        if device is None or not event.text:
            return False
        action = ActionRegistry().resolve(text=event.text, ui_mode=str(device.ui_mode))
        return any(fnmatchcase(action, pat) for pat in self.patterns)
