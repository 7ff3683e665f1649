# bot/keyboards/keyboard_factory.py
from typing import Self, ClassVar, Optional, List
from aiogram.types.keyboard_button import KeyboardButton
from aiogram.types import ReplyKeyboardMarkup
from advert_desk.i18n import Localizer
from advert_desk.db.enums import UiMode
from advert_desk.bot.services.action_registry import ActionRegistry


class KeyboardFactory:
    _instance: ClassVar[Optional["KeyboardFactory"]] = None

    def __new__(cls) -> Self:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if getattr(self, "_initialized", False):
            return

        self._action_registry = ActionRegistry()
        self._initialized = True

    def build(self, ui_mode: UiMode, localizer: Localizer, signed_in: bool = False) -> ReplyKeyboardMarkup:
        """
        Reply keyboard for a chat mode. Every label is registered so that a tap
        resolves to ``<button key>:<ui mode>``.
        """
        if ui_mode == UiMode.INTAKE:
            btns = self._intake()
        elif ui_mode == UiMode.BOARD:
            btns = self._board(signed_in)
        else:
            btns = self._home()

        buttons: List[List[KeyboardButton]] = list()
        for row in btns:
            buttons.append([KeyboardButton(text=localizer.get(text)) for text in row])
            for text in row:
                self._action_registry.register(text=localizer.get(text), ui_mode=ui_mode, action=f"{text}:{ui_mode}")

        return ReplyKeyboardMarkup(keyboard=buttons, resize_keyboard=True, one_time_keyboard=False)

    @staticmethod
    def _home() -> List[List[str]]:
        return [["buttons.new_advert", "buttons.my_submissions"],
                ["buttons.teacher_board"],
                ["buttons.help"]]

    @staticmethod
    def _intake() -> List[List[str]]:
        return [["buttons.preview", "buttons.submit"],
                ["buttons.back"]]

    @staticmethod
    def _board(signed_in: bool) -> List[List[str]]:
        if not signed_in:
            return [["buttons.sign_in", "buttons.forgot_password"],
                    ["buttons.back"]]
        return [["buttons.refresh", "buttons.filters"],
                ["buttons.export_csv", "buttons.sign_out"],
                ["buttons.back"]]
