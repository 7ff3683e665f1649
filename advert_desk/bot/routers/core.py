# bot/routers/core.py
import logging
from html import escape
from aiogram import Router, F
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import CommandStart, Command, CommandObject
from aiogram.fsm.context import FSMContext
from aiogram.types import Message, CallbackQuery
from advert_desk.db.enums import UiMode
from advert_desk.i18n import Localizer
from advert_desk.bot.adapters import PREVIEW_CLOSE
from advert_desk.bot.filters.action_like import ActionLike
from advert_desk.bot.keyboards.keyboard_factory import KeyboardFactory
from advert_desk.bot.services.auth import AuthService
from advert_desk.bot.services.flow_registry import DeviceContext
from advert_desk.utils.errors import FieldValidationError

router = Router(name="core")
logger = logging.getLogger(__name__)


async def close_previews(device: DeviceContext) -> None:
    await device.intake.close_preview()
    if device.has_moderation:
        await device.moderation().close_preview()


async def go_home(message: Message, device: DeviceContext, lz: Localizer, state: FSMContext, key: str = "mode.home") -> None:
    await state.clear()
    await close_previews(device)
    device.ui_mode = UiMode.HOME
    await message.answer(lz.get(key), reply_markup=KeyboardFactory().build(UiMode.HOME, lz))


@router.message(CommandStart())
async def start(message: Message, device: DeviceContext, lz: Localizer, state: FSMContext, is_whitelisted: bool) -> None:
    await state.clear()
    device.ui_mode = UiMode.HOME

    first_name = message.from_user.full_name if message.from_user is not None else ""
    first_name = first_name if first_name != "" else lz.get("start.your_name")

    if not is_whitelisted:
        greeting_text = lz.get("start.greeting", first_name=first_name)
    else:
        greeting_text = lz.get("start.whitelist", first_name=first_name)

    await message.answer(greeting_text, reply_markup=KeyboardFactory().build(UiMode.HOME, lz))


@router.message(Command("help"))
@router.message(ActionLike("buttons.help:*"))
async def help(message: Message, device: DeviceContext, lz: Localizer) -> None:
    await message.answer(text=lz.get("help.text"), reply_markup=KeyboardFactory().build(device.ui_mode, lz, signed_in=bool(device.session.identity)))


@router.message(ActionLike("buttons.back:*"))
async def on_back(message: Message, device: DeviceContext, lz: Localizer, state: FSMContext) -> None:
    await go_home(message, device, lz, state)


@router.message(Command("cancel"))
async def on_cancel(message: Message, device: DeviceContext, lz: Localizer, state: FSMContext) -> None:
    await state.clear()
    await close_previews(device)
    await message.answer(lz.get("core.cancelled"))


@router.callback_query(F.data == PREVIEW_CLOSE)
async def on_preview_close(cq: CallbackQuery, device: DeviceContext) -> None:
    await close_previews(device)
    await cq.answer()


@router.message(Command("add_teacher"))
async def add_teacher(message: Message, command: CommandObject, lz: Localizer, is_whitelisted: bool) -> None:
    if not is_whitelisted:
        return

    parts = (command.args or "").split()
    # the password should not stay in the chat history
    try:
        await message.delete()
    except TelegramBadRequest:
        logger.debug("Could not delete /add_teacher message in chat %s", message.chat.id)

    if len(parts) != 2:
        await message.answer(lz.get("core.add_teacher_usage"))
        return

    email, password = parts
    try:
        teacher = await AuthService().create_teacher(email, password)
    except FieldValidationError as exc:
        await message.answer(lz.get(exc.key, **exc.params))
        return
    except Exception as exc:
        await message.answer(lz.get("core.add_teacher_failed", error=escape(str(exc))))
        return

    await message.answer(lz.get("core.teacher_created", email=escape(str(teacher.email))))
