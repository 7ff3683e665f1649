# bot/routers/intake.py
from __future__ import annotations

import logging
from html import escape
from typing import Dict

from aiogram import Router, F
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import CallbackQuery, InlineKeyboardButton, InlineKeyboardMarkup, Message

from advert_desk.db.enums import AdvertCategory, IntakeState, StudentClass, UiMode
from advert_desk.i18n import Localizer
from advert_desk.bot.filters.action_like import ActionLike
from advert_desk.bot.keyboards.keyboard_factory import KeyboardFactory
from advert_desk.bot.services.device_storage import DRAFT_FIELDS
from advert_desk.bot.services.flow_registry import DeviceContext
from advert_desk.utils.export import category_label

router = Router(name="intake")
logger = logging.getLogger(__name__)

EDIT_PREFIX = "intake.edit"
PICK_PREFIX = "intake.pick"

CHOICE_FIELDS = {
	"student_class": [c.value for c in StudentClass],
	"category": [c.value for c in AdvertCategory],
}


class IntakeFSM(StatesGroup):
	waiting_value = State()


def _render_form(fields: Dict[str, str], lz: Localizer) -> str:
	empty = lz.get("intake.form.empty")
	lines = [lz.get("intake.form.title")]
	for name in DRAFT_FIELDS:
		value = fields.get(name, "")
		if name == "category" and value:
			value = category_label(value)
		lines.append(lz.get(f"intake.form.{name}", value=escape(value) if value else empty))
	lines.append("")
	lines.append(lz.get("intake.form.hint"))
	return "\n".join(lines)


def _form_keyboard(lz: Localizer) -> InlineKeyboardMarkup:
	rows = []
	for pair in (DRAFT_FIELDS[0:2], DRAFT_FIELDS[2:4], DRAFT_FIELDS[4:6]):
		rows.append([
			InlineKeyboardButton(text=lz.get(f"intake.buttons.{name}"), callback_data=f"{EDIT_PREFIX}:{name}")
			for name in pair
		])
	return InlineKeyboardMarkup(inline_keyboard=rows)


def _choice_keyboard(field: str) -> InlineKeyboardMarkup:
	options = CHOICE_FIELDS[field]
	rows = []
	for i in range(0, len(options), 3):
		rows.append([
			InlineKeyboardButton(
				text=category_label(value) if field == "category" else value,
				callback_data=f"{PICK_PREFIX}:{field}:{value}",
			)
			for value in options[i:i + 3]
		])
	return InlineKeyboardMarkup(inline_keyboard=rows)


async def _send_form(message: Message, device: DeviceContext, lz: Localizer) -> None:
	await message.answer(_render_form(device.intake.fields, lz), reply_markup=_form_keyboard(lz))


@router.message(Command("new"))
@router.message(ActionLike("buttons.new_advert:home"))
async def start_intake(message: Message, device: DeviceContext, lz: Localizer, state: FSMContext) -> None:
	await state.clear()
	device.ui_mode = UiMode.INTAKE
	device.intake.start()
	await message.answer(lz.get("intake.entered"), reply_markup=KeyboardFactory().build(UiMode.INTAKE, lz))
	await _send_form(message, device, lz)


@router.message(ActionLike("buttons.preview:intake"))
async def preview(message: Message, device: DeviceContext, state: FSMContext) -> None:
	await state.clear()
	await device.intake.preview()


@router.message(ActionLike("buttons.submit:intake"))
async def submit(message: Message, device: DeviceContext, lz: Localizer, state: FSMContext) -> None:
	await state.clear()
	await device.intake.submit()
	if device.intake.state == IntakeState.SUBMITTED:
		device.ui_mode = UiMode.HOME
		await message.answer(lz.get("mode.home"), reply_markup=KeyboardFactory().build(UiMode.HOME, lz))


@router.message(Command("my_submissions"))
@router.message(ActionLike("buttons.my_submissions:home"))
async def my_submissions(message: Message, device: DeviceContext, lz: Localizer) -> None:
	entries = device.intake.backup_entries()
	if not entries:
		await message.answer(lz.get("intake.backup.empty"))
		return

	lines = [lz.get("intake.backup.title", count=len(entries))]
	for entry in entries:
		lines.append(lz.get(
			"intake.backup.item",
			id=escape(str(entry.get("id", ""))),
			brand=escape(str(entry.get("brand", ""))),
			category=escape(category_label(entry.get("category"))),
			created=escape(str(entry.get("created_at", ""))),
		))
	await message.answer("\n".join(lines))


@router.callback_query(F.data.startswith(f"{EDIT_PREFIX}:"))
async def edit_field(cq: CallbackQuery, device: DeviceContext, lz: Localizer, state: FSMContext) -> None:
	field = cq.data.split(":", maxsplit=1)[1]
	if field not in DRAFT_FIELDS:
		await cq.answer()
		return

	if field in CHOICE_FIELDS:
		await cq.message.answer(lz.get(f"intake.prompt.{field}"), reply_markup=_choice_keyboard(field))
	else:
		await state.set_state(IntakeFSM.waiting_value)
		await state.update_data(field=field)
		await cq.message.answer(lz.get(f"intake.prompt.{field}"))
	await cq.answer()


@router.callback_query(F.data.startswith(f"{PICK_PREFIX}:"))
async def pick_value(cq: CallbackQuery, device: DeviceContext, lz: Localizer) -> None:
	try:
		_, field, value = cq.data.split(":", maxsplit=2)
		device.intake.edit(field, value)
	except (KeyError, ValueError):
		await cq.answer()
		return

	await cq.message.edit_text(_render_form(device.intake.fields, lz), reply_markup=_form_keyboard(lz))
	await cq.answer()


@router.message(IntakeFSM.waiting_value, F.text)
async def receive_value(message: Message, device: DeviceContext, lz: Localizer, state: FSMContext) -> None:
	data = await state.get_data()
	await state.clear()
	field = data.get("field", "")
	# "-" clears the optional notes
	value = "" if field == "notes" and message.text.strip() == "-" else message.text
	try:
		device.intake.edit(field, value)
	except KeyError:
		logger.debug("Stale intake field %r in chat %s", data.get("field"), message.chat.id)
		return
	await _send_form(message, device, lz)
