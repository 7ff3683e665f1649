# bot/routers/moderation.py
from __future__ import annotations

import logging
from html import escape
from typing import Optional

from aiogram import Router, F
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Command, CommandObject
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import CallbackQuery, InlineKeyboardButton, InlineKeyboardMarkup, Message

from advert_desk.db.enums import MarkFilter, StudentClass, UiMode
from advert_desk.db.schemas.submission import SubmissionRead
from advert_desk.i18n import Localizer
from advert_desk.bot.adapters import CARD_PREFIX
from advert_desk.bot.filters.action_like import ActionLike
from advert_desk.bot.keyboards.keyboard_factory import KeyboardFactory
from advert_desk.bot.services.auth import AuthService
from advert_desk.bot.services.flow_registry import DeviceContext
from advert_desk.flows.moderation import ModerationFlow
from advert_desk.utils.errors import FieldValidationError
from advert_desk.utils.export import category_label, format_timestamp

router = Router(name="moderation")
logger = logging.getLogger(__name__)

PREVIEW_PREFIX = "mod.preview"
MARK_PREFIX = "mod.mark"
COPY_PREFIX = "mod.copy"
DELETE_PREFIX = "mod.delete"
DELETE_OK_PREFIX = "mod.delok"
DELETE_NO_PREFIX = "mod.delno"
CLASS_FILTER_PREFIX = "mod.fclass"
MARK_FILTER_PREFIX = "mod.fmark"
ALL = "all"


class SignInFSM(StatesGroup):
	waiting_email = State()
	waiting_password = State()


class ResetFSM(StatesGroup):
	waiting_email = State()


class MarkFSM(StatesGroup):
	waiting_score = State()
	waiting_feedback = State()


async def _delete_quietly(message: Message) -> None:
	try:
		await message.delete()
	except TelegramBadRequest:
		logger.debug("Could not delete message %s in chat %s", message.message_id, message.chat.id)


def _signed_in_flow(device: DeviceContext) -> Optional[ModerationFlow]:
	if not device.session.identity:
		return None
	return device.moderation()


async def _backdrop(device: DeviceContext) -> None:
	"""Any other board action dismisses an open preview."""
	if device.has_moderation and device.moderation().preview_id is not None:
		await device.moderation().close_preview()


def _render_card(row: SubmissionRead, lz: Localizer) -> str:
	lines = [
		lz.get("moderation.card.title", name=escape(row.student_name), student_class=row.student_class),
		lz.get("moderation.card.category", category=escape(category_label(row.category)), brand=escape(row.brand)),
	]
	if row.student_email:
		lines.append(lz.get("moderation.card.email", email=escape(row.student_email)))
	if row.created_at is not None:
		lines.append(lz.get("moderation.card.created", created=format_timestamp(row.created_at)))
	lines.append(lz.get("moderation.card.link", url=escape(row.canva_url or "")))
	lines.append(lz.get("moderation.card.notes", notes=escape(row.notes) if row.notes else "—"))
	if row.is_marked:
		lines.append(lz.get("moderation.card.mark", score=row.mark.score, marked_by=escape(row.mark.marked_by or "—")))
		if row.mark.feedback:
			lines.append(lz.get("moderation.card.feedback", feedback=escape(row.mark.feedback)))
	else:
		lines.append(lz.get("moderation.card.unmarked"))
	return "\n".join(lines)


def _card_keyboard(sub_id: str, lz: Localizer) -> InlineKeyboardMarkup:
	return InlineKeyboardMarkup(inline_keyboard=[
		[
			InlineKeyboardButton(text=lz.get("buttons.preview"), callback_data=f"{PREVIEW_PREFIX}:{sub_id}"),
			InlineKeyboardButton(text=lz.get("buttons.save_mark"), callback_data=f"{MARK_PREFIX}:{sub_id}"),
		],
		[
			InlineKeyboardButton(text=lz.get("buttons.copy_summary"), callback_data=f"{COPY_PREFIX}:{sub_id}"),
			InlineKeyboardButton(text=lz.get("buttons.delete"), callback_data=f"{DELETE_PREFIX}:{sub_id}"),
		],
	])


def _filters_keyboard(flow: ModerationFlow, lz: Localizer) -> InlineKeyboardMarkup:
	def mark(active: bool, text: str) -> str:
		return f"• {text}" if active else text

	classes = [ALL] + [c.value for c in StudentClass]
	rows = []
	for i in range(0, len(classes), 4):
		rows.append([
			InlineKeyboardButton(
				text=mark((flow.class_filter or ALL) == value, lz.get("moderation.filters.all_classes") if value == ALL else value),
				callback_data=f"{CLASS_FILTER_PREFIX}:{value}",
			)
			for value in classes[i:i + 4]
		])
	rows.append([
		InlineKeyboardButton(
			text=mark(flow.mark_filter == value, lz.get(f"moderation.filters.{value.value or ALL}")),
			callback_data=f"{MARK_FILTER_PREFIX}:{value.value or ALL}",
		)
		for value in MarkFilter
	])
	return InlineKeyboardMarkup(inline_keyboard=rows)


# ---------- entering the board ----------

@router.message(Command("board"))
@router.message(ActionLike("buttons.teacher_board:home"))
async def open_board(message: Message, device: DeviceContext, lz: Localizer, state: FSMContext) -> None:
	await state.clear()
	await device.intake.close_preview()
	device.ui_mode = UiMode.BOARD
	if not device.has_moderation:
		# first use: the flow announces the auth state itself
		device.moderation()
		return

	signed_in = bool(device.session.identity)
	keyboard = KeyboardFactory().build(UiMode.BOARD, lz, signed_in=signed_in)
	if signed_in:
		await message.answer(lz.get("auth.whoami", email=escape(device.session.identity)), reply_markup=keyboard)
		await device.moderation().refresh()
	else:
		await message.answer(lz.get("auth.prompt"), reply_markup=keyboard)


# ---------- auth ----------

@router.message(ActionLike("buttons.sign_in:board"))
async def sign_in_start(message: Message, lz: Localizer, state: FSMContext) -> None:
	await state.set_state(SignInFSM.waiting_email)
	await message.answer(lz.get("auth.ask_email"))


@router.message(SignInFSM.waiting_email, F.text)
async def sign_in_email(message: Message, lz: Localizer, state: FSMContext) -> None:
	await state.update_data(email=message.text.strip())
	await state.set_state(SignInFSM.waiting_password)
	await message.answer(lz.get("auth.ask_password"))


@router.message(SignInFSM.waiting_password, F.text)
async def sign_in_password(message: Message, device: DeviceContext, state: FSMContext) -> None:
	data = await state.get_data()
	await state.clear()
	password = message.text
	await _delete_quietly(message)
	await device.moderation().sign_in(data.get("email", ""), password)


@router.message(ActionLike("buttons.forgot_password:board"))
async def reset_start(message: Message, lz: Localizer, state: FSMContext) -> None:
	await state.set_state(ResetFSM.waiting_email)
	await message.answer(lz.get("auth.ask_reset_email"))


@router.message(ResetFSM.waiting_email, F.text)
async def reset_email(message: Message, device: DeviceContext, state: FSMContext) -> None:
	await state.clear()
	await device.moderation().request_password_reset(message.text)


@router.message(Command("reset_password"))
async def reset_confirm(message: Message, command: CommandObject, lz: Localizer) -> None:
	parts = (command.args or "").split()
	await _delete_quietly(message)
	if len(parts) != 2:
		await message.answer(lz.get("auth.reset_usage"))
		return

	token, new_password = parts
	try:
		await AuthService().confirm_password_reset(token, new_password)
	except FieldValidationError as exc:
		await message.answer(lz.get(exc.key, **exc.params))
		return
	except Exception as exc:
		await message.answer(escape(str(exc)))
		return
	await message.answer(lz.get("auth.reset_done"))


@router.message(ActionLike("buttons.sign_out:board"))
async def sign_out(message: Message, device: DeviceContext, state: FSMContext) -> None:
	await state.clear()
	await device.moderation().sign_out()


# ---------- board ----------

@router.message(ActionLike("buttons.refresh:board"))
async def refresh(message: Message, device: DeviceContext, lz: Localizer) -> None:
	flow = _signed_in_flow(device)
	if flow is None:
		await message.answer(lz.get("auth.prompt"))
		return
	await _backdrop(device)
	await flow.refresh()


@router.message(ActionLike("buttons.filters:board"))
async def show_filters(message: Message, device: DeviceContext, lz: Localizer) -> None:
	flow = _signed_in_flow(device)
	if flow is None:
		await message.answer(lz.get("auth.prompt"))
		return
	await _backdrop(device)
	await message.answer(lz.get("moderation.filters.title"), reply_markup=_filters_keyboard(flow, lz))


@router.callback_query(F.data.startswith(f"{CLASS_FILTER_PREFIX}:") | F.data.startswith(f"{MARK_FILTER_PREFIX}:"))
async def set_filter(cq: CallbackQuery, device: DeviceContext, lz: Localizer) -> None:
	flow = _signed_in_flow(device)
	if flow is None:
		await cq.answer(lz.get("auth.prompt"), show_alert=True)
		return

	prefix, value = cq.data.split(":", maxsplit=1)
	value = "" if value == ALL else value
	try:
		if prefix == CLASS_FILTER_PREFIX:
			await flow.set_filters(class_filter=value)
		else:
			await flow.set_filters(mark_filter=value)
	except ValueError:
		await cq.answer()
		return

	try:
		await cq.message.edit_reply_markup(reply_markup=_filters_keyboard(flow, lz))
	except TelegramBadRequest:
		logger.debug("Filter keyboard unchanged in chat %s", device.chat_id)
	await cq.answer()


@router.message(ActionLike("buttons.export_csv:board"))
async def export_csv(message: Message, device: DeviceContext, lz: Localizer) -> None:
	flow = _signed_in_flow(device)
	if flow is None:
		await message.answer(lz.get("auth.prompt"))
		return
	await _backdrop(device)
	await flow.export_csv()


# ---------- per-card actions ----------

@router.callback_query(F.data.startswith(f"{CARD_PREFIX}:"))
async def pick_card(cq: CallbackQuery, device: DeviceContext, lz: Localizer) -> None:
	flow = _signed_in_flow(device)
	if flow is None:
		await cq.answer(lz.get("auth.prompt"), show_alert=True)
		return
	await _backdrop(device)

	sub_id = cq.data.split(":", maxsplit=1)[1]
	row = next((r for r in flow.cache if r.id == sub_id), None)
	if row is None:
		await cq.answer(lz.get("moderation.errors.not_found"), show_alert=True)
		return
	await cq.message.answer(_render_card(row, lz), reply_markup=_card_keyboard(row.id, lz))
	await cq.answer()


@router.callback_query(F.data.startswith(f"{PREVIEW_PREFIX}:"))
async def preview_card(cq: CallbackQuery, device: DeviceContext, lz: Localizer) -> None:
	flow = _signed_in_flow(device)
	if flow is None:
		await cq.answer(lz.get("auth.prompt"), show_alert=True)
		return
	await flow.preview(cq.data.split(":", maxsplit=1)[1])
	await cq.answer()


@router.callback_query(F.data.startswith(f"{COPY_PREFIX}:"))
async def copy_card(cq: CallbackQuery, device: DeviceContext, lz: Localizer) -> None:
	flow = _signed_in_flow(device)
	if flow is None:
		await cq.answer(lz.get("auth.prompt"), show_alert=True)
		return
	await _backdrop(device)
	await flow.copy_summary(cq.data.split(":", maxsplit=1)[1])
	await cq.answer()


@router.callback_query(F.data.startswith(f"{MARK_PREFIX}:"))
async def mark_start(cq: CallbackQuery, device: DeviceContext, lz: Localizer, state: FSMContext) -> None:
	flow = _signed_in_flow(device)
	if flow is None:
		await cq.answer(lz.get("auth.prompt"), show_alert=True)
		return
	await _backdrop(device)
	await state.set_state(MarkFSM.waiting_score)
	await state.update_data(sub_id=cq.data.split(":", maxsplit=1)[1])
	await cq.message.answer(lz.get("moderation.ask_score"))
	await cq.answer()


@router.message(MarkFSM.waiting_score, F.text)
async def mark_score(message: Message, lz: Localizer, state: FSMContext) -> None:
	await state.update_data(score=message.text.strip())
	await state.set_state(MarkFSM.waiting_feedback)
	await message.answer(lz.get("moderation.ask_feedback"))


@router.message(MarkFSM.waiting_feedback, F.text)
async def mark_feedback(message: Message, device: DeviceContext, lz: Localizer, state: FSMContext) -> None:
	data = await state.get_data()
	await state.clear()
	flow = _signed_in_flow(device)
	if flow is None:
		await message.answer(lz.get("auth.prompt"))
		return
	# "-" saves the mark without feedback
	feedback = "" if message.text.strip() == "-" else message.text
	await flow.save_mark(data.get("sub_id", ""), data.get("score", ""), feedback)


@router.callback_query(F.data.startswith(f"{DELETE_PREFIX}:"))
async def delete_request(cq: CallbackQuery, device: DeviceContext, lz: Localizer) -> None:
	flow = _signed_in_flow(device)
	if flow is None:
		await cq.answer(lz.get("auth.prompt"), show_alert=True)
		return
	await _backdrop(device)

	sub_id = cq.data.split(":", maxsplit=1)[1]
	row = flow.request_delete(sub_id)
	if row is None:
		await cq.answer()
		return
	keyboard = InlineKeyboardMarkup(inline_keyboard=[[
		InlineKeyboardButton(text=lz.get("buttons.confirm_delete"), callback_data=f"{DELETE_OK_PREFIX}:{sub_id}"),
		InlineKeyboardButton(text=lz.get("buttons.cancel_delete"), callback_data=f"{DELETE_NO_PREFIX}:{sub_id}"),
	]])
	await cq.message.answer(
		lz.get("moderation.confirm_delete", name=escape(row.student_name), brand=escape(row.brand)),
		reply_markup=keyboard,
	)
	await cq.answer()


@router.callback_query(F.data.startswith(f"{DELETE_OK_PREFIX}:"))
async def delete_confirm(cq: CallbackQuery, device: DeviceContext, lz: Localizer) -> None:
	flow = _signed_in_flow(device)
	if flow is None:
		await cq.answer(lz.get("auth.prompt"), show_alert=True)
		return
	await flow.confirm_delete(cq.data.split(":", maxsplit=1)[1])
	await cq.message.edit_reply_markup(reply_markup=None)
	await cq.answer()


@router.callback_query(F.data.startswith(f"{DELETE_NO_PREFIX}:"))
async def delete_cancel(cq: CallbackQuery, device: DeviceContext, lz: Localizer) -> None:
	if device.has_moderation:
		device.moderation().cancel_delete(cq.data.split(":", maxsplit=1)[1])
	await cq.message.edit_text(lz.get("moderation.delete_cancelled"))
	await cq.answer()
