# flows/intake.py
from __future__ import annotations

import logging
import secrets
from datetime import datetime
from typing import Any, Dict, List, Optional

from advert_desk.db.enums import AdvertCategory, IntakeState, StudentClass
from advert_desk.db.schemas.submission import SubmissionCreate
from advert_desk.bot.services.device_storage import DRAFT_FIELDS, DeviceStorage
from advert_desk.bot.services.submission import SubmissionService
from advert_desk.flows.status import PreviewViewer, StatusReporter
from advert_desk.utils.canva import BLANK_TARGET, check_share_link, preview_url
from advert_desk.utils.errors import FieldValidationError

logger = logging.getLogger(__name__)

BACKUP_NOTICE = " (Saved on this device as a backup.)"


def local_id() -> str:
	return "local_" + secrets.token_hex(4)


class IntakeFlow:
	"""
	Student submission form for one device.

	Fields hold raw strings exactly as typed; validation runs only on
	:meth:`preview` (link) and :meth:`submit` (everything).
	"""

	def __init__(
		self,
		storage: DeviceStorage,
		status: StatusReporter,
		viewer: PreviewViewer,
		service: Optional[SubmissionService] = None,
	) -> None:
		self.storage = storage
		self.status = status
		self.viewer = viewer
		self._service = service
		self.fields: Dict[str, str] = {name: "" for name in DRAFT_FIELDS}
		self.state = IntakeState.EDITING

	@property
	def service(self) -> SubmissionService:
		return self._service if self._service is not None else SubmissionService()

	def start(self) -> Dict[str, str]:
		"""Load the saved draft, if any, into the form."""
		draft = self.storage.load_draft()
		for name in DRAFT_FIELDS:
			if draft.get(name):
				self.fields[name] = draft[name]
		self.state = IntakeState.EDITING
		return dict(self.fields)

	def edit(self, field: str, value: str) -> None:
		if field not in self.fields:
			raise KeyError(field)
		self.fields[field] = "" if value is None else str(value)
		self.storage.save_draft(self.fields)
		if self.state in (IntakeState.SUBMITTED, IntakeState.FAILED_WITH_LOCAL_BACKUP):
			self.state = IntakeState.EDITING

	async def preview(self) -> bool:
		check = check_share_link(self.fields["canva_link"])
		if not check.ok:
			await self.status.key(check.reason)
			return False

		if check.hint:
			await self.status.key(check.hint)
		else:
			await self.status.clear()
		url = preview_url(check.url)
		try:
			await self.viewer.open(url, url)
		except Exception as exc:
			logger.warning("Viewer failed for %s", url, exc_info=True)
			await self.status.error(exc)
			self.state = IntakeState.EDITING
			return False
		self.state = IntakeState.PREVIEWING
		return True

	async def close_preview(self) -> None:
		try:
			await self.viewer.close(BLANK_TARGET)
		except Exception:
			logger.warning("Viewer did not close cleanly", exc_info=True)
		if self.state == IntakeState.PREVIEWING:
			self.state = IntakeState.EDITING

	def _validated_payload(self) -> SubmissionCreate:
		"""
		Raises:
			FieldValidationError: for the first field that fails, in form order.
		"""
		name = self.fields["student_name"].strip()
		if not name:
			raise FieldValidationError("intake.errors.name")
		if self.fields["student_class"] not in set(StudentClass):
			raise FieldValidationError("intake.errors.class")
		if self.fields["category"] not in set(AdvertCategory):
			raise FieldValidationError("intake.errors.category")
		brand = self.fields["brand"].strip()
		if not brand:
			raise FieldValidationError("intake.errors.brand")
		check = check_share_link(self.fields["canva_link"])
		if not check.ok:
			raise FieldValidationError(check.reason)

		return SubmissionCreate(
			student_name=name,
			student_class=StudentClass(self.fields["student_class"]),
			category=AdvertCategory(self.fields["category"]),
			brand=brand,
			canva_url=check.url,
			notes=self.fields["notes"].strip(),
		)

	def _backup(self, payload: SubmissionCreate, sub_id: str) -> None:
		entry: Dict[str, Any] = {"id": sub_id}
		entry.update(payload.model_dump(mode="json", exclude={"student_email"}))
		entry["created_at"] = datetime.now().astimezone().isoformat()
		self.storage.push_backup(entry)

	async def submit(self) -> Optional[str]:
		"""
		Validate and create the submission.

		Returns the store id, the ``local_`` backup id when the store failed, or
		``None`` when validation stopped the submission.
		"""
		await self.status.clear()
		try:
			payload = self._validated_payload()
		except FieldValidationError as exc:
			await self.status.error(exc)
			return None

		self.state = IntakeState.SUBMITTING
		try:
			sub_id = await self.service.create(payload)
		except Exception as exc:
			fallback = local_id()
			logger.warning("Submission failed, kept locally as %s: %s", fallback, exc)
			self._backup(payload, fallback)
			await self.status.error(exc, suffix=BACKUP_NOTICE)
			self.state = IntakeState.FAILED_WITH_LOCAL_BACKUP
			return fallback

		self._backup(payload, sub_id)
		self.storage.clear_draft()
		await self.status.set(f"Submitted! Reference: {sub_id}")
		self.fields = {name: "" for name in DRAFT_FIELDS}
		await self.close_preview()
		self.state = IntakeState.SUBMITTED
		return sub_id

	def backup_entries(self) -> List[Dict[str, Any]]:
		return self.storage.backup_entries()
