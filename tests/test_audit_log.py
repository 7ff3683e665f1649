import uuid
from dataclasses import dataclass
from datetime import datetime

from advert_desk.db.enums import StudentClass
from advert_desk.bot.services.audit_log import REDACTED, audit_logger


@dataclass
class Sample:
    brand: str
    password: str


class TestSerialize:
    def test_secrets_are_redacted_at_any_depth(self):
        value = audit_logger.serialize({"email": "a@school.org", "nested": {"token": "abc", "new_password": "x"}})
        assert value == {"email": "a@school.org", "nested": {"token": REDACTED, "new_password": REDACTED}}

    def test_dataclasses_and_scalars(self):
        ident = uuid.uuid4()
        value = audit_logger.serialize([Sample("Nikee", "hunter22"), ident, StudentClass.Y9A1, datetime(2026, 1, 2, 3, 4, 5)])
        assert value == [{"brand": "Nikee", "password": REDACTED}, str(ident), "9A1", "2026-01-02T03:04:05"]


class TestLog:
    async def test_not_persisted_before_store_is_ready(self, unavailable_store):
        assert await audit_logger.log(action="test.unready") is None

    async def test_bound_actor_is_used(self, store):
        token = audit_logger.bind_actor("tg:77")
        try:
            entry = await audit_logger.log(action="test.actor", payload={"k": 1})
        finally:
            audit_logger.unbind_actor(token)
        assert entry.actor == "tg:77"
        assert entry.payload["k"] == 1
        assert entry.payload["_meta"]["function"] == "test_bound_actor_is_used"
        assert audit_logger.current_actor() is None

    async def test_explicit_actor_wins(self, store):
        token = audit_logger.bind_actor("tg:77")
        try:
            entry = await audit_logger.log(action="test.actor", actor="teacher@school.org", include_context=False)
        finally:
            audit_logger.unbind_actor(token)
        assert entry.actor == "teacher@school.org"
        assert "_meta" not in entry.payload

    async def test_filters(self, store):
        await audit_logger.log(action="test.one", actor="a")
        await audit_logger.log(action="test.two", actor="b")
        entries, total = await audit_logger.list_entries(actor="b")
        assert total == 1
        assert entries[0].action == "test.two"
