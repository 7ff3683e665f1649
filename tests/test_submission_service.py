import pytest

from advert_desk.db.schemas.submission import MarkUpdate, SubmissionCreate
from advert_desk.bot.services.audit_log import audit_logger
from advert_desk.bot.services.submission import SubmissionService
from advert_desk.utils.errors import BackendUnavailableError, RemoteRejectedError
from advert_desk.utils.sentinels import SERVER_TIMESTAMP


def payload(name: str = "Ada", **overrides) -> SubmissionCreate:
    data = dict(
        student_name=name,
        student_class="9A1",
        category="trainers",
        brand="Nikee",
        canva_url="https://www.canva.com/design/abc/view",
        notes="",
    )
    data.update(overrides)
    return SubmissionCreate(**data)


class TestWrites:
    async def test_create_assigns_id_and_timestamp(self, store):
        service = SubmissionService()
        sub_id = await service.create(payload())
        rows = await service.list_ordered()
        assert [r.id for r in rows] == [sub_id]
        row = rows[0]
        assert len(sub_id) == 32
        assert row.created_at is not None
        assert row.mark is None

    async def test_list_is_newest_first(self, store):
        service = SubmissionService()
        first = await service.create(payload("First"))
        second = await service.create(payload("Second"))
        rows = await service.list_ordered()
        assert [r.id for r in rows] == [second, first]

    async def test_mark_replaced_wholesale_with_server_time(self, store):
        service = SubmissionService()
        sub_id = await service.create(payload())
        await service.update_mark(sub_id, MarkUpdate(score=12, feedback="Good", marked_by="a@school.org"))
        updated = await service.update_mark(sub_id, MarkUpdate(score=18, marked_at=SERVER_TIMESTAMP))
        assert updated.mark.score == 18
        assert updated.mark.feedback == ""
        assert updated.mark.marked_by == ""
        assert updated.mark.marked_at is not None

    async def test_mark_out_of_range_rejected_by_schema(self):
        with pytest.raises(ValueError):
            MarkUpdate(score=21)

    def test_marked_at_defaults_to_server_time(self):
        assert MarkUpdate(score=1).marked_at is SERVER_TIMESTAMP
        with pytest.raises(ValueError):
            MarkUpdate(score=1, marked_at="soon")

    async def test_update_missing_is_remote_rejection(self, store):
        with pytest.raises(RemoteRejectedError):
            await SubmissionService().update_mark("0" * 32, MarkUpdate(score=3))

    async def test_delete(self, store):
        service = SubmissionService()
        sub_id = await service.create(payload())
        await service.delete(sub_id)
        assert await service.list_ordered() == []
        with pytest.raises(RemoteRejectedError):
            await service.delete(sub_id)

    async def test_unavailable_store(self, unavailable_store):
        with pytest.raises(BackendUnavailableError, match="init timeout"):
            await SubmissionService().create(payload())


class TestSubscription:
    async def test_current_snapshot_delivered_on_subscribe(self, store):
        service = SubmissionService()
        sub_id = await service.create(payload())
        snapshots = []
        unsubscribe = await service.subscribe(snapshots.append)
        assert [[r.id for r in s] for s in snapshots] == [[sub_id]]
        unsubscribe()

    async def test_every_write_delivers_full_ordered_set(self, store):
        service = SubmissionService()
        snapshots = []
        unsubscribe = await service.subscribe(snapshots.append)
        first = await service.create(payload("First"))
        second = await service.create(payload("Second"))
        await service.update_mark(first, MarkUpdate(score=10))
        await service.delete(second)
        assert [[r.id for r in s] for s in snapshots] == [
            [],
            [first],
            [second, first],
            [second, first],
            [first],
        ]
        assert snapshots[3][1].mark.score == 10
        unsubscribe()

    async def test_unsubscribe_is_idempotent(self, store):
        service = SubmissionService()
        unsubscribe = await service.subscribe(lambda rows: None)
        assert service.listener_count == 1
        unsubscribe()
        unsubscribe()
        assert service.listener_count == 0

    async def test_broken_listener_does_not_starve_others(self, store):
        service = SubmissionService()
        received = []

        def broken(rows):
            raise RuntimeError("listener bug")

        await service.subscribe(broken)
        await service.subscribe(received.append)
        await service.create(payload())
        assert len(received) == 2


class TestAudit:
    async def test_writes_are_audited(self, store):
        service = SubmissionService()
        sub_id = await service.create(payload())
        with pytest.raises(RemoteRejectedError):
            await service.delete("missing")
        entries, total = await audit_logger.list_entries()
        actions = {e.action for e in entries}
        assert "services.submission.create" in actions
        assert "services.submission.delete.error" in actions
        create_entry = next(e for e in entries if e.action == "services.submission.create")
        assert create_entry.payload["result"] == sub_id
        assert total == len(entries)
