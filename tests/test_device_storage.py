import logging

from advert_desk.bot.services.device_storage import BACKUP_KEY, DRAFT_KEY, DeviceStorage


class TestKeyValue:
    def test_set_get_remove(self, storage):
        assert storage.get_item("x") is None
        storage.set_item("x", "1")
        assert storage.get_item("x") == "1"
        storage.remove_item("x")
        assert storage.get_item("x") is None

    def test_devices_are_isolated(self, env):
        DeviceStorage(1).set_item("x", "one")
        assert DeviceStorage(2).get_item("x") is None
        assert DeviceStorage(1).get_item("x") == "one"

    def test_corrupt_file_reads_as_missing(self, storage, caplog):
        storage.path.parent.mkdir(parents=True, exist_ok=True)
        storage.path.write_text("{not json", encoding="utf-8")
        with caplog.at_level(logging.DEBUG):
            assert storage.get_item("x") is None
        assert any("cannot read" in r.getMessage() for r in caplog.records)

    def test_write_failure_is_swallowed(self, env):
        blocker = env / "blocked"
        blocker.write_text("a file, not a directory", encoding="utf-8")
        broken = DeviceStorage(7, root=blocker)
        broken.set_item("x", "1")
        assert broken.get_item("x") is None


class TestDraft:
    def test_round_trip_keeps_six_fields(self, storage):
        storage.save_draft({"student_name": "Ada", "brand": "Nikee", "unknown": "dropped"})
        draft = storage.load_draft()
        assert draft == {
            "student_name": "Ada",
            "student_class": "",
            "category": "",
            "brand": "Nikee",
            "canva_link": "",
            "notes": "",
        }
        assert "unknown" not in storage.get_json(DRAFT_KEY)

    def test_clear(self, storage):
        storage.save_draft({"student_name": "Ada"})
        storage.clear_draft()
        assert storage.get_item(DRAFT_KEY) is None
        assert storage.load_draft()["student_name"] == ""


class TestBackupRing:
    def test_newest_first(self, storage):
        storage.push_backup({"id": "first"})
        storage.push_backup({"id": "second"})
        assert [e["id"] for e in storage.backup_entries()] == ["second", "first"]

    def test_capped_at_limit(self, storage):
        for i in range(53):
            storage.push_backup({"id": f"s{i}"})
        entries = storage.backup_entries()
        assert len(entries) == 50
        assert entries[0]["id"] == "s52"
        assert entries[-1]["id"] == "s3"

    def test_garbage_backup_value_ignored(self, storage):
        storage.set_item(BACKUP_KEY, '"not a list"')
        assert storage.backup_entries() == []
        storage.push_backup({"id": "ok"})
        assert storage.backup_entries() == [{"id": "ok"}]
