"""Tests for the staged booking draft record and the staging stores."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from slotbook.core.config import settings
from slotbook.core.exceptions import CorruptDraft
from slotbook.core.time import utcnow
from slotbook.schemas.booking import ClientInfo
from slotbook.wizard.draft import StagedBookingDraft
from slotbook.wizard.staging import (
    DRAFT_KEY,
    PENDING_KEY,
    FileStagedBookingStore,
    MemoryStagedBookingStore,
)


def make_draft(**overrides) -> StagedBookingDraft:
    fields = {
        "slot_id": "slot-1",
        "client_info": ClientInfo(full_name="Juan Pérez", email="juan@x.com", phone="5551234567"),
        "professional_code": "ana-lopez",
        "date_time": datetime(2030, 5, 1, 10, 0),
    }
    fields.update(overrides)
    return StagedBookingDraft(**fields)


@pytest.fixture(params=["memory", "file"])
def store(request, tmp_path):
    if request.param == "memory":
        return MemoryStagedBookingStore()
    return FileStagedBookingStore(tmp_path / "profile")


class TestDraftRecord:
    """The draft is tagged and versioned; anything else decodes as corrupt."""

    def test_wire_format(self):
        payload = json.loads(make_draft().encode())
        assert payload["kind"] == "staged_booking"
        assert payload["version"] == 1
        assert payload["slotId"] == "slot-1"
        assert payload["professionalCode"] == "ana-lopez"
        assert payload["clientInfo"]["phone"] == "555-123-4567"
        assert "timestamp" in payload

    def test_decode_returns_equal_draft(self):
        draft = make_draft()
        assert StagedBookingDraft.decode(draft.encode()) == draft

    @pytest.mark.parametrize(
        "payload",
        [
            "not json",
            "[1, 2]",
            json.dumps({"kind": "something_else", "version": 1}),
            json.dumps({"kind": "staged_booking", "version": 2}),
            json.dumps({"kind": "staged_booking", "version": 1, "professionalCode": "ana-lopez"}),
        ],
    )
    def test_corrupt_payloads(self, payload):
        with pytest.raises(CorruptDraft):
            StagedBookingDraft.decode(payload)

    def test_unknown_fields_are_corrupt(self):
        payload = json.loads(make_draft().encode())
        payload["surprise"] = True
        with pytest.raises(CorruptDraft):
            StagedBookingDraft.decode(json.dumps(payload))

    def test_aware_datetimes_stored_as_naive_utc(self):
        draft = make_draft(date_time=datetime(2030, 5, 1, 12, 0, tzinfo=timezone(timedelta(hours=2))))
        assert draft.date_time == datetime(2030, 5, 1, 10, 0)

    def test_without_slot_keeps_client_info(self):
        draft = make_draft()
        stripped = draft.without_slot()
        assert stripped.slot_id is None
        assert stripped.date_time is None
        assert stripped.client_info == draft.client_info
        assert stripped.professional_code == "ana-lopez"

    def test_expiry(self):
        draft = make_draft(timestamp=utcnow() - timedelta(minutes=90))
        assert draft.is_expired(None) is False
        assert draft.is_expired(120) is False
        assert draft.is_expired(60) is True


class TestStagedBookingStore:
    """Both stores: one slot, last writer wins, pending flag kept apart."""

    def test_empty_store(self, store):
        assert store.read() is None
        assert store.has_pending() is False

    def test_write_replaces_previous_draft(self, store):
        store.write(make_draft(slot_id="slot-1"))
        store.write(make_draft(slot_id="slot-2"))
        assert store.read().slot_id == "slot-2"

    def test_pending_only_when_asked(self, store):
        store.write(make_draft())
        assert store.has_pending() is False

        store.write(make_draft(), pending=True)
        assert store.has_pending() is True

        store.clear_pending()
        assert store.has_pending() is False
        assert store.read() is not None

    def test_clear_removes_draft_and_flag(self, store):
        store.write(make_draft(), pending=True)
        store.clear()
        assert store.read() is None
        assert store.has_pending() is False

    def test_has_pending_does_not_read_the_draft(self, store):
        """A corrupt body does not affect the flag."""
        store.write(make_draft(), pending=True)
        store._set(DRAFT_KEY, "{{{ garbage")
        assert store.has_pending() is True
        with pytest.raises(CorruptDraft):
            store.read()

    def test_expired_draft_reads_as_corrupt(self, store):
        store.max_age_minutes = 60
        store.write(make_draft(timestamp=utcnow() - timedelta(hours=2)))
        with pytest.raises(CorruptDraft):
            store.read()


class TestFileStagedBookingStore:
    """The file store survives a new instance, like a page reload."""

    def test_durable_across_instances(self, tmp_path):
        first = FileStagedBookingStore(tmp_path)
        first.write(make_draft(), pending=True)

        second = FileStagedBookingStore(tmp_path)
        assert second.has_pending() is True
        assert second.read() == first.read()

    def test_one_file_per_key(self, tmp_path):
        store = FileStagedBookingStore(tmp_path)
        store.write(make_draft(), pending=True)
        assert sorted(p.name for p in tmp_path.iterdir()) == sorted([DRAFT_KEY, PENDING_KEY])
        assert (tmp_path / PENDING_KEY).read_text() == "true"

    def test_invalid_utf8_reads_as_corrupt(self, tmp_path):
        store = FileStagedBookingStore(tmp_path)
        store.write(make_draft(), pending=True)
        (tmp_path / DRAFT_KEY).write_bytes(b'{"kind": "staged_booking", "clientInfo": "\xff\xfe"}')

        with pytest.raises(CorruptDraft):
            store.read()
        assert store.has_pending() is True

    def test_directory_defaults_to_setting(self, tmp_path, monkeypatch):
        monkeypatch.setattr(settings, "STAGING_DIR", str(tmp_path / "from-settings"))
        store = FileStagedBookingStore()
        store.write(make_draft())

        assert store.directory == tmp_path / "from-settings"
        assert (tmp_path / "from-settings" / DRAFT_KEY).exists()


class TestDraftMaxAgeSetting:
    @pytest.mark.parametrize("kind", ["memory", "file"])
    def test_stale_draft_reads_as_corrupt(self, kind, tmp_path, monkeypatch):
        monkeypatch.setattr(settings, "DRAFT_MAX_AGE_MINUTES", 1)
        store = MemoryStagedBookingStore() if kind == "memory" else FileStagedBookingStore(tmp_path)
        assert store.max_age_minutes == 1

        store.write(make_draft(timestamp=utcnow() - timedelta(days=7)))
        with pytest.raises(CorruptDraft):
            store.read()

        store.write(make_draft())
        assert store.read() is not None

    def test_explicit_max_age_wins(self, monkeypatch):
        monkeypatch.setattr(settings, "DRAFT_MAX_AGE_MINUTES", 1)
        store = MemoryStagedBookingStore(max_age_minutes=60 * 24 * 30)

        store.write(make_draft(timestamp=utcnow() - timedelta(days=7)))
        assert store.read() is not None
