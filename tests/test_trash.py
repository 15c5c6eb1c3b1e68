"""
Tests for infra.storage.trash: capture, restore, expiry.
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from core.exceptions import NotFoundError, TrashError
from core.models import Foreshadow, RagArc, Snapshot, TimelineNode, TrashItem
from core.schemas import new_id, now_iso
from infra.storage import sql_db, trash
from infra.storage.trash import TrashKind


@pytest.fixture
def volume(manuscript):
    return manuscript.create_volume("Volume One")


@pytest.fixture
def chapter(manuscript, volume):
    created = manuscript.create_chapter(volume.id, "Chapter 1")
    return manuscript.update_chapter(created.id, "The opening line.")


def _session(manuscript, **kwargs):
    return sql_db.project_session(manuscript.config, manuscript.storage_id, **kwargs)


# ---------------------------------------------------------------------------
# Kinds
# ---------------------------------------------------------------------------


class TestKinds:
    def test_every_kind_has_model(self):
        for kind in TrashKind:
            assert kind.model.__tablename__ == kind.value

    def test_unknown_kind(self):
        with pytest.raises(TrashError):
            trash.parse_kind("foreshadows")


# ---------------------------------------------------------------------------
# Capture
# ---------------------------------------------------------------------------


class TestCapture:
    def test_chapter_moves_to_trash(self, manuscript, chapter):
        trash_id = manuscript.delete_chapter(chapter.id)

        with pytest.raises(NotFoundError):
            manuscript.get_chapter(chapter.id)
        entries = manuscript.list_trash()
        assert [e.id for e in entries] == [trash_id]
        entry = entries[0]
        assert entry.original_table == "chapters"
        assert entry.original_id == chapter.id
        assert entry.deleted_by == "user"
        payload = json.loads(entry.data_json)
        assert payload["kind"] == "chapters"
        assert payload["data"] == chapter.to_dict()

    def test_volume_captures_its_chapters(self, manuscript, volume, chapter):
        second = manuscript.create_chapter(volume.id, "Chapter 2")
        manuscript.delete_volume(volume.id)

        entries = manuscript.list_trash()
        kinds = sorted(e.original_table for e in entries)
        assert kinds == ["chapters", "chapters", "volumes"]
        assert {e.original_id for e in entries} == {volume.id, chapter.id, second.id}
        assert manuscript.list_volumes() == []
        assert manuscript.list_chapters(volume.id) == []

    def test_missing_record(self, manuscript):
        with pytest.raises(NotFoundError):
            manuscript.delete_chapter("nope")
        with pytest.raises(NotFoundError):
            manuscript.delete_volume("nope")

    def test_actor_tag(self, manuscript, chapter):
        manuscript.delete_chapter(chapter.id, deleted_by="ai")
        assert manuscript.list_trash()[0].deleted_by == "ai"

    def test_invalid_actor(self, manuscript, chapter):
        with pytest.raises(ValueError):
            manuscript.delete_chapter(chapter.id, deleted_by="robot")
        assert manuscript.get_chapter(chapter.id).id == chapter.id

    def test_capture_and_delete_share_one_transaction(self, manuscript, chapter):
        with pytest.raises(RuntimeError):
            with _session(manuscript) as session:
                trash.trash_capture(session, TrashKind.CHAPTER, chapter.id)
                raise RuntimeError("crash after capture")

        assert manuscript.get_chapter(chapter.id).content == chapter.content
        assert manuscript.list_trash() == []

    def test_chapter_capture_drops_dependents(self, manuscript, chapter):
        entity = manuscript.create_entity("Lin", "character")
        with _session(manuscript) as session:
            session.add(TimelineNode(
                id=new_id(), entity_id=entity.id, chapter_id=chapter.id,
                event="enters", created_at=now_iso(),
            ))
        manuscript.delete_chapter(chapter.id)

        with _session(manuscript) as session:
            assert session.query(Snapshot).filter_by(chapter_id=chapter.id).count() == 0
            assert session.query(TimelineNode).count() == 0

    def test_chapter_capture_detaches_foreshadows_and_drops_arcs(self, manuscript, volume, chapter):
        other = manuscript.create_chapter(volume.id, "Chapter 2")
        now = now_iso()
        with _session(manuscript) as session:
            session.add(Foreshadow(
                id="f1", description="the locked door", plant_chapter_id=chapter.id,
                reap_chapter_id=chapter.id, created_at=now, updated_at=now,
            ))
            session.add(Foreshadow(
                id="f2", description="the letter", plant_chapter_id=other.id,
                reap_chapter_id=chapter.id, created_at=now, updated_at=now,
            ))
            session.add(RagArc(
                id="a1", start_chapter_id=chapter.id, end_chapter_id=other.id,
                summary="arc", created_at=now, updated_at=now,
            ))

        manuscript.delete_chapter(chapter.id)

        with _session(manuscript) as session:
            f1 = session.get(Foreshadow, "f1")
            f2 = session.get(Foreshadow, "f2")
            assert (f1.plant_chapter_id, f1.reap_chapter_id) == (None, None)
            assert (f2.plant_chapter_id, f2.reap_chapter_id) == (other.id, None)
            assert session.get(RagArc, "a1") is None

    def test_entity_capture_drops_timeline(self, manuscript, chapter):
        entity = manuscript.create_entity("Lin", "character", {"age": 17}, inbox=True)
        with _session(manuscript) as session:
            session.add(TimelineNode(
                id=new_id(), entity_id=entity.id, chapter_id=chapter.id,
                event="enters", created_at=now_iso(),
            ))
        manuscript.delete_entity(entity.id)

        with _session(manuscript) as session:
            assert session.query(TimelineNode).count() == 0
        with pytest.raises(NotFoundError):
            manuscript.get_entity(entity.id)


# ---------------------------------------------------------------------------
# Restore
# ---------------------------------------------------------------------------


class TestRestore:
    def test_chapter_round_trip(self, manuscript, chapter):
        trash_id = manuscript.delete_chapter(chapter.id)
        kind, restored_id = manuscript.restore_from_trash(trash_id)

        assert kind is TrashKind.CHAPTER
        assert restored_id == chapter.id
        assert manuscript.get_chapter(chapter.id) == chapter
        assert manuscript.list_trash() == []

    def test_entity_round_trip(self, manuscript):
        entity = manuscript.create_entity("陆离", "character", {"weapon": "剑"}, inbox=True)
        trash_id = manuscript.delete_entity(entity.id)
        manuscript.restore_from_trash(trash_id)
        assert manuscript.get_entity(entity.id) == entity

    def test_volume_and_chapters_round_trip(self, manuscript, volume, chapter):
        manuscript.delete_volume(volume.id)
        for entry in manuscript.list_trash():
            manuscript.restore_from_trash(entry.id)

        assert manuscript.list_volumes() == [volume]
        assert manuscript.get_chapter(chapter.id) == chapter

    def test_dangling_reference_still_restores(self, manuscript, volume, chapter):
        chapter_trash = manuscript.delete_chapter(chapter.id)
        manuscript.delete_volume(volume.id)

        manuscript.restore_from_trash(chapter_trash)

        restored = manuscript.get_chapter(chapter.id)
        assert restored == chapter
        assert manuscript.list_volumes() == []
        # the volume's own trash record is untouched
        assert [e.original_table for e in manuscript.list_trash()] == ["volumes"]

    def test_missing_trash_record(self, manuscript):
        with pytest.raises(NotFoundError):
            manuscript.restore_from_trash("nope")

    def test_unknown_kind_is_reported(self, manuscript):
        with _session(manuscript) as session:
            session.add(TrashItem(
                id="t1", original_table="foreshadows", original_id="f1",
                data_json=json.dumps({"kind": "foreshadows", "data": {"id": "f1"}}),
                deleted_at=now_iso(), deleted_by="user",
            ))
        with pytest.raises(TrashError):
            manuscript.restore_from_trash("t1")
        assert [e.id for e in manuscript.list_trash()] == ["t1"]

    @pytest.mark.parametrize("data_json", [
        "{not json",
        json.dumps(["chapters"]),
        json.dumps({"kind": "volumes", "data": {"id": "c1"}}),
        json.dumps({"kind": "chapters", "data": {"name": "no id"}}),
    ])
    def test_malformed_payload(self, manuscript, data_json):
        with _session(manuscript) as session:
            session.add(TrashItem(
                id="bad", original_table="chapters", original_id="c1",
                data_json=data_json, deleted_at=now_iso(), deleted_by="user",
            ))
        with pytest.raises(TrashError):
            manuscript.restore_from_trash("bad")

    def test_missing_fields_get_schema_defaults(self, manuscript):
        payload = {"kind": "chapters", "data": {"id": "c9", "volume_id": "v9", "name": "Bare"}}
        with _session(manuscript) as session:
            session.add(TrashItem(
                id="t9", original_table="chapters", original_id="c9",
                data_json=json.dumps(payload), deleted_at=now_iso(), deleted_by="user",
            ))
        manuscript.restore_from_trash("t9")
        restored = manuscript.get_chapter("c9")
        assert restored.status == "draft"
        assert restored.word_count == 0
        assert restored.content == ""


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------


class TestExpire:
    def test_sweep_by_age(self, manuscript, volume):
        now = datetime(2025, 6, 1, tzinfo=timezone.utc)
        ids = [manuscript.create_chapter(volume.id, f"c{i}").id for i in range(3)]
        with _session(manuscript) as session:
            trash.trash_capture(session, "chapters", ids[0], now=now - timedelta(days=45))
            trash.trash_capture(session, "chapters", ids[1], now=now - timedelta(days=31))
            trash.trash_capture(session, "chapters", ids[2], now=now - timedelta(days=2))

        assert manuscript.clean_expired_trash(retention_days=30, now=now) == 2
        remaining = manuscript.list_trash()
        assert [e.original_id for e in remaining] == [ids[2]]

    def test_default_retention_from_service(self, manuscript, chapter):
        manuscript.delete_chapter(chapter.id)
        assert manuscript.clean_expired_trash() == 0
        assert manuscript.clean_expired_trash(retention_days=0,
                                              now=datetime.now(timezone.utc) + timedelta(seconds=1)) == 1

    def test_malformed_timestamp_does_not_abort(self, manuscript, volume):
        now = datetime(2025, 6, 1, tzinfo=timezone.utc)
        old = manuscript.create_chapter(volume.id, "old")
        with _session(manuscript) as session:
            session.add(TrashItem(
                id="weird", original_table="chapters", original_id="x",
                data_json="{}", deleted_at="yesterday-ish", deleted_by="user",
            ))
            trash.trash_capture(session, "chapters", old.id, now=now - timedelta(days=90))

        assert manuscript.clean_expired_trash(retention_days=30, now=now) == 1
        assert [e.id for e in manuscript.list_trash()] == ["weird"]

    def test_negative_window(self, manuscript):
        with pytest.raises(ValueError):
            manuscript.clean_expired_trash(retention_days=-1)

    def test_naive_now_is_treated_as_utc(self, manuscript, chapter):
        manuscript.delete_chapter(chapter.id)
        naive_now = datetime.now(timezone.utc).replace(tzinfo=None)

        assert manuscript.clean_expired_trash(retention_days=1, now=naive_now) == 0
        assert manuscript.clean_expired_trash(retention_days=0, now=naive_now + timedelta(days=1)) == 1

    def test_naive_stored_timestamp_is_treated_as_utc(self, manuscript):
        now = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
        with _session(manuscript) as session:
            session.add(TrashItem(
                id="naive", original_table="chapters", original_id="x",
                data_json="{}", deleted_at="2025-05-01T12:00:00", deleted_by="user",
            ))
        assert manuscript.clean_expired_trash(retention_days=31, now=now) == 0
        assert manuscript.clean_expired_trash(retention_days=30, now=now) == 1
