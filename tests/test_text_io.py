"""
Tests for ManuscriptService.export_txt / import_txt.
"""

import pytest

from core.exceptions import StorageIOError


class TestExportTxt:
    def test_volumes_and_chapters_in_order(self, manuscript, tmp_path):
        first = manuscript.create_volume("第一卷")
        second = manuscript.create_volume("第二卷")
        a = manuscript.create_chapter(first.id, "开端")
        b = manuscript.create_chapter(first.id, "相遇")
        c = manuscript.create_chapter(second.id, "离别")
        manuscript.update_chapter(a.id, "雨夜。")
        manuscript.update_chapter(b.id, "他推门而入。")
        manuscript.update_chapter(c.id, "天亮了。")
        out = tmp_path / "book.txt"

        assert manuscript.export_txt(str(out)) == 3

        assert out.read_text(encoding="utf-8") == (
            "【第一卷】\n\n"
            "开端\n\n雨夜。\n\n"
            "相遇\n\n他推门而入。\n\n"
            "【第二卷】\n\n"
            "离别\n\n天亮了。\n\n"
        )

    def test_empty_project(self, manuscript, tmp_path):
        out = tmp_path / "empty.txt"
        assert manuscript.export_txt(str(out)) == 0
        assert out.read_text(encoding="utf-8") == ""

    def test_unwritable_target(self, manuscript, tmp_path):
        with pytest.raises(StorageIOError):
            manuscript.export_txt(str(tmp_path / "missing_dir" / "book.txt"))


class TestImportTxt:
    def test_blank_lines_split_chapters(self, manuscript, tmp_path):
        source = tmp_path / "draft.txt"
        source.write_text("第一段正文\n仍是第一段\n\n\n\n  第二段  \n\n", encoding="utf-8")

        volume = manuscript.import_txt(str(source), "导入卷")

        assert volume.name == "导入卷"
        chapters = manuscript.list_chapters(volume.id)
        assert [c.name for c in chapters] == ["第1章", "第2章"]
        assert [c.content for c in chapters] == ["第一段正文\n仍是第一段", "第二段"]
        assert [c.word_count for c in chapters] == [len("第一段正文\n仍是第一段"), 3]
        assert {c.status for c in chapters} == {"draft"}
        # imports do not create snapshots
        assert manuscript.list_snapshots(chapters[0].id) == []

    def test_appended_after_existing_volumes(self, manuscript, tmp_path):
        existing = manuscript.create_volume("V")
        source = tmp_path / "more.txt"
        source.write_text("x", encoding="utf-8")

        imported = manuscript.import_txt(str(source), "More")

        assert imported.sort_order == existing.sort_order + 1
        assert [v.id for v in manuscript.list_volumes()] == [existing.id, imported.id]

    def test_round_trip_through_export(self, manuscript, tmp_path):
        source = tmp_path / "in.txt"
        source.write_text("甲\r\n\r\n乙", encoding="utf-8")
        manuscript.import_txt(str(source), "卷")
        out = tmp_path / "out.txt"
        manuscript.export_txt(str(out))
        assert out.read_text(encoding="utf-8") == "【卷】\n\n第1章\n\n甲\n\n第2章\n\n乙\n\n"

    def test_missing_file(self, manuscript, tmp_path):
        with pytest.raises(StorageIOError):
            manuscript.import_txt(str(tmp_path / "nope.txt"), "V")
        assert manuscript.list_volumes() == []
