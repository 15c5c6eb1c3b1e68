"""
稿件业务服务 (Manuscript Service)
面向单本书的 project.db：分卷、章节、设定集实体的基本读写，
以及回收站、章节快照与里程碑等存储生命周期操作。
每个方法都打开一次新的连接并在单个事务内完成。
"""
import json
import logging
from datetime import datetime
from typing import List

from sqlalchemy import func

from config.loader import AppConfig
from core.exceptions import NotFoundError, StorageIOError
from core.models import Chapter, Entity, Volume
from core.schemas import (
    ChapterInfo, EntityInfo, MilestoneInfo, SnapshotInfo, TrashEntry, VolumeInfo, new_id, now_iso,
)
from infra.storage import milestones, snapshots, sql_db, trash
from infra.storage.trash import TrashKind

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 30
CHAPTER_STATUSES = ("draft", "complete", "dirty")


class ManuscriptService:
    def __init__(self, config: AppConfig, storage_id: str,
                 snapshot_limit: int = snapshots.DEFAULT_SNAPSHOT_LIMIT,
                 retention_days: int = DEFAULT_RETENTION_DAYS):
        self.config = config
        self.storage_id = storage_id
        self.snapshot_limit = snapshot_limit
        self.retention_days = retention_days

    def _session(self, enforce_foreign_keys: bool = True):
        return sql_db.project_session(self.config, self.storage_id, enforce_foreign_keys)

    # --- 分卷 ---

    def create_volume(self, name: str) -> VolumeInfo:
        with self._session() as session:
            max_order = session.query(func.coalesce(func.max(Volume.sort_order), -1)).scalar()
            volume = Volume(id=new_id(), name=name, sort_order=max_order + 1, created_at=now_iso())
            session.add(volume)
            session.flush()
            return VolumeInfo.from_row(volume)

    def list_volumes(self) -> List[VolumeInfo]:
        with self._session() as session:
            return [VolumeInfo.from_row(v) for v in session.query(Volume).order_by(Volume.sort_order).all()]

    def delete_volume(self, volume_id: str, deleted_by: str = "user") -> str:
        """删除分卷（分卷及其下所有章节移入回收站）"""
        with self._session() as session:
            return trash.trash_capture(session, TrashKind.VOLUME, volume_id, deleted_by)

    # --- 章节 ---

    def create_chapter(self, volume_id: str, name: str) -> ChapterInfo:
        now = now_iso()
        with self._session() as session:
            max_order = (
                session.query(func.coalesce(func.max(Chapter.sort_order), -1))
                .filter(Chapter.volume_id == volume_id)
                .scalar()
            )
            chapter = Chapter(
                id=new_id(), volume_id=volume_id, name=name, content="", status="draft",
                word_count=0, sort_order=max_order + 1, created_at=now, updated_at=now,
            )
            session.add(chapter)
            session.flush()
            return ChapterInfo.from_row(chapter)

    def get_chapter(self, chapter_id: str) -> ChapterInfo:
        with self._session() as session:
            chapter = session.get(Chapter, chapter_id)
            if chapter is None:
                raise NotFoundError("chapters", chapter_id)
            return ChapterInfo.from_row(chapter)

    def list_chapters(self, volume_id: str) -> List[ChapterInfo]:
        with self._session() as session:
            rows = session.query(Chapter).filter_by(volume_id=volume_id).order_by(Chapter.sort_order).all()
            return [ChapterInfo.from_row(c) for c in rows]

    def update_chapter(self, chapter_id: str, content: str, now: datetime = None) -> ChapterInfo:
        """
        更新章节正文：重新计算字数，已完成的章节变为 dirty，并生成一条滚动快照。
        正文与快照在同一事务内写入。
        """
        with self._session() as session:
            chapter = session.get(Chapter, chapter_id)
            if chapter is None:
                raise NotFoundError("chapters", chapter_id)
            chapter.content = content
            chapter.word_count = snapshots.count_words(content)
            chapter.updated_at = now_iso(now)
            if chapter.status == "complete":
                chapter.status = "dirty"
            snapshots.record_snapshot(session, chapter_id, content, limit=self.snapshot_limit, now=now)
            return ChapterInfo.from_row(chapter)

    def set_chapter_status(self, chapter_id: str, status: str) -> None:
        if status not in CHAPTER_STATUSES:
            raise ValueError(f"未知的章节状态: {status}")
        with self._session() as session:
            chapter = session.get(Chapter, chapter_id)
            if chapter is None:
                raise NotFoundError("chapters", chapter_id)
            chapter.status = status
            chapter.updated_at = now_iso()

    def delete_chapter(self, chapter_id: str, deleted_by: str = "user") -> str:
        """删除章节（移入回收站）"""
        with self._session() as session:
            return trash.trash_capture(session, TrashKind.CHAPTER, chapter_id, deleted_by)

    # --- 纯文本导入导出 ---

    def export_txt(self, output_path: str) -> int:
        """
        按分卷、章节的排序把全书导出为 UTF-8 TXT。
        分卷标题写作【卷名】，每章为章节名 + 正文，之间以空行分隔。

        Returns:
            int: 导出的章节数。
        """
        parts = []
        exported = 0
        with self._session() as session:
            for volume in session.query(Volume).order_by(Volume.sort_order).all():
                parts.append(f"【{volume.name}】\n\n")
                chapters = (
                    session.query(Chapter)
                    .filter_by(volume_id=volume.id)
                    .order_by(Chapter.sort_order)
                    .all()
                )
                for chapter in chapters:
                    parts.append(f"{chapter.name}\n\n{chapter.content or ''}\n\n")
                    exported += 1

        try:
            with open(output_path, "w", encoding="utf-8") as f:
                f.write("".join(parts))
        except OSError as e:
            logger.error(f"写入导出文件失败: {e}", exc_info=True)
            raise StorageIOError(f"写入导出文件失败: {e}", output_path) from e
        logger.info(f"项目 '{self.storage_id}' 已导出 {exported} 个章节到 {output_path}")
        return exported

    def import_txt(self, file_path: str, volume_name: str) -> VolumeInfo:
        """
        把 TXT 导入为新的分卷：按空行切分，每个非空段落成为一章（第1章、第2章 ...）。
        分卷与所有章节在同一事务内写入。
        """
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                text = f.read()
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"读取导入文件失败: {e}", exc_info=True)
            raise StorageIOError(f"读取导入文件失败: {e}", file_path) from e

        blocks = [b.strip() for b in text.replace("\r\n", "\n").split("\n\n")]
        blocks = [b for b in blocks if b]

        now = now_iso()
        with self._session() as session:
            max_order = session.query(func.coalesce(func.max(Volume.sort_order), -1)).scalar()
            volume = Volume(id=new_id(), name=volume_name, sort_order=max_order + 1, created_at=now)
            session.add(volume)
            session.flush()
            for index, block in enumerate(blocks):
                session.add(Chapter(
                    id=new_id(), volume_id=volume.id, name=f"第{index + 1}章", content=block,
                    status="draft", word_count=snapshots.count_words(block), sort_order=index,
                    created_at=now, updated_at=now,
                ))
            session.flush()
            info = VolumeInfo.from_row(volume)

        logger.info(f"已从 {file_path} 导入分卷 '{volume_name}'，共 {len(blocks)} 章。")
        return info

    # --- 设定集实体 ---

    def create_entity(self, name: str, entity_type: str, attributes: dict = None,
                      inbox: bool = False) -> EntityInfo:
        now = now_iso()
        with self._session() as session:
            entity = Entity(
                id=new_id(), name=name, entity_type=entity_type,
                attributes_json=json.dumps(attributes or {}, ensure_ascii=False),
                status="alive", inbox=inbox, created_at=now, updated_at=now,
            )
            session.add(entity)
            session.flush()
            return EntityInfo.from_row(entity)

    def get_entity(self, entity_id: str) -> EntityInfo:
        with self._session() as session:
            entity = session.get(Entity, entity_id)
            if entity is None:
                raise NotFoundError("entities", entity_id)
            return EntityInfo.from_row(entity)

    def delete_entity(self, entity_id: str, deleted_by: str = "user") -> str:
        """删除实体（移入回收站，关联的时间线节点随之删除）"""
        with self._session() as session:
            return trash.trash_capture(session, TrashKind.ENTITY, entity_id, deleted_by)

    # --- 回收站 ---

    def list_trash(self) -> List[TrashEntry]:
        with self._session() as session:
            return trash.list_trash(session)

    def restore_from_trash(self, trash_id: str):
        """从回收站恢复记录（允许留下悬空引用）"""
        with self._session(enforce_foreign_keys=False) as session:
            return trash.trash_restore(session, trash_id)

    def clean_expired_trash(self, retention_days: int = None, now: datetime = None) -> int:
        days = self.retention_days if retention_days is None else retention_days
        with self._session() as session:
            return trash.trash_expire(session, days, now=now)

    # --- 快照 ---

    def list_snapshots(self, chapter_id: str) -> List[SnapshotInfo]:
        with self._session() as session:
            return snapshots.list_snapshots(session, chapter_id)

    def restore_snapshot(self, snapshot_id: str) -> ChapterInfo:
        with self._session() as session:
            chapter_id = snapshots.restore_snapshot(session, snapshot_id)
            return ChapterInfo.from_row(session.get(Chapter, chapter_id))

    # --- 里程碑 ---

    def create_milestone(self, label: str) -> str:
        return milestones.create_milestone(self.config, self.storage_id, label)

    def list_milestones(self) -> List[MilestoneInfo]:
        return milestones.list_milestones(self.config, self.storage_id)

    def delete_milestone(self, filename: str) -> None:
        milestones.delete_milestone(self.config, self.storage_id, filename)
