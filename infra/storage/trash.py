"""
回收站 (Trash)
删除分卷 / 章节 / 设定集实体时，先把整行序列化为自描述的 JSON 存入 trash 表，再删除原记录。
两步在同一个事务中完成，任何一步失败都会整体回滚。

恢复时按来源类型分派到对应的重建函数，以 insert-or-replace 的方式写回原表。
被引用的目标（如章节所属的分卷）可能已经不存在，恢复仍然成功，只是留下悬空引用。
"""
import json
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Tuple

from core.exceptions import NotFoundError, TrashError
from core.models import Chapter, Entity, TrashItem, Volume
from core.schemas import TrashEntry, as_utc, new_id, now_iso

logger = logging.getLogger(__name__)

DELETED_BY_VALUES = ("user", "ai")


class TrashKind(str, Enum):
    """可进入回收站的来源类型，值为原始表名"""
    CHAPTER = "chapters"
    VOLUME = "volumes"
    ENTITY = "entities"

    @property
    def model(self):
        return _MODELS[self]

    def reconstruct(self, data: dict):
        """把序列化数据还原为 ORM 对象"""
        try:
            return _RECONSTRUCTORS[self](data)
        except (KeyError, TypeError, ValueError) as e:
            raise TrashError(f"{self.value} 回收站数据不完整: {e}") from e


def _rebuild_chapter(data: dict) -> Chapter:
    return Chapter(
        id=data["id"],
        volume_id=data.get("volume_id") or "",
        name=data.get("name") or "",
        content=data.get("content") or "",
        l2_summary=data.get("l2_summary"),
        l3_title=data.get("l3_title"),
        status=data.get("status") or "draft",
        word_count=int(data.get("word_count") or 0),
        sort_order=int(data.get("sort_order") or 0),
        created_at=data.get("created_at") or "",
        updated_at=data.get("updated_at") or "",
    )


def _rebuild_volume(data: dict) -> Volume:
    return Volume(
        id=data["id"],
        name=data.get("name") or "",
        sort_order=int(data.get("sort_order") or 0),
        created_at=data.get("created_at") or "",
    )


def _rebuild_entity(data: dict) -> Entity:
    return Entity(
        id=data["id"],
        name=data.get("name") or "",
        entity_type=data.get("entity_type") or "",
        attributes_json=data.get("attributes_json") or "{}",
        status=data.get("status") or "alive",
        inbox=bool(data.get("inbox") or False),
        first_chapter_id=data.get("first_chapter_id"),
        last_chapter_id=data.get("last_chapter_id"),
        created_at=data.get("created_at") or "",
        updated_at=data.get("updated_at") or "",
    )


_MODELS = {
    TrashKind.CHAPTER: Chapter,
    TrashKind.VOLUME: Volume,
    TrashKind.ENTITY: Entity,
}

_RECONSTRUCTORS = {
    TrashKind.CHAPTER: _rebuild_chapter,
    TrashKind.VOLUME: _rebuild_volume,
    TrashKind.ENTITY: _rebuild_entity,
}

if set(_MODELS) != set(TrashKind) or set(_RECONSTRUCTORS) != set(TrashKind):
    raise RuntimeError("每种 TrashKind 都必须注册模型与重建函数")


def parse_kind(value) -> TrashKind:
    try:
        return TrashKind(value)
    except ValueError:
        raise TrashError(f"不支持的回收站类型: {value}") from None


def encode_payload(kind: TrashKind, row) -> str:
    return json.dumps({"kind": kind.value, "data": row.to_dict()}, ensure_ascii=False)


def decode_payload(item: TrashItem) -> Tuple[TrashKind, dict]:
    """解析回收站记录，返回 (来源类型, 原始行数据)"""
    kind = parse_kind(item.original_table)
    try:
        payload = json.loads(item.data_json)
    except (TypeError, ValueError) as e:
        raise TrashError(f"解析回收站数据失败 ({item.id}): {e}") from e

    if not isinstance(payload, dict) or not isinstance(payload.get("data"), dict):
        raise TrashError(f"回收站数据格式错误 ({item.id})")
    if payload.get("kind") != kind.value:
        raise TrashError(f"回收站数据类型不一致 ({item.id}): {payload.get('kind')} != {kind.value}")
    return kind, payload["data"]


def _capture_one(session, kind: TrashKind, record_id: str, deleted_by: str, deleted_at: str) -> str:
    row = session.get(kind.model, record_id)
    if row is None:
        raise NotFoundError(kind.value, record_id)

    trash_id = new_id()
    session.add(TrashItem(
        id=trash_id,
        original_table=kind.value,
        original_id=record_id,
        data_json=encode_payload(kind, row),
        deleted_at=deleted_at,
        deleted_by=deleted_by,
    ))
    session.delete(row)
    session.flush()
    return trash_id


def trash_capture(session, kind, record_id: str, deleted_by: str = "user", now: datetime = None) -> str:
    """
    将一条记录移入回收站。
    删除分卷时，其下所有章节会先各自生成一条回收站记录。

    Args:
        session: 项目库会话（调用方负责提交，失败时整体回滚）。
        kind: TrashKind 或其表名字符串。
        record_id (str): 原记录 ID。
        deleted_by (str): user / ai。

    Returns:
        str: 原记录本身对应的回收站记录 ID。
    """
    kind = parse_kind(kind)
    if deleted_by not in DELETED_BY_VALUES:
        raise ValueError(f"deleted_by 必须是 {DELETED_BY_VALUES} 之一: {deleted_by}")
    deleted_at = now_iso(now)

    if kind is TrashKind.VOLUME:
        if session.get(Volume, record_id) is None:
            raise NotFoundError(kind.value, record_id)
        chapter_ids = [cid for (cid,) in session.query(Chapter.id).filter_by(volume_id=record_id).all()]
        for chapter_id in chapter_ids:
            _capture_one(session, TrashKind.CHAPTER, chapter_id, deleted_by, deleted_at)
        if chapter_ids:
            logger.info(f"分卷 {record_id} 下的 {len(chapter_ids)} 个章节已移入回收站。")

    trash_id = _capture_one(session, kind, record_id, deleted_by, deleted_at)
    logger.info(f"{kind.value} 记录 {record_id} 已移入回收站 (trash_id={trash_id}, by={deleted_by})")
    return trash_id


def _warn_dangling(session, kind: TrashKind, row):
    if kind is TrashKind.CHAPTER and session.get(Volume, row.volume_id) is None:
        logger.warning(f"恢复的章节 {row.id} 引用的分卷 {row.volume_id} 已不存在。")


def trash_restore(session, trash_id: str) -> Tuple[TrashKind, str]:
    """
    从回收站恢复一条记录，并删除该回收站记录。
    会话所在的引擎应关闭外键约束，以便写入悬空引用。

    Returns:
        (TrashKind, str): 来源类型与恢复的原记录 ID。
    """
    item = session.get(TrashItem, trash_id)
    if item is None:
        raise NotFoundError("trash", trash_id)

    kind, data = decode_payload(item)
    row = kind.reconstruct(data)
    session.merge(row)
    session.delete(item)
    session.flush()

    _warn_dangling(session, kind, row)
    logger.info(f"已从回收站恢复 {kind.value} 记录 {row.id}")
    return kind, row.id


def parse_timestamp(value: str) -> datetime:
    return as_utc(datetime.fromisoformat(value))


def trash_expire(session, retention_days: int, now: datetime = None) -> int:
    """
    删除早于 (当前时间 - retention_days) 的回收站记录。
    时间戳无法解析的记录会被跳过并记录警告，不会中断整个清理过程。

    Returns:
        int: 删除的记录数。
    """
    if retention_days < 0:
        raise ValueError("retention_days 不能为负数")
    cutoff = as_utc(now or datetime.now(timezone.utc)) - timedelta(days=retention_days)

    removed = 0
    for item in session.query(TrashItem).all():
        try:
            deleted_at = parse_timestamp(item.deleted_at)
        except (TypeError, ValueError):
            logger.warning(f"回收站记录 {item.id} 的删除时间无法解析: {item.deleted_at!r}，已跳过。")
            continue
        if deleted_at < cutoff:
            session.delete(item)
            removed += 1

    session.flush()
    logger.info(f"回收站清理完成：删除 {removed} 条超过 {retention_days} 天的记录。")
    return removed


def list_trash(session) -> List[TrashEntry]:
    items = session.query(TrashItem).order_by(TrashItem.deleted_at.desc()).all()
    return [TrashEntry.from_row(item) for item in items]
