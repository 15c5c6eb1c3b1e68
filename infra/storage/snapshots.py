"""
章节快照 (Rolling Snapshots)
每次正文更新都会生成一条快照，每个章节只保留最近 N 条（按创建时间，时间相同时按插入顺序）。
"""
import logging
from datetime import datetime
from typing import List

from sqlalchemy import literal_column, select

from core.exceptions import NotFoundError
from core.models import Chapter, Snapshot
from core.schemas import SnapshotInfo, new_id, now_iso

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_LIMIT = 20

# snapshots 表的主键是 TEXT，插入顺序由隐式 rowid 体现
_ROWID = literal_column("snapshots.rowid")


def count_words(text: str) -> int:
    """字数按字符计"""
    return len(text or "")


def _newest_first(query):
    return query.order_by(Snapshot.created_at.desc(), _ROWID.desc())


def record_snapshot(session, chapter_id: str, content: str, limit: int = DEFAULT_SNAPSHOT_LIMIT,
                    now: datetime = None) -> str:
    """
    为章节新增一条快照，并清理超出保留上限的旧快照。

    Returns:
        str: 新快照 ID。
    """
    if limit < 1:
        raise ValueError("快照保留上限必须 >= 1")

    snapshot_id = new_id()
    session.add(Snapshot(
        id=snapshot_id,
        chapter_id=chapter_id,
        snapshot_content=content,
        created_at=now_iso(now),
    ))
    session.flush()

    keep = _newest_first(select(Snapshot.id).where(Snapshot.chapter_id == chapter_id)).limit(limit)
    pruned = (
        session.query(Snapshot)
        .filter(Snapshot.chapter_id == chapter_id, Snapshot.id.not_in(keep))
        .delete(synchronize_session=False)
    )
    if pruned:
        logger.debug(f"章节 {chapter_id} 清理了 {pruned} 条旧快照（上限 {limit}）。")
    return snapshot_id


def list_snapshots(session, chapter_id: str) -> List[SnapshotInfo]:
    rows = _newest_first(session.query(Snapshot).filter(Snapshot.chapter_id == chapter_id)).all()
    return [SnapshotInfo.from_row(r) for r in rows]


def restore_snapshot(session, snapshot_id: str, now: datetime = None) -> str:
    """
    用快照内容覆盖章节正文，并重新计算字数。
    恢复本身不会为恢复前的内容再生成快照。

    Returns:
        str: 被恢复的章节 ID。
    """
    snapshot = session.get(Snapshot, snapshot_id)
    if snapshot is None:
        raise NotFoundError("snapshot", snapshot_id)

    chapter = session.get(Chapter, snapshot.chapter_id)
    if chapter is None:
        raise NotFoundError("chapters", snapshot.chapter_id)

    chapter.content = snapshot.snapshot_content
    chapter.word_count = count_words(snapshot.snapshot_content)
    chapter.updated_at = now_iso(now)
    session.flush()
    logger.info(f"章节 {chapter.id} 已从快照 {snapshot_id} 恢复。")
    return chapter.id
