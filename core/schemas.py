"""
业务对象定义 (Schemas)
定义服务层返回给调用方的强类型数据结构。
会话关闭后 ORM 对象不再可用，因此服务层统一转换为这些数据类再返回。
"""
import uuid
from dataclasses import dataclass, asdict, fields
from datetime import datetime, timezone
from typing import Optional


def new_id() -> str:
    return str(uuid.uuid4())


def as_utc(value: datetime) -> datetime:
    """不带时区的时间按 UTC 处理"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def now_iso(now: datetime = None) -> str:
    """UTC ISO-8601 时间戳；同一格式下字典序即时间顺序"""
    return as_utc(now or datetime.now(timezone.utc)).isoformat()


class _FromRow:
    @classmethod
    def from_row(cls, row):
        return cls(**{f.name: getattr(row, f.name) for f in fields(cls)})

    def to_dict(self):
        return asdict(self)


@dataclass
class BookInfo(_FromRow):
    id: str
    name: str
    author_name: str
    cover_path: Optional[str]
    storage_path: str
    created_at: str
    updated_at: str
    deleted_at: Optional[str] = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass
class VolumeInfo(_FromRow):
    id: str
    name: str
    sort_order: int
    created_at: str


@dataclass
class ChapterInfo(_FromRow):
    id: str
    volume_id: str
    name: str
    content: str
    l2_summary: Optional[str]
    l3_title: Optional[str]
    status: str
    word_count: int
    sort_order: int
    created_at: str
    updated_at: str


@dataclass
class EntityInfo(_FromRow):
    id: str
    name: str
    entity_type: str
    attributes_json: str
    status: str
    inbox: bool
    first_chapter_id: Optional[str]
    last_chapter_id: Optional[str]
    created_at: str
    updated_at: str


@dataclass
class SnapshotInfo(_FromRow):
    id: str
    chapter_id: str
    snapshot_content: str
    created_at: str


@dataclass
class TrashEntry(_FromRow):
    id: str
    original_table: str
    original_id: str
    data_json: str
    deleted_at: str
    deleted_by: str


@dataclass
class MilestoneInfo:
    """里程碑只存在于文件系统中，没有对应的数据库记录"""
    filename: str
    label: str
    captured_at: str # YYYYMMDD_HHMMSS
    size_bytes: int
    path: str
