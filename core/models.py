"""
核心数据模型 (Data Models)
定义两类彼此独立的 SQLite 文件的表结构：
- 目录册 catalog.db：所有书籍（项目）的元数据、全局设置、每日统计、跨书实体暂存架；
- 项目库 project.db：每本书自己的分卷、章节、设定集实体、时间线、伏笔、剧情弧、快照与回收站。
两套 metadata 互不共享，各自独立进行版本迁移。
"""
from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, Text, inspect
from sqlalchemy.orm import declarative_base


class _RowMixin:
    """提供整行序列化，供回收站捕获使用"""

    def to_dict(self) -> dict:
        return {attr.key: getattr(self, attr.key) for attr in inspect(self).mapper.column_attrs}


CatalogBase = declarative_base(cls=_RowMixin)
ProjectBase = declarative_base(cls=_RowMixin)


# ---------------------------------------------------------------------------
# catalog.db
# ---------------------------------------------------------------------------

class Book(CatalogBase):
    """
    书籍元数据表
    deleted_at 非空表示书籍已被软删除（位于回收站）。
    """
    __tablename__ = 'books'

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    author_name = Column(String, nullable=False, default='') # 作者笔名
    cover_path = Column(String, nullable=True) # 相对于书籍目录
    storage_path = Column(String, nullable=False, unique=True) # Projects/ 下的目录名
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)
    deleted_at = Column(String, nullable=True)


class Setting(CatalogBase):
    """全局设置表 (Key-Value)"""
    __tablename__ = 'settings'

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)


class DailyStat(CatalogBase):
    """每日写作统计"""
    __tablename__ = 'daily_stats'

    id = Column(String, primary_key=True)
    date = Column(String, nullable=False, unique=True) # YYYY-MM-DD
    word_count = Column(Integer, nullable=False, default=0)
    duration_seconds = Column(Integer, nullable=False, default=0)
    daily_goal = Column(Integer, nullable=False, default=0)


class EntityShelfItem(CatalogBase):
    """跨书实体暂存架（从一本书复制角色/道具到另一本书的中转站）"""
    __tablename__ = 'entity_shelf'

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    entity_type = Column(String, nullable=False)
    attributes_json = Column(Text, nullable=False, default='{}')
    source_book_name = Column(String, nullable=False, default='')
    created_at = Column(String, nullable=False)


# ---------------------------------------------------------------------------
# project.db
# ---------------------------------------------------------------------------

class Volume(ProjectBase):
    """分卷"""
    __tablename__ = 'volumes'

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(String, nullable=False)


class Chapter(ProjectBase):
    """
    章节表
    存储正文、AI 生成的摘要 (l2) 与标题 (l3) 及基础元数据。
    status: draft / complete / dirty
    """
    __tablename__ = 'chapters'

    id = Column(String, primary_key=True)
    volume_id = Column(String, ForeignKey('volumes.id'), nullable=False, index=True)
    name = Column(String, nullable=False)
    content = Column(Text, nullable=False, default='')
    l2_summary = Column(Text, nullable=True)
    l3_title = Column(String, nullable=True)
    status = Column(String, nullable=False, default='draft', index=True)
    word_count = Column(Integer, nullable=False, default=0)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class Entity(ProjectBase):
    """
    设定集实体（人物/道具/地点/势力）
    attributes_json 为自由格式属性；inbox 表示 AI 提取后待确认。
    """
    __tablename__ = 'entities'

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    entity_type = Column(String, nullable=False, index=True)
    attributes_json = Column(Text, nullable=False, default='{}')
    status = Column(String, nullable=False, default='alive') # alive / dead
    inbox = Column(Boolean, nullable=False, default=False, index=True)
    first_chapter_id = Column(String, nullable=True)
    last_chapter_id = Column(String, nullable=True)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class TimelineNode(ProjectBase):
    """时间线节点（实体在某章的行为标签）"""
    __tablename__ = 'timeline'

    id = Column(String, primary_key=True)
    entity_id = Column(String, ForeignKey('entities.id', ondelete='CASCADE'), nullable=False, index=True)
    chapter_id = Column(String, ForeignKey('chapters.id', ondelete='CASCADE'), nullable=False, index=True)
    event = Column(String, nullable=False)
    status_change = Column(String, nullable=True)
    created_at = Column(String, nullable=False)


class Foreshadow(ProjectBase):
    """伏笔追踪 (open / resolved)"""
    __tablename__ = 'foreshadows'

    id = Column(String, primary_key=True)
    description = Column(Text, nullable=False)
    plant_chapter_id = Column(String, ForeignKey('chapters.id', ondelete='SET NULL'), nullable=True)
    reap_chapter_id = Column(String, ForeignKey('chapters.id', ondelete='SET NULL'), nullable=True)
    status = Column(String, nullable=False, default='open', index=True)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class RagArc(ProjectBase):
    """剧情弧概要（每若干章一段）"""
    __tablename__ = 'rag_arcs'

    id = Column(String, primary_key=True)
    start_chapter_id = Column(String, ForeignKey('chapters.id', ondelete='CASCADE'), nullable=False)
    end_chapter_id = Column(String, ForeignKey('chapters.id', ondelete='CASCADE'), nullable=False)
    summary = Column(Text, nullable=False)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class Snapshot(ProjectBase):
    """章节快照（每次正文更新时创建，滚动保留）"""
    __tablename__ = 'snapshots'

    id = Column(String, primary_key=True)
    chapter_id = Column(String, ForeignKey('chapters.id', ondelete='CASCADE'), nullable=False, index=True)
    snapshot_content = Column(Text, nullable=False)
    created_at = Column(String, nullable=False)


class TrashItem(ProjectBase):
    """
    回收站条目
    data_json 保存原始记录的完整副本，可独立恢复。
    deleted_by: user / ai
    """
    __tablename__ = 'trash'

    id = Column(String, primary_key=True)
    original_table = Column(String, nullable=False)
    original_id = Column(String, nullable=False)
    data_json = Column(Text, nullable=False)
    deleted_at = Column(String, nullable=False, index=True)
    deleted_by = Column(String, nullable=False, default='user')
