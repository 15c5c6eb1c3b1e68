"""
迁移表 (Migrations)
目录册与项目库各自的版本号、迁移函数与默认数据。

历史记录：
- catalog v1 → v2：books 表增加 deleted_at 列（书籍软删除 / 回收站）。
- project 当前为 v1，尚无迁移。
"""
import logging

from sqlalchemy import inspect, select
from sqlalchemy.engine import Connection

from core.models import CatalogBase, ProjectBase, Setting
from infra.storage.versioning import VersionedStore

logger = logging.getLogger(__name__)

CATALOG_VERSION = 2
PROJECT_VERSION = 1

DEFAULT_SETTINGS = {
    "theme": "system",
    "font_size": "16",
    "auto_save_interval": "30",
    "compression_mode": "auto",
    "snapshot_limit": "20",
    "trash_retention_days": "30",
    "daily_goal": "0",
}


def seed_catalog_settings(conn: Connection):
    """写入默认设置，已存在的键保持不变"""
    existing = set(conn.execute(select(Setting.__table__.c.key)).scalars())
    rows = [{"key": k, "value": v} for k, v in DEFAULT_SETTINGS.items() if k not in existing]
    if rows:
        conn.execute(Setting.__table__.insert(), rows)


def _catalog_v1_to_v2(conn: Connection):
    """books 表增加 deleted_at 列"""
    columns = {c["name"] for c in inspect(conn).get_columns("books")}
    if "deleted_at" not in columns:
        conn.exec_driver_sql("ALTER TABLE books ADD COLUMN deleted_at TEXT")


CATALOG_STORE = VersionedStore(
    "catalog.db",
    CatalogBase.metadata,
    CATALOG_VERSION,
    migrations={1: _catalog_v1_to_v2},
    seed=seed_catalog_settings,
)

PROJECT_STORE = VersionedStore(
    "project.db",
    ProjectBase.metadata,
    PROJECT_VERSION,
    migrations={},
)
