"""
SQLite 数据库管理器 (SQL Store)
负责打开（必要时创建）目录册 catalog.db 与各项目的 project.db，并在交付前完成 schema 迁移。
每次逻辑操作都使用新的连接（NullPool），不持有长期共享的句柄。
"""
import os
import sqlite3
import logging
from contextlib import contextmanager
from functools import partial

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool

from config import paths
from core.exceptions import DatabaseError, FolioError, StorageIOError
from infra.storage.migrations import CATALOG_STORE, PROJECT_STORE
from infra.storage.versioning import VersionedStore

logger = logging.getLogger(__name__)


def _set_connection_pragmas(dbapi_conn, _record, enforce_foreign_keys: bool = True):
    # foreign_keys 是连接级设置，每个新连接都要重新开启
    cursor = dbapi_conn.cursor()
    cursor.execute(f"PRAGMA foreign_keys={'ON' if enforce_foreign_keys else 'OFF'}")
    cursor.close()


def create_sqlite_engine(db_path: str, enforce_foreign_keys: bool = True) -> Engine:
    engine = create_engine(f"sqlite:///{db_path}", poolclass=NullPool)
    event.listen(engine, "connect", partial(_set_connection_pragmas, enforce_foreign_keys=enforce_foreign_keys))
    return engine


def open_database(db_path: str, store: VersionedStore, enforce_foreign_keys: bool = True) -> Engine:
    """
    打开数据库文件并迁移到当前版本。

    Args:
        db_path (str): 数据库文件路径，父目录不存在时自动创建。
        store (VersionedStore): 该文件对应的版本化存储。
        enforce_foreign_keys (bool): 是否在连接上开启外键约束。

    Returns:
        Engine: 可直接使用的引擎，调用方负责 dispose。
    """
    parent = os.path.dirname(db_path)
    try:
        os.makedirs(parent, exist_ok=True)
    except OSError as e:
        raise StorageIOError(f"创建数据库目录失败: {e}", parent) from e

    engine = create_sqlite_engine(db_path, enforce_foreign_keys)
    try:
        store.ensure_current(engine)
    except FolioError:
        engine.dispose()
        raise
    return engine


def open_catalog(config) -> Engine:
    """打开目录册 catalog.db（首次运行时创建目录结构）"""
    paths.ensure_directories(config)
    return open_database(paths.catalog_db_path(config), CATALOG_STORE)


def open_project(config, storage_id: str, enforce_foreign_keys: bool = True) -> Engine:
    """打开某本书的 project.db（如果不存在则创建并初始化）"""
    return open_database(paths.project_db_path(config, storage_id), PROJECT_STORE, enforce_foreign_keys)


@contextmanager
def session_scope(engine: Engine):
    """
    提供一个事务性的会话：正常结束时提交，出现任何异常都回滚。
    SQLAlchemy 异常统一转换为 DatabaseError。
    """
    session: Session = sessionmaker(bind=engine)()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"数据库操作失败: {e}", exc_info=True)
        raise DatabaseError(f"数据库操作失败: {e}") from e
    except BaseException:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def catalog_session(config):
    """打开目录册并提供一次事务性会话"""
    engine = open_catalog(config)
    try:
        with session_scope(engine) as session:
            yield session
    finally:
        engine.dispose()


@contextmanager
def project_session(config, storage_id: str, enforce_foreign_keys: bool = True):
    """打开项目库并提供一次事务性会话"""
    engine = open_project(config, storage_id, enforce_foreign_keys)
    try:
        with session_scope(engine) as session:
            yield session
    finally:
        engine.dispose()


def backup_project(config, storage_id: str, target_path: str):
    """
    用 SQLite 在线备份接口把 project.db 复制到 target_path。
    备份读取的是一个一致的时间点：已提交但仍在 -wal 文件中的修改也会包含在内，
    即使有其他读者持有事务也不受影响。副本改为 DELETE 日志模式，作为单个独立文件保存。
    """
    engine = open_project(config, storage_id)
    try:
        raw = engine.raw_connection()
        try:
            target = sqlite3.connect(target_path)
            try:
                raw.driver_connection.backup(target)
                target.execute("PRAGMA journal_mode=DELETE")
            finally:
                target.close()
        finally:
            raw.close()
    except (SQLAlchemyError, sqlite3.Error) as e:
        logger.error(f"备份项目数据库失败: {e}", exc_info=True)
        raise DatabaseError(f"备份项目数据库失败: {e}") from e
    finally:
        engine.dispose()
