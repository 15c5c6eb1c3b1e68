"""
版本化存储 (Versioned Store)
目录册和项目库共用同一套迁移算法，但各自拥有独立的 schema 与 PRAGMA user_version 计数器。
每种物理文件对应一个 VersionedStore 实例，迁移表互不混用。
"""
import logging
from typing import Callable, Dict, Iterable, Optional

from sqlalchemy import MetaData
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from core.exceptions import DatabaseError, MigrationError

logger = logging.getLogger(__name__)

Migration = Callable[[Connection], None]


class VersionedStore:
    """
    Args:
        name: 数据库名称（用于日志与错误信息）。
        metadata: 该文件的完整表结构，用于首次建库。
        current_version: 程序内置的 schema 版本号。
        migrations: {源版本: 迁移函数}，迁移函数把数据库从源版本升级到源版本 + 1，
            并且对处于源版本的数据库重复执行是安全的。
        seed: 首次建库后写入默认数据的函数。
        pragmas: 每次打开时最后执行的 PRAGMA。
    """

    def __init__(self, name: str, metadata: MetaData, current_version: int,
                 migrations: Optional[Dict[int, Migration]] = None,
                 seed: Optional[Migration] = None,
                 pragmas: Iterable[str] = ("journal_mode=WAL", "foreign_keys=ON")):
        if current_version < 1:
            raise ValueError("current_version 必须 >= 1")
        self.name = name
        self.metadata = metadata
        self.current_version = current_version
        self.migrations = dict(migrations or {})
        self.seed = seed
        self.pragmas = tuple(pragmas)

    def __repr__(self):
        return f"VersionedStore({self.name!r}, v{self.current_version})"

    @staticmethod
    def get_version(conn: Connection) -> int:
        return int(conn.exec_driver_sql("PRAGMA user_version").scalar() or 0)

    @staticmethod
    def set_version(conn: Connection, version: int):
        # PRAGMA 不支持参数绑定
        conn.exec_driver_sql(f"PRAGMA user_version = {int(version)}")

    def missing_steps(self, from_version: int):
        return [v for v in range(from_version, self.current_version) if v not in self.migrations]

    def ensure_current(self, engine: Engine) -> int:
        """
        将数据库升级到当前版本，返回打开前的版本号。

        Raises:
            MigrationError: 版本高于程序版本，或迁移链中存在缺口。此时数据库保持原样。
            DatabaseError: SQLite 层面的错误。
        """
        try:
            with engine.connect() as conn:
                version = self.get_version(conn)

                if version > self.current_version:
                    raise MigrationError(
                        self.name, version, self.current_version,
                        f"{self.name} 版本 {version} 高于程序支持的版本 {self.current_version}"
                    )

                if version == 0:
                    self._provision(conn)
                elif version < self.current_version:
                    self._migrate(conn, version)

                for pragma in self.pragmas:
                    conn.exec_driver_sql(f"PRAGMA {pragma}")
                conn.commit()
                return version
        except SQLAlchemyError as e:
            logger.error(f"初始化 {self.name} 失败: {e}", exc_info=True)
            raise DatabaseError(f"初始化 {self.name} 失败: {e}") from e

    def _provision(self, conn: Connection):
        self.metadata.create_all(conn)
        if self.seed:
            self.seed(conn)
        self.set_version(conn, self.current_version)
        conn.commit()
        logger.info(f"{self.name} 已创建，schema 版本 {self.current_version}。")

    def _migrate(self, conn: Connection, from_version: int):
        # 先检查整条迁移链，存在缺口时不做任何写入
        missing = self.missing_steps(from_version)
        if missing:
            logger.error(f"{self.name} 版本 {missing[0]} 无对应迁移脚本，拒绝打开。")
            raise MigrationError(self.name, missing[0], self.current_version)

        for version in range(from_version, self.current_version):
            try:
                self.migrations[version](conn)
                self.set_version(conn, version + 1)
                conn.commit()
            except SQLAlchemyError:
                conn.rollback()
                raise
            logger.info(f"{self.name} 已迁移 v{version} → v{version + 1}")
