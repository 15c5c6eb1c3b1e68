"""
书库业务服务 (Library Service)
管理目录册 catalog.db 中的书籍记录、全局设置，以及数据根目录的迁移。
配置在构造时注入；修改数据根目录后，新的路径只对之后发起的操作生效。
"""
import logging
from typing import Dict, List, Optional

from config import loader
from config.loader import AppConfig
from core.exceptions import FolioError, NotFoundError, PartialDeleteError, StorageIOError
from core.models import Book, Setting
from core.project_manager import ProjectManager
from core.schemas import BookInfo, new_id, now_iso
from infra.storage import relocation, sql_db
from infra.storage.migrations import DEFAULT_SETTINGS
from infra.storage.snapshots import DEFAULT_SNAPSHOT_LIMIT
from services.manuscript_service import DEFAULT_RETENTION_DAYS, ManuscriptService

logger = logging.getLogger(__name__)


class LibraryService:
    def __init__(self, config: AppConfig = None):
        self.config = config or loader.load_config()

    def reload_config(self) -> AppConfig:
        """重新读取配置文件（显式的配置刷新点）"""
        self.config = loader.load_config()
        return self.config

    # --- 书籍 ---

    def create_book(self, name: str, author_name: str = "") -> BookInfo:
        """
        创建新书籍：创建书籍目录 + 初始化 project.db + 在目录册插入记录。
        目录册写入失败时会删除刚创建的目录。
        """
        base_name = ProjectManager.sanitize_name(name)
        sql_db.open_catalog(self.config).dispose()
        storage_id = ProjectManager.unique_storage_id(self.config, base_name)
        ProjectManager.init_project_structure(self.config, storage_id)

        now = now_iso()
        book = Book(
            id=new_id(), name=name, author_name=author_name or "", cover_path=None,
            storage_path=storage_id, created_at=now, updated_at=now, deleted_at=None,
        )
        try:
            with sql_db.catalog_session(self.config) as session:
                session.add(book)
                session.flush()
                info = BookInfo.from_row(book)
        except FolioError:
            logger.error(f"插入书籍记录失败，清理目录 '{storage_id}'。")
            ProjectManager.remove_project_dir(self.config, storage_id)
            raise

        logger.info(f"书籍 '{name}' 已创建 (id={info.id}, 目录={storage_id})")
        return info

    def _query_books(self, deleted: bool) -> List[BookInfo]:
        with sql_db.catalog_session(self.config) as session:
            query = session.query(Book)
            if deleted:
                query = query.filter(Book.deleted_at.isnot(None)).order_by(Book.deleted_at.desc())
            else:
                query = query.filter(Book.deleted_at.is_(None)).order_by(Book.created_at.desc())
            return [BookInfo.from_row(b) for b in query.all()]

    def list_books(self) -> List[BookInfo]:
        """获取未删除的书籍，最新创建的在前"""
        return self._query_books(deleted=False)

    def list_deleted_books(self) -> List[BookInfo]:
        """获取已软删除（回收站中）的书籍"""
        return self._query_books(deleted=True)

    def get_book(self, book_id: str) -> BookInfo:
        with sql_db.catalog_session(self.config) as session:
            book = session.get(Book, book_id)
            if book is None:
                raise NotFoundError("books", book_id)
            return BookInfo.from_row(book)

    def update_book(self, book_id: str, name: str = None, author_name: str = None,
                    cover_path: str = None) -> BookInfo:
        """更新书籍信息（书名、作者笔名、封面），目录名不随书名变化"""
        with sql_db.catalog_session(self.config) as session:
            book = session.get(Book, book_id)
            if book is None:
                raise NotFoundError("books", book_id)
            if name is not None:
                book.name = name
            if author_name is not None:
                book.author_name = author_name
            if cover_path is not None:
                book.cover_path = cover_path
            book.updated_at = now_iso()
            session.flush()
            return BookInfo.from_row(book)

    def _set_deleted_at(self, book_id: str, value: Optional[str]) -> BookInfo:
        with sql_db.catalog_session(self.config) as session:
            book = session.get(Book, book_id)
            if book is None:
                raise NotFoundError("books", book_id)
            book.deleted_at = value
            session.flush()
            return BookInfo.from_row(book)

    def delete_book(self, book_id: str) -> BookInfo:
        """软删除书籍（仅标记 deleted_at，文件保持不变）"""
        info = self._set_deleted_at(book_id, now_iso())
        logger.info(f"书籍 '{info.name}' 已移入回收站。")
        return info

    def restore_book(self, book_id: str) -> BookInfo:
        info = self._set_deleted_at(book_id, None)
        logger.info(f"书籍 '{info.name}' 已从回收站恢复。")
        return info

    def permanently_delete_book(self, book_id: str) -> None:
        """
        彻底删除书籍：先删除目录册记录，再删除整个书籍目录。
        两步不在同一事务中。目录删除失败时记录已经不存在，抛出 PartialDeleteError（留下孤立文件）。
        """
        with sql_db.catalog_session(self.config) as session:
            book = session.get(Book, book_id)
            if book is None:
                raise NotFoundError("books", book_id)
            storage_id = book.storage_path
            name = book.name
            session.delete(book)

        logger.info(f"书籍 '{name}' 的目录册记录已删除，开始删除目录 '{storage_id}'。")
        try:
            ProjectManager.remove_project_dir(self.config, storage_id)
        except StorageIOError as e:
            raise PartialDeleteError(f"书籍记录已删除，但目录删除失败: {e}", e.path) from e

    # --- 设置 ---

    def get_settings(self) -> Dict[str, str]:
        with sql_db.catalog_session(self.config) as session:
            return {s.key: s.value for s in session.query(Setting).order_by(Setting.key).all()}

    def get_setting(self, key: str, default: str = None) -> Optional[str]:
        with sql_db.catalog_session(self.config) as session:
            setting = session.get(Setting, key)
            return setting.value if setting else default

    def set_setting(self, key: str, value) -> None:
        """更新设置（不存在则创建）"""
        with sql_db.catalog_session(self.config) as session:
            session.merge(Setting(key=key, value=str(value)))

    def _int_setting(self, key: str, default: int) -> int:
        raw = self.get_setting(key, DEFAULT_SETTINGS.get(key))
        try:
            return int(raw)
        except (TypeError, ValueError):
            logger.warning(f"设置 {key} 的值无效: {raw!r}，使用默认值 {default}。")
            return default

    def snapshot_limit(self) -> int:
        return max(1, self._int_setting("snapshot_limit", DEFAULT_SNAPSHOT_LIMIT))

    def trash_retention_days(self) -> int:
        return max(0, self._int_setting("trash_retention_days", DEFAULT_RETENTION_DAYS))

    # --- 项目 ---

    def open_manuscript(self, book_id: str) -> ManuscriptService:
        """获取某本书的稿件服务，快照上限与回收站保留天数取自全局设置"""
        book = self.get_book(book_id)
        return ManuscriptService(
            self.config,
            book.storage_path,
            snapshot_limit=self.snapshot_limit(),
            retention_days=self.trash_retention_days(),
        )

    # --- 数据目录 ---

    def get_data_dir(self) -> str:
        return self.config.data_dir

    def change_data_root(self, new_dir: str) -> bool:
        """
        将整个数据目录迁移到 new_dir，成功后才保存新配置。

        Returns:
            bool: 是否实际移动了文件。
        """
        moved = relocation.relocate(self.config.data_dir, new_dir)
        new_config = AppConfig(data_dir=new_dir)
        loader.save_config(new_config)
        self.config = new_config
        return moved
