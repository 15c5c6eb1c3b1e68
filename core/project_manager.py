"""
项目核心管理模块 (Core Project Manager)
负责项目目录的生命周期：命名、创建（含 project.db 初始化）与彻底删除。
每个项目对应 Projects/ 下的一个文件夹。
"""
import os
import re
import shutil
import logging

from config import paths
from core.exceptions import StorageIOError
from infra.storage import sql_db

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


class ProjectManager:
    """
    统一管理项目目录的生命周期。
    目录名由书名清洗得到，project.db 在目录创建后立即完成初始化。
    """

    @staticmethod
    def sanitize_name(name: str, fallback: str = "unnamed_book") -> str:
        """去除文件名中不安全的字符"""
        sanitized = _UNSAFE_CHARS.sub("_", (name or "").strip())
        return sanitized or fallback

    @staticmethod
    def unique_storage_id(config, base_name: str) -> str:
        """确保目录名唯一（如果已存在则加数字后缀 _2, _3 ...）"""
        root = paths.projects_root(config)
        candidate = base_name
        counter = 1
        while os.path.exists(os.path.join(root, candidate)):
            counter += 1
            candidate = f"{base_name}_{counter}"
        return candidate

    @staticmethod
    def init_project_structure(config, storage_id: str):
        """
        创建项目目录并初始化 project.db。

        Args:
            config (AppConfig): 应用配置。
            storage_id (str): 目录名。
        """
        project_root = paths.project_dir(config, storage_id)
        try:
            os.makedirs(project_root, exist_ok=True)
        except OSError as e:
            raise StorageIOError(f"创建书籍目录失败: {e}", project_root) from e

        sql_db.open_project(config, storage_id).dispose()
        logger.info(f"项目目录 '{storage_id}' 已在 '{project_root}' 初始化。")

    @staticmethod
    def is_valid_project(config, storage_id: str) -> bool:
        """检查指定目录是否包含项目数据库"""
        return os.path.isfile(paths.project_db_path(config, storage_id))

    @staticmethod
    def remove_project_dir(config, storage_id: str) -> bool:
        """
        删除整个项目目录（不可恢复）。

        Returns:
            bool: 目录存在并已删除时为 True，目录本就不存在时为 False。
        """
        project_root = paths.project_dir(config, storage_id)
        if not os.path.exists(project_root):
            logger.warning(f"项目目录不存在，无需删除: {project_root}")
            return False
        try:
            shutil.rmtree(project_root)
        except OSError as e:
            logger.error(f"删除项目目录失败 {project_root}: {e}", exc_info=True)
            raise StorageIOError(f"删除项目目录失败: {e}", project_root) from e
        logger.info(f"项目目录已删除: {project_root}")
        return True
