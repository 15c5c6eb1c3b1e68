"""
路径解析 (Path Resolver)
磁盘布局完全由配置中的 data_dir 和项目的存储目录名决定：

    {data_dir}/AppData/Library/catalog.db
    {data_dir}/AppData/Projects/{storage_id}/project.db
    {data_dir}/AppData/Projects/{storage_id}/.milestones/
"""
import os

from core.exceptions import StorageIOError

DATA_ROOT_NAME = "AppData"
LIBRARY_DIR_NAME = "Library"
PROJECTS_DIR_NAME = "Projects"
CATALOG_DB_NAME = "catalog.db"
PROJECT_DB_NAME = "project.db"
MILESTONES_DIR_NAME = ".milestones"


def data_root_for(data_dir: str) -> str:
    return os.path.join(data_dir, DATA_ROOT_NAME)


def data_root(config) -> str:
    return data_root_for(config.data_dir)


def catalog_db_path(config) -> str:
    return os.path.join(data_root(config), LIBRARY_DIR_NAME, CATALOG_DB_NAME)


def projects_root(config) -> str:
    return os.path.join(data_root(config), PROJECTS_DIR_NAME)


def project_dir(config, storage_id: str) -> str:
    return os.path.join(projects_root(config), storage_id)


def project_db_path(config, storage_id: str) -> str:
    return os.path.join(project_dir(config, storage_id), PROJECT_DB_NAME)


def milestones_dir(config, storage_id: str) -> str:
    return os.path.join(project_dir(config, storage_id), MILESTONES_DIR_NAME)


def ensure_directories(config):
    """确保数据根目录、Library 和 Projects 目录存在"""
    for path in (data_root(config), os.path.dirname(catalog_db_path(config)), projects_root(config)):
        try:
            os.makedirs(path, exist_ok=True)
        except OSError as e:
            raise StorageIOError(f"创建目录失败: {e}", path) from e
