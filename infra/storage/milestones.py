"""
里程碑 (Milestones)
通过 SQLite 在线备份把 project.db 完整复制到项目目录下的 .milestones/ 中，文件名为 {label}_{YYYYMMDD_HHMMSS}.db。
里程碑只存在于文件系统，没有数据库记录，也不会被自动清理。
"""
import os
import re
import logging
from datetime import datetime, timezone
from typing import List

from config import paths
from core.exceptions import FolioError, StorageIOError
from core.project_manager import ProjectManager
from core.schemas import MilestoneInfo
from infra.storage import sql_db

logger = logging.getLogger(__name__)

MILESTONE_EXT = ".db"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

# label_YYYYMMDD_HHMMSS[_n].db
_FILENAME_PATTERN = re.compile(r"^(?P<label>.+)_(?P<ts>\d{8}_\d{6})(?:_(?P<n>\d+))?\.db$")


def milestone_filename(label: str, now: datetime, counter: int = 1) -> str:
    suffix = f"_{counter}" if counter > 1 else ""
    return f"{label}_{now.strftime(TIMESTAMP_FORMAT)}{suffix}{MILESTONE_EXT}"


def create_milestone(config, storage_id: str, label: str, now: datetime = None) -> str:
    """
    为项目创建里程碑（project.db 某一时刻的完整副本）。
    同一秒内同名的里程碑会依次加上 _2, _3 ... 后缀，已有文件不会被覆盖。

    Returns:
        str: 里程碑文件名。
    """
    source = paths.project_db_path(config, storage_id)
    if not os.path.isfile(source):
        raise StorageIOError("项目数据库不存在", source)

    target_dir = paths.milestones_dir(config, storage_id)
    try:
        os.makedirs(target_dir, exist_ok=True)
    except OSError as e:
        raise StorageIOError(f"创建里程碑目录失败: {e}", target_dir) from e

    safe_label = ProjectManager.sanitize_name(label, fallback="milestone")
    now = now or datetime.now(timezone.utc)
    filename, target = _reserve_target(target_dir, safe_label, now)

    try:
        sql_db.backup_project(config, storage_id, target)
    except FolioError:
        os.remove(target)
        raise
    logger.info(f"项目 '{storage_id}' 已创建里程碑: {filename}")
    return filename


def _reserve_target(target_dir: str, label: str, now: datetime):
    """以 'x' 模式占用一个尚不存在的文件名，返回 (文件名, 完整路径)"""
    counter = 1
    while True:
        filename = milestone_filename(label, now, counter)
        target = os.path.join(target_dir, filename)
        try:
            with open(target, "xb"):
                pass
            return filename, target
        except FileExistsError:
            counter += 1
        except OSError as e:
            logger.error(f"创建里程碑失败: {e}", exc_info=True)
            raise StorageIOError(f"创建里程碑文件失败: {e}", target) from e


def list_milestones(config, storage_id: str) -> List[MilestoneInfo]:
    """列出项目的全部里程碑，最新的在前"""
    target_dir = paths.milestones_dir(config, storage_id)
    if not os.path.isdir(target_dir):
        return []

    items = []
    for name in os.listdir(target_dir):
        match = _FILENAME_PATTERN.match(name)
        if not match:
            continue
        full_path = os.path.join(target_dir, name)
        items.append((
            match.group("ts"),
            int(match.group("n") or 1),
            MilestoneInfo(
                filename=name,
                label=match.group("label"),
                captured_at=match.group("ts"),
                size_bytes=os.path.getsize(full_path),
                path=full_path,
            ),
        ))
    items.sort(key=lambda x: (x[0], x[1]), reverse=True)
    return [info for _, _, info in items]


def delete_milestone(config, storage_id: str, filename: str) -> None:
    """手动删除一个里程碑文件"""
    target_dir = paths.milestones_dir(config, storage_id)
    if os.path.basename(filename) != filename or not _FILENAME_PATTERN.match(filename):
        raise ValueError(f"非法的里程碑文件名: {filename}")

    target = os.path.join(target_dir, filename)
    try:
        os.remove(target)
    except FileNotFoundError as e:
        raise StorageIOError("里程碑不存在", target) from e
    except OSError as e:
        raise StorageIOError(f"删除里程碑失败: {e}", target) from e
    logger.info(f"里程碑已删除: {target}")
