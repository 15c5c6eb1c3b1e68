"""
数据目录迁移 (Data Root Relocation)
把 {old_root}/AppData 整体移动到 {new_root}/AppData。
优先使用原子的 rename；跨磁盘时退化为“递归复制 + 删除原目录”。

复制过程不是崩溃原子的，目标目录中的标记文件记录了进行到哪一步，重试时据此继续：
  .relocating        复制尚未完成，目标目录是半成品，清理后重新复制；
  .pending-cleanup   复制已经完成，只差删除原目录。
"""
import errno
import os
import shutil
import logging

from config.paths import data_root_for
from core.exceptions import RelocationError, StorageIOError

logger = logging.getLogger(__name__)

RESUME_MARKER = ".relocating"
CLEANUP_MARKER = ".pending-cleanup"


def _same_path(a: str, b: str) -> bool:
    return os.path.normcase(os.path.realpath(a)) == os.path.normcase(os.path.realpath(b))


def _has_marker(path: str, marker: str) -> bool:
    return os.path.isfile(os.path.join(path, marker))


def _write_marker(path: str, marker: str, source: str):
    with open(os.path.join(path, marker), "w", encoding="utf-8") as f:
        f.write(source)


def _finish_cleanup(source: str, destination: str):
    """删除原目录，然后移除 .pending-cleanup 标记"""
    if os.path.exists(source):
        try:
            shutil.rmtree(source)
        except OSError as e:
            raise StorageIOError(f"复制已完成，但删除原数据目录失败: {e}", source) from e
    try:
        os.remove(os.path.join(destination, CLEANUP_MARKER))
    except OSError as e:
        raise StorageIOError(f"移除迁移标记失败: {e}", destination) from e


def _copy_then_delete(source: str, destination: str):
    if os.path.exists(destination):
        logger.warning(f"发现上次中断的复制，清理后重新开始: {destination}")
        try:
            shutil.rmtree(destination)
        except OSError as e:
            raise StorageIOError(f"清理未完成的目标目录失败: {e}", destination) from e

    try:
        os.makedirs(destination)
        _write_marker(destination, RESUME_MARKER, source)
        shutil.copytree(source, destination, dirs_exist_ok=True)
        # 先写入下一阶段的标记，再移除当前标记，任何时刻都至少有一个标记
        _write_marker(destination, CLEANUP_MARKER, source)
        os.remove(os.path.join(destination, RESUME_MARKER))
    except OSError as e:
        logger.error(f"复制数据目录失败: {e}", exc_info=True)
        raise StorageIOError(f"复制数据目录失败: {e}", destination) from e

    _finish_cleanup(source, destination)


def relocate(old_root: str, new_root: str) -> bool:
    """
    迁移数据目录。

    Args:
        old_root (str): 旧的 data_dir。
        new_root (str): 新的 data_dir。

    Returns:
        bool: 本次调用移动或清理了文件时为 True；无事可做（同一路径或已完成）时为 False。
    """
    source = data_root_for(old_root)
    destination = data_root_for(new_root)

    if _same_path(old_root, new_root):
        logger.info("新旧数据目录相同，无需迁移。")
        return False

    if os.path.exists(destination) and _has_marker(destination, CLEANUP_MARKER) \
            and not _has_marker(destination, RESUME_MARKER):
        existed = os.path.exists(source)
        logger.info(f"上次迁移的复制已完成，继续删除原数据目录: {source}")
        _finish_cleanup(source, destination)
        return existed

    if not os.path.exists(source):
        if os.path.exists(destination) and not _has_marker(destination, RESUME_MARKER):
            logger.info(f"数据目录已位于 {destination}，无需迁移。")
        else:
            logger.info(f"原数据目录 {source} 不存在，无需迁移。")
        return False

    if os.path.exists(destination) and not _has_marker(destination, RESUME_MARKER):
        raise RelocationError(f"目标位置已存在数据目录，拒绝合并: {destination}")

    try:
        os.makedirs(new_root, exist_ok=True)
    except OSError as e:
        raise StorageIOError(f"创建目标目录失败: {e}", new_root) from e

    if not os.path.exists(destination):
        try:
            os.rename(source, destination)
            logger.info(f"数据目录已移动: {source} → {destination}")
            return True
        except OSError as e:
            if e.errno != errno.EXDEV:
                logger.error(f"移动数据目录失败: {e}", exc_info=True)
                raise StorageIOError(f"移动数据目录失败: {e}", destination) from e
            logger.info("源与目标位于不同磁盘，改为复制后删除。")

    _copy_then_delete(source, destination)
    logger.info(f"数据目录已复制到 {destination}，原目录已删除。")
    return True
