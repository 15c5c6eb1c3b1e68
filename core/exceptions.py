"""
自定义异常类
用于在存储层与服务层之间传递具有明确语义的错误信息。
所有错误都直接上抛给调用方，存储层不做任何自动重试。
"""


class FolioError(Exception):
    """所有存储引擎异常的基类"""
    pass


class ConfigurationError(FolioError):
    """当应用配置不正确或缺失时发生错误"""
    pass


class StorageIOError(FolioError):
    """文件系统操作失败（路径缺失、无写权限等），附带尝试访问的路径"""

    def __init__(self, message: str, path=None):
        super().__init__(f"{message} ({path})" if path is not None else message)
        self.path = str(path) if path is not None else None


class PartialDeleteError(StorageIOError):
    """
    多步删除只完成了一部分。
    目录册记录已经删除，但磁盘上的项目目录未能清理（留下孤立文件，而不是孤立记录）。
    """
    pass


class DatabaseError(FolioError):
    """SQLite / SQLAlchemy 层面的错误（语句错误、约束冲突、文件损坏）"""
    pass


class MigrationError(FolioError):
    """数据库版本无法迁移到当前版本，属于该文件的致命错误"""

    def __init__(self, db_name: str, found_version: int, target_version: int, message: str = None):
        self.db_name = db_name
        self.found_version = found_version
        self.target_version = target_version
        super().__init__(
            message or f"{db_name} 版本 {found_version} 无对应迁移脚本，目标版本 {target_version}"
        )


class TrashError(FolioError):
    """回收站记录无法解析或其来源类型不受支持"""
    pass


class NotFoundError(FolioError):
    """请求的记录不存在"""

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} 不存在: {record_id}")


class RelocationError(FolioError):
    """数据目录迁移被拒绝（例如目标位置已有其他数据）"""
    pass
