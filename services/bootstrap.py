"""
应用启动 (Bootstrap)
宿主程序启动时调用一次：加载 .env、初始化日志、读取配置、确保目录册存在。
"""
import logging

from config import load_environment, loader
from core.logger import setup_logging
from infra.storage import sql_db
from services.library_service import LibraryService

logger = logging.getLogger(__name__)


def start(log_dir: str = None) -> LibraryService:
    """
    Returns:
        LibraryService: 绑定当前配置的书库服务。
    """
    load_environment()
    log_path = setup_logging(log_dir)
    config = loader.load_config()
    sql_db.open_catalog(config).dispose()
    logger.info(f"数据目录: {config.data_dir}，日志文件: {log_path}")
    return LibraryService(config)
