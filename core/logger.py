import logging
import logging.handlers
import os
import sys

from config.loader import get_config_dir

LOG_FILE_NAME = "folio.log"
LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'

# 只替换本模块安装的 handler，宿主程序（例如 pytest）自己的 handler 保持不动
_OWNED_ATTR = "_folio_handler"


def default_log_dir() -> str:
    return os.path.join(get_config_dir(), "logs")


def _owned(handler: logging.Handler) -> logging.Handler:
    setattr(handler, _OWNED_ATTR, True)
    return handler


def setup_logging(log_dir: str = None, level: str = None) -> str:
    """
    设置应用程序的日志：控制台 + 滚动文件，普通文本格式。
    重复调用是安全的，之前安装的 handler 会被替换而不是叠加。

    Args:
        log_dir (str): 日志目录，默认放在用户配置目录下的 logs/。
        level (str): 日志级别，默认读取环境变量 LOG_LEVEL（INFO）。

    Returns:
        str: 日志文件路径。
    """
    log_dir = log_dir or default_log_dir()
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, LOG_FILE_NAME)
    formatter = logging.Formatter(LOG_FORMAT)

    root = logging.getLogger()
    for handler in root.handlers[:]:
        if getattr(handler, _OWNED_ATTR, False):
            root.removeHandler(handler)
            handler.close()

    root.setLevel((level or os.getenv("LOG_LEVEL", "INFO")).upper())

    file_handler = _owned(logging.handlers.RotatingFileHandler(
        log_path,
        maxBytes=10 * 1024 * 1024, # 10 MB
        backupCount=5,
        encoding='utf-8'
    ))
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    console_handler = _owned(logging.StreamHandler(sys.stdout))
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    # SQL 语句日志只在显式调试时打开
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.captureWarnings(True)
    return log_path
