from dotenv import load_dotenv
import logging

logger = logging.getLogger(__name__)

def load_environment(dotenv_path: str = None) -> bool:
    """
    从.env文件加载环境变量到环境中（例如 FOLIO_CONFIG_DIR、LOG_LEVEL）。
    已存在的环境变量不会被覆盖。

    Returns:
        bool: 是否找到并加载了 .env 文件。
    """
    loaded = load_dotenv(dotenv_path, override=False)
    if loaded:
        logger.debug("环境变量已从 .env 文件加载。")
    return loaded
