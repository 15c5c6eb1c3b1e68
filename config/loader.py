"""
应用配置加载器 (Config Loader)
配置只有一个字段：数据根目录 data_dir。
配置文件保存在用户级目录下的 config.yaml 中，与目录册数据库和各项目数据库都相互独立。
"""
import os
import logging
from dataclasses import dataclass, asdict

import yaml

from core.exceptions import ConfigurationError, StorageIOError

logger = logging.getLogger(__name__)

CONFIG_DIR_ENV = "FOLIO_CONFIG_DIR"
CONFIG_FILENAME = "config.yaml"


def default_documents_dir() -> str:
    """平台“文档”目录，不存在时退回用户主目录"""
    home = os.path.expanduser("~")
    documents = os.path.join(home, "Documents")
    return documents if os.path.isdir(documents) else home


@dataclass(frozen=True)
class AppConfig:
    """
    应用配置（值对象）。
    所有服务在构造时接收它，修改数据根目录需要显式重新加载。
    """
    data_dir: str

    @classmethod
    def default(cls) -> "AppConfig":
        return cls(data_dir=default_documents_dir())

    def to_dict(self):
        return asdict(self)


def get_config_dir() -> str:
    """用户级配置目录：优先使用环境变量 FOLIO_CONFIG_DIR"""
    override = os.getenv(CONFIG_DIR_ENV)
    if override:
        return override
    return os.path.join(os.path.expanduser("~"), ".config", "folio")


def get_config_path() -> str:
    return os.path.join(get_config_dir(), CONFIG_FILENAME)


def load_config() -> AppConfig:
    """
    读取 config.yaml，不存在则返回默认配置（不会写盘）。

    Raises:
        ConfigurationError: 文件无法解析或缺少 data_dir 字段。
    """
    path = get_config_path()
    if not os.path.exists(path):
        logger.debug(f"配置文件 {path} 不存在，使用默认配置。")
        return AppConfig.default()

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"解析 {path} 文件失败: {e}", exc_info=True)
        raise ConfigurationError(f"解析配置文件失败 ({path}): {e}") from e
    except OSError as e:
        logger.error(f"读取 {path} 文件失败: {e}", exc_info=True)
        raise ConfigurationError(f"读取配置文件失败 ({path}): {e}") from e

    if not raw:
        return AppConfig.default()
    if not isinstance(raw, dict) or not raw.get("data_dir"):
        raise ConfigurationError(f"配置文件缺少 data_dir 字段 ({path})")
    return AppConfig(data_dir=str(raw["data_dir"]))


def save_config(config: AppConfig):
    """
    将配置写回 config.yaml。

    Args:
        config (AppConfig): 要保存的配置。
    """
    path = get_config_path()
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(config.to_dict(), f, allow_unicode=True, sort_keys=False)
        logger.info(f"配置已成功保存到 {path}。")
    except OSError as e:
        logger.error(f"写入 {path} 文件失败: {e}", exc_info=True)
        raise StorageIOError("写入配置文件失败", path) from e
