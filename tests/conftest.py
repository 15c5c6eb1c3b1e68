import logging

import pytest

from config.loader import AppConfig
from services.library_service import LibraryService
from services.manuscript_service import ManuscriptService


@pytest.fixture(autouse=True)
def isolated_config_dir(tmp_path, monkeypatch):
    """Keep config.yaml inside the test's tmp dir."""
    config_dir = tmp_path / "config_home"
    monkeypatch.setenv("FOLIO_CONFIG_DIR", str(config_dir))
    return config_dir


@pytest.fixture
def app_config(tmp_path):
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    return AppConfig(data_dir=str(data_dir))


@pytest.fixture
def library(app_config):
    return LibraryService(app_config)


@pytest.fixture
def book(library):
    return library.create_book("Alpha", "Anon")


@pytest.fixture
def manuscript(app_config, book):
    return ManuscriptService(app_config, book.storage_path)


@pytest.fixture
def restore_root_logging():
    """setup_logging 会修改根 logger，测试结束后还原"""
    root = logging.getLogger()
    saved_handlers = root.handlers[:]
    saved_level = root.level
    sa_level = logging.getLogger("sqlalchemy.engine").level
    yield root
    for handler in root.handlers[:]:
        if handler not in saved_handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(saved_level)
    logging.getLogger("sqlalchemy.engine").setLevel(sa_level)
    logging.captureWarnings(False)
