import logging
from pathlib import Path

import pytest

from meshpaint.core.logging_utils import ENV_LOG_LEVEL, default_log_dir, setup_logging


@pytest.fixture
def bare_root_logger():
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    for handler in saved_handlers:
        if isinstance(handler, logging.FileHandler):
            root.removeHandler(handler)
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
        if handler not in saved_handlers:
            handler.close()
    for handler in saved_handlers:
        root.addHandler(handler)
    root.setLevel(saved_level)
    logging.captureWarnings(False)


def test_default_log_dir_uses_xdg_state_home(monkeypatch, tmp_path):
    monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path))
    assert default_log_dir() == tmp_path / "meshpaint" / "logs"


def test_default_log_dir_falls_back_to_home(monkeypatch):
    monkeypatch.delenv("XDG_STATE_HOME", raising=False)
    assert default_log_dir() == Path.home() / ".local" / "state" / "meshpaint" / "logs"


def test_setup_logging_writes_one_file(monkeypatch, tmp_path, bare_root_logger):
    monkeypatch.setenv(ENV_LOG_LEVEL, "debug")
    log_dir = tmp_path / "logs"

    path = setup_logging(log_dir=log_dir)

    assert path == log_dir / "meshpaint.log"
    assert bare_root_logger.level == logging.DEBUG
    # A second call reuses the attached handler.
    assert setup_logging(log_dir=tmp_path / "other") == path
    assert not (tmp_path / "other").exists()

    logging.getLogger("meshpaint.tests").debug("stroke %d", 7)
    for handler in bare_root_logger.handlers:
        handler.flush()
    assert "stroke 7" in path.read_text(encoding="utf-8")


def test_setup_logging_returns_none_for_unusable_dir(tmp_path, bare_root_logger):
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")

    assert setup_logging(log_dir=blocker / "logs") is None
    assert not any(isinstance(h, logging.FileHandler) for h in bare_root_logger.handlers)
