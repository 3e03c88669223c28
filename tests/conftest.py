import os

import pytest

from ponbudget.config import reset_config


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep user config files and PONBUDGET_* variables out of every test."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    for key in list(os.environ):
        if key.startswith("PONBUDGET_"):
            monkeypatch.delenv(key)
    reset_config()
    yield
    reset_config()
