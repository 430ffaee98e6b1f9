from datetime import datetime

import pytest

from cadence.application.config import AppConfig


@pytest.fixture
def mock_vault(tmp_path):
    """Creates a temporary directory structure mimicking a vault."""
    d = tmp_path / "MyVault"
    d.mkdir()
    return d


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config and data files
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setattr("cadence.application.config.CONFIG_FILES", [])
    return home


@pytest.fixture
def now():
    return datetime(2024, 1, 10, 9, 0, 0)


@pytest.fixture
def config(mock_vault, mock_home):
    return AppConfig(vault_root=mock_vault, data_file=mock_home / "data.json")


@pytest.fixture
def write_note(mock_vault):
    """Write a markdown file into the vault and return its path."""

    def _write(rel_path: str, text: str):
        p = mock_vault / rel_path
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(text, encoding="utf-8")
        return p

    return _write
