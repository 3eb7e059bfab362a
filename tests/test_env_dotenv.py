from __future__ import annotations

import os
from pathlib import Path

import pytest

from dcdn import env


@pytest.fixture(autouse=True)
def _fresh_loader(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(env, "_LOADED", False)
    # Register both vars with monkeypatch so anything dotenv sets is undone.
    for name in ("DCDN_TEST_FROM_FILE", "DCDN_TEST_PRESET"):
        monkeypatch.setenv(name, "placeholder")
        monkeypatch.delenv(name)


def test_loads_dotenv_once(tmp_path: Path) -> None:
    p = tmp_path / "dcdn.env"
    p.write_text("DCDN_TEST_FROM_FILE=from-file\n", encoding="utf-8")

    assert env.load_dotenv_if_present(str(p)) is True
    assert os.environ["DCDN_TEST_FROM_FILE"] == "from-file"

    # Second call is a no-op.
    assert env.load_dotenv_if_present(str(p)) is False


def test_existing_environment_wins(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    p = tmp_path / ".env"
    p.write_text("DCDN_TEST_PRESET=from-file\n", encoding="utf-8")
    monkeypatch.setenv("DCDN_TEST_PRESET", "from-env")

    assert env.load_dotenv_if_present(str(p)) is True
    assert os.environ["DCDN_TEST_PRESET"] == "from-env"


def test_missing_file_is_not_an_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DCDN_DOTENV_PATH", str(tmp_path / "absent.env"))
    assert env.load_dotenv_if_present() is False
