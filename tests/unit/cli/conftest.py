"""Fixtures for CLI command tests."""

import logging
import re
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from linkradar.cli.app import app

CONTACT_URL = "https://linkradar.example.com/about"

LINK_ID_RE = re.compile(r"Added link ([0-9a-f-]{36})")


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def cli_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the CLI at a throwaway SQLite file and log file."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'linkradar.db'}")
    monkeypatch.setenv("LOG_FILE", str(tmp_path / "logs" / "linkradar.log"))
    monkeypatch.setenv("CONTENT_ARCHIVE_USER_AGENT_CONTACT_URL", CONTACT_URL)
    yield tmp_path

    # Handlers bound to the runner's captured streams must not outlive the test
    logger = logging.getLogger("linkradar")
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


@pytest.fixture
def initialized_db(runner: CliRunner, cli_env: Path) -> Path:
    result = runner.invoke(app, ["init-db"])
    assert result.exit_code == 0, result.output
    return cli_env


@pytest.fixture
def add_link(runner: CliRunner, initialized_db: Path):
    """Add a link through the CLI with the queue stubbed out; return its id."""

    def _add(url: str = "https://example.com/article") -> str:
        queue = MagicMock()
        queue.enqueue_archive = AsyncMock(return_value=True)
        queue.close = AsyncMock()
        with patch("linkradar.cli.commands.add.QueueManager", return_value=queue):
            result = runner.invoke(app, ["add", url])
        assert result.exit_code == 0, result.output
        return LINK_ID_RE.search(result.output).group(1)

    return _add
