import re
from unittest.mock import AsyncMock, MagicMock, patch

from linkradar.cli.app import app

LINK_ID_RE = re.compile(r"Added link ([0-9a-f-]{36})")


def _fake_queue() -> MagicMock:
    queue = MagicMock()
    queue.enqueue_archive = AsyncMock(return_value=True)
    queue.close = AsyncMock()
    return queue


def test_add_stores_link_and_enqueues(runner, initialized_db) -> None:
    queue = _fake_queue()

    with patch("linkradar.cli.commands.add.QueueManager", return_value=queue):
        result = runner.invoke(app, ["add", "https://example.com/article", "-n", "later"])

    assert result.exit_code == 0, result.output
    match = LINK_ID_RE.search(result.output)
    assert match is not None
    assert "pending" in result.output
    queue.enqueue_archive.assert_awaited_once()
    assert str(queue.enqueue_archive.await_args.args[0]) == match.group(1)
    queue.close.assert_awaited_once()


def test_add_succeeds_when_queue_is_down(runner, initialized_db) -> None:
    queue = _fake_queue()
    queue.enqueue_archive = AsyncMock(return_value=False)

    with patch("linkradar.cli.commands.add.QueueManager", return_value=queue):
        result = runner.invoke(app, ["add", "https://example.com/article"])

    assert result.exit_code == 0
    assert LINK_ID_RE.search(result.output)


def test_add_rejects_blank_url(runner, initialized_db) -> None:
    result = runner.invoke(app, ["add", "   "])

    assert result.exit_code == 1
    assert "No URL provided" in result.output
