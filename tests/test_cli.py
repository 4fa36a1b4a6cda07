"""
Tests for the novel-studio command line

Run with: pytest tests/test_cli.py -v
"""
import pytest

from novel_studio.cli import main
from novel_studio.tasks import BookshelfStorage, TaskStatus, TrackType


@pytest.fixture
def cache_dir(temp_dir, monkeypatch):
    monkeypatch.delenv('NOVEL_STUDIO_LOG_DB', raising=False)
    return str(temp_dir / "cache")


@pytest.fixture
def imported(cache_dir, temp_dir, capsys):
    """Import a two-chapter novel and return its entry id"""
    source = temp_dir / "Long Story.txt"
    source.write_text(
        "Chapter 1\n" + "\n".join(["a" * 300] * 4) + "\nChapter 2\n" + "\n".join(["b" * 300] * 4),
        encoding='utf-8'
    )
    main(['import', str(source), '--cache-dir', cache_dir])
    capsys.readouterr()
    return BookshelfStorage(cache_dir).load_all()[0].id


def test_help(capsys):
    with pytest.raises(SystemExit) as exc:
        main(['--help'])
    assert exc.value.code == 0
    assert "Usage: novel-studio" in capsys.readouterr().out


def test_unknown_command_suggests(capsys, cache_dir):
    with pytest.raises(SystemExit) as exc:
        main(['lst', '--cache-dir', cache_dir])
    assert exc.value.code == 1
    assert "Did you mean: list" in capsys.readouterr().out


def test_wrong_argument_count(capsys, cache_dir):
    with pytest.raises(SystemExit) as exc:
        main(['pause', 'only-id', '--cache-dir', cache_dir])
    assert exc.value.code == 1


def test_empty_bookshelf(capsys, cache_dir):
    main(['list', '--cache-dir', cache_dir])
    assert "Bookshelf is empty." in capsys.readouterr().out


def test_import_and_list(imported, cache_dir, capsys):
    main(['list', '--cache-dir', cache_dir])
    out = capsys.readouterr().out
    assert imported in out
    assert "Long Story" in out


def test_queue_show_and_cancel(imported, cache_dir, capsys):
    main(['queue', imported, 'translation', '--cache-dir', cache_dir])
    main(['show', imported, '--cache-dir', cache_dir])
    out = capsys.readouterr().out
    assert "Queued translation" in out
    assert "Waiting in queue..." in out

    main(['cancel', imported, '--cache-dir', cache_dir])
    entry = BookshelfStorage(cache_dir).load_all()[0]
    assert entry.track(TrackType.TRANSLATION).status == TaskStatus.CANCELED

    main(['retry', imported, '--cache-dir', cache_dir])
    entry = BookshelfStorage(cache_dir).load_all()[0]
    assert entry.translation.status == TaskStatus.QUEUED


def test_queue_unknown_track(imported, cache_dir, capsys):
    with pytest.raises(SystemExit):
        main(['queue', imported, 'audio', '--cache-dir', cache_dir])
    assert "Unknown track" in capsys.readouterr().out


def test_logs(imported, cache_dir, capsys):
    main(['queue', imported, 'illustration', '--cache-dir', cache_dir])
    main(['logs', imported, '--limit', '5', '--cache-dir', cache_dir])
    out = capsys.readouterr().out
    assert "[illustration] notStarted -> queued" in out


def test_remove(imported, cache_dir, capsys):
    main(['remove', imported, '--cache-dir', cache_dir])
    assert BookshelfStorage(cache_dir).load_all() == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
