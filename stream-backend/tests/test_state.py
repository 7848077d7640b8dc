"""Tests for the file-backed cursor store."""

import os

import orjson
import pytest

from utils.errors import ConfigurationError, CorruptStateError, StoreError
from utils.state import FileCursorStore


def test_load_returns_none_for_fresh_installation(cursor_store):
    assert cursor_store.load() is None


def test_save_then_load(cursor_store):
    cursor_store.save("100")
    cursor_store.save("250")

    assert cursor_store.load() == "250"
    assert orjson.loads(cursor_store.path.read_bytes())["cursor"] == "250"


def test_save_leaves_no_temporary_files(cursor_store):
    cursor_store.save("100")

    assert [p.name for p in cursor_store.path.parent.iterdir()] == [cursor_store.path.name]


@pytest.mark.parametrize(
    "content",
    [
        b"",
        b"not json",
        b"100",
        b'{"updated_at": "2025-01-01"}',
        b'{"cursor": 100}',
        b'{"cursor": ""}',
        b'{"cursor": null}',
    ],
)
def test_malformed_file_is_corrupt_state(cursor_store, content):
    cursor_store.path.parent.mkdir(parents=True)
    cursor_store.path.write_bytes(content)

    with pytest.raises(CorruptStateError):
        cursor_store.load()


def test_crash_during_save_keeps_previous_cursor(cursor_store, monkeypatch):
    cursor_store.save("100")

    def failing_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", failing_replace)

    with pytest.raises(StoreError):
        cursor_store.save("200")

    monkeypatch.undo()
    assert cursor_store.load() == "100"
    assert [p.name for p in cursor_store.path.parent.iterdir()] == [cursor_store.path.name]


def test_check_writable_creates_state_directory(tmp_path):
    store = FileCursorStore(tmp_path / "nested" / "state" / "cursor.json")

    store.check_writable()

    assert store.path.parent.is_dir()


@pytest.mark.skipif(os.geteuid() == 0, reason="root bypasses file permissions")
def test_check_writable_rejects_read_only_cursor_file(cursor_store):
    cursor_store.save("100")
    cursor_store.path.chmod(0o444)

    with pytest.raises(ConfigurationError):
        cursor_store.check_writable()
