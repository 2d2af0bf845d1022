from __future__ import annotations

import os

import pytest

from ltftp.constants import ERR_ACCESS_VIOLATION, ERR_FILE_EXISTS, ERR_FILE_NOT_FOUND
from ltftp.errors import StorageError
from ltftp.storage import DirectoryStorage


@pytest.fixture
def root(tmp_path):
    d = tmp_path / "srv"
    d.mkdir()
    (d / "hello.txt").write_bytes(b"hi")
    (d / "sub").mkdir()
    (d / "sub" / "nested.bin").write_bytes(b"\x00\x01")
    (tmp_path / "secret").write_bytes(b"nope")
    return d


def test_reads_files_under_root(root):
    s = DirectoryStorage(str(root))
    with s.open_for_read("hello.txt") as f:
        assert f.read() == b"hi"
    with s.open_for_read("sub/nested.bin") as f:
        assert f.read() == b"\x00\x01"


@pytest.mark.parametrize("name", ["../secret", "sub/../../secret", "/etc/passwd", "", "."])
def test_rejects_paths_outside_root(root, name):
    with pytest.raises(StorageError) as ei:
        DirectoryStorage(str(root)).open_for_read(name)
    assert ei.value.code == ERR_ACCESS_VIOLATION


def test_rejects_symlink_escape(root):
    os.symlink(root.parent / "secret", root / "link")
    with pytest.raises(StorageError) as ei:
        DirectoryStorage(str(root)).open_for_read("link")
    assert ei.value.code == ERR_ACCESS_VIOLATION


def test_missing_file(root):
    with pytest.raises(StorageError) as ei:
        DirectoryStorage(str(root)).open_for_read("absent.txt")
    assert ei.value.code == ERR_FILE_NOT_FOUND


def test_directory_is_not_a_file(root):
    with pytest.raises(StorageError) as ei:
        DirectoryStorage(str(root)).open_for_read("sub")
    assert ei.value.code == ERR_FILE_NOT_FOUND


def test_write_creates_new_file_only(root):
    s = DirectoryStorage(str(root))
    with s.open_for_write("new.bin") as f:
        f.write(b"abc")
    assert (root / "new.bin").read_bytes() == b"abc"
    with pytest.raises(StorageError) as ei:
        s.open_for_write("hello.txt")
    assert ei.value.code == ERR_FILE_EXISTS


def test_read_only_refuses_writes(root):
    with pytest.raises(StorageError) as ei:
        DirectoryStorage(str(root), read_only=True).open_for_write("new.bin")
    assert ei.value.code == ERR_ACCESS_VIOLATION
    assert not (root / "new.bin").exists()


def test_discard_removes_partial_upload(root):
    s = DirectoryStorage(str(root))
    s.open_for_write("partial.bin").close()
    s.discard("partial.bin")
    s.discard("partial.bin")
    assert not (root / "partial.bin").exists()
