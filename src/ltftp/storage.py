from __future__ import annotations

import logging
import os
from typing import BinaryIO

from .constants import ERR_ACCESS_VIOLATION, ERR_DISK_FULL, ERR_FILE_EXISTS, ERR_FILE_NOT_FOUND
from .errors import StorageError

log = logging.getLogger(__name__)


class DirectoryStorage:
    """Files served from (and written to) a single root directory.

    Requested names are resolved against the root, symlinks included, and
    anything that lands outside it is refused.
    """

    def __init__(self, root: str, read_only: bool = False):
        self.root = os.path.realpath(root)
        self.read_only = read_only

    def resolve(self, filename: str) -> str:
        if not filename or filename.startswith(("/", "\\")) or "\x00" in filename:
            raise StorageError(f"illegal filename: {filename!r}", ERR_ACCESS_VIOLATION)
        path = os.path.realpath(os.path.join(self.root, filename))
        if os.path.commonpath([self.root, path]) != self.root or path == self.root:
            log.warning("refusing path outside serving root: %r", filename)
            raise StorageError(f"access violation: {filename!r}", ERR_ACCESS_VIOLATION)
        return path

    def open_for_read(self, filename: str) -> BinaryIO:
        path = self.resolve(filename)
        try:
            return open(path, "rb")
        except FileNotFoundError as exc:
            raise StorageError(f"file not found: {filename!r}", ERR_FILE_NOT_FOUND) from exc
        except IsADirectoryError as exc:
            raise StorageError(f"not a file: {filename!r}", ERR_FILE_NOT_FOUND) from exc
        except PermissionError as exc:
            raise StorageError(f"access violation: {filename!r}", ERR_ACCESS_VIOLATION) from exc
        except OSError as exc:
            raise StorageError(f"cannot open {filename!r}: {exc}") from exc

    def open_for_write(self, filename: str) -> BinaryIO:
        if self.read_only:
            raise StorageError("server is read-only", ERR_ACCESS_VIOLATION)
        path = self.resolve(filename)
        try:
            return open(path, "xb")
        except FileExistsError as exc:
            raise StorageError(f"file exists: {filename!r}", ERR_FILE_EXISTS) from exc
        except FileNotFoundError as exc:
            raise StorageError(f"no such directory for {filename!r}", ERR_FILE_NOT_FOUND) from exc
        except PermissionError as exc:
            raise StorageError(f"access violation: {filename!r}", ERR_ACCESS_VIOLATION) from exc
        except OSError as exc:
            raise StorageError(f"cannot create {filename!r}: {exc}", ERR_DISK_FULL) from exc

    def discard(self, filename: str) -> None:
        """Remove a partially written upload."""
        path = self.resolve(filename)
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass
