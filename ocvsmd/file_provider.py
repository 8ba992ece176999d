"""File provider serving `uavcan.file` Read and GetInfo requests from configured roots."""

from __future__ import annotations

import errno
import logging
import os
import stat
from dataclasses import dataclass
from enum import IntEnum
from typing import Protocol

_logger = logging.getLogger("engine")

MAX_ROOT_PATH_LEN = 255
"""Longest root path that can be listed over IPC (capacity of a file path)."""

MAX_READ_SIZE = 256
"""Largest chunk of data returned by a single read."""


class FileError(IntEnum):
    """Error values of the `uavcan.file.Error.1.0` type."""

    OK = 0
    UNKNOWN_ERROR = 65535
    NOT_FOUND = 2
    IO_ERROR = 5
    ACCESS_DENIED = 13
    IS_DIRECTORY = 21
    INVALID_VALUE = 22
    FILE_TOO_LARGE = 27
    OUT_OF_SPACE = 28
    NOT_SUPPORTED = 38


class _RootsConfig(Protocol):
    def file_server_roots(self) -> list[str]: ...

    def set_file_server_roots(self, roots: list[str]) -> None: ...


@dataclass
class GetInfoResponse:
    """Result of a GetInfo request."""

    error: FileError = FileError.OK
    size: int = 0
    unix_timestamp_of_last_modification: int = 0
    is_file_not_directory: bool = False
    is_link: bool = False
    is_readable: bool = False
    is_writeable: bool = False


@dataclass
class ReadResponse:
    """Result of a Read request: an error value and a chunk of data."""

    error: FileError = FileError.OK
    data: bytes = b""


_ERRNO_TO_FILE_ERROR = {
    errno.EIO: FileError.IO_ERROR,
    errno.EPERM: FileError.IO_ERROR,
    errno.ENOENT: FileError.NOT_FOUND,
    errno.EISDIR: FileError.IS_DIRECTORY,
    errno.ENOSPC: FileError.OUT_OF_SPACE,
    errno.EACCES: FileError.ACCESS_DENIED,
    errno.EINVAL: FileError.INVALID_VALUE,
    errno.ENOTSUP: FileError.NOT_SUPPORTED,
    errno.E2BIG: FileError.FILE_TOO_LARGE,
}


def convert_error_code(code: int | None) -> FileError:
    """Map an errno value to the matching file error."""
    return _ERRNO_TO_FILE_ERROR.get(code, FileError.UNKNOWN_ERROR)


def canonicalize_path(path: str) -> str | None:
    """Resolve all links and relative parts of an existing path; None if it can't be resolved."""
    if not path:
        return None
    try:
        resolved = os.path.realpath(path, strict=True)
    except (OSError, ValueError):
        return None
    return resolved


def build_and_validate_root_with_path(root: str, file: str) -> str | None:
    """Resolve ``file`` under ``root``; None unless the result lies strictly inside the root."""
    root_path = canonicalize_path(root)
    if root_path is None:
        return None
    file_path = canonicalize_path(f"{root}/{file}")
    if file_path is None:
        return None
    # The resolved path must be UNDER the real root, with a separator right after it.
    root_len = len(root_path)
    if file_path.startswith(root_path) and len(file_path) > root_len and file_path[root_len] == "/":
        return file_path
    return None


class FileProvider:
    """Serves files found under an ordered list of root directories."""

    def __init__(self, config: _RootsConfig) -> None:
        self._config = config
        self._roots: list[str] = list(config.file_server_roots())
        _logger.debug("There are %d file server roots.", len(self._roots))
        for index, root in enumerate(self._roots):
            real_root = canonicalize_path(root)
            if real_root is None:
                _logger.warning("%4d '%s' -> not found!", index, root)
            elif len(root) <= MAX_ROOT_PATH_LEN:
                _logger.debug("%4d '%s' -> '%s'", index, root, real_root)
            else:
                _logger.warning("%4d too long '%s' -> '%s'", index, root, real_root)

    def list_of_roots(self) -> list[str]:
        """The roots being served, in search order."""
        return list(self._roots)

    def pop_root(self, path: str, back: bool) -> None:
        """Remove the first (or, with ``back``, the last) occurrence of ``path``."""
        if path not in self._roots:
            return
        if back:
            index = len(self._roots) - 1 - self._roots[::-1].index(path)
        else:
            index = self._roots.index(path)
        del self._roots[index]
        self._config.set_file_server_roots(self._roots)

    def push_root(self, path: str, back: bool) -> None:
        """Add ``path`` at the end (``back``) or at the front of the roots."""
        if back:
            self._roots.append(path)
        else:
            self._roots.insert(0, path)
        self._config.set_file_server_roots(self._roots)

    def find_first_valid_file(self, request_path: str) -> tuple[str, os.stat_result] | None:
        """The resolved path and status of the first root holding ``request_path``."""
        for root in self._roots:
            real_path = build_and_validate_root_with_path(root, request_path)
            if real_path is None:
                continue
            # Best effort: skip anything that can't even be stat'ed.
            try:
                return real_path, os.stat(real_path)
            except OSError:
                continue
        return None

    def get_info(self, path: str) -> GetInfoResponse:
        """Answer a GetInfo request for ``path``."""
        found = self.find_first_valid_file(path)
        if found is None:
            _logger.warning("'GetInfo' file not found (path='%s').", path)
            return GetInfoResponse(error=FileError.NOT_FOUND)
        file_path, file_stat = found
        _logger.debug(
            "'GetInfo' found file info (path='%s', size=%d, real='%s').",
            path,
            file_stat.st_size,
            file_path,
        )
        return GetInfoResponse(
            error=FileError.OK,
            size=file_stat.st_size,
            unix_timestamp_of_last_modification=int(file_stat.st_mtime),
            is_file_not_directory=not stat.S_ISDIR(file_stat.st_mode),
            is_link=False,  # all links were resolved
            is_readable=os.access(file_path, os.R_OK),
            is_writeable=os.access(file_path, os.W_OK),
        )

    def read(self, path: str, offset: int) -> ReadResponse:
        """Answer a Read request: up to ``MAX_READ_SIZE`` bytes of ``path`` from ``offset``."""
        found = self.find_first_valid_file(path)
        if found is None:
            _logger.warning("'Read' file not found (path='%s', off=0x%X).", path, offset)
            return ReadResponse(error=FileError.NOT_FOUND)
        file_path, file_stat = found
        size = file_stat.st_size

        if offset >= size:
            _logger.debug(
                "'Read' eof (path='%s', off=0x%X, eof=0x%X, real='%s').", path, offset, size, file_path
            )
            return ReadResponse()

        bytes_to_read = min(size - offset, MAX_READ_SIZE)
        try:
            with open(file_path, "rb") as file:
                file.seek(offset)
                data = file.read(bytes_to_read)
        except OSError as ex:
            _logger.warning(
                "'Read' failed (path='%s', off=0x%X, eof=0x%X, real='%s', err=%s): %s.",
                path,
                offset,
                size,
                file_path,
                ex.errno,
                ex,
            )
            return ReadResponse(error=convert_error_code(ex.errno))

        # Log only the first and the last chunk to avoid flooding.
        if offset + len(data) >= size:
            _logger.debug(
                "'Read' last (path='%s', off=0x%X, eof=0x%X, real='%s').", path, offset, size, file_path
            )
        elif offset == 0:
            _logger.debug("'Read' first (path='%s', eof=0x%X, real='%s')...", path, size, file_path)
        return ReadResponse(data=data)