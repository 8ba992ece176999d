"""IPC services that list, remove and add file server roots."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from .file_provider import MAX_ROOT_PATH_LEN, FileProvider

_logger = logging.getLogger("engine")


class _Channel(Protocol):
    def send(self, response: Any) -> int | None: ...

    def complete(self, error: int = 0) -> None: ...


@dataclass(frozen=True)
class RootRequest:
    """Request naming a root path, and whether the back or the front end is meant."""

    path: str = ""
    is_back: bool = False


class ListRootsService:
    """Sends every listable root as a separate response, then completes the channel."""

    def __init__(self, file_provider: FileProvider) -> None:
        self._file_provider = file_provider

    def __call__(self, channel: _Channel, request: Any = None) -> None:
        _logger.debug("New 'list_roots' service channel.")
        for root in self._file_provider.list_of_roots():
            # Such roots work on the file system but can't be sent over IPC.
            if len(root) > MAX_ROOT_PATH_LEN:
                _logger.warning(
                    "ListRootsSvc: Can't list too long path (max_len=%d, root='%s').",
                    MAX_ROOT_PATH_LEN,
                    root,
                )
                continue
            err = channel.send(root)
            if err:
                _logger.warning("ListRootsSvc: failed to send ipc response (err=%s).", err)
        channel.complete()


class PopRootService:
    """Removes a root and completes the channel."""

    def __init__(self, file_provider: FileProvider) -> None:
        self._file_provider = file_provider

    def __call__(self, channel: _Channel, request: RootRequest) -> None:
        _logger.debug("New 'pop_root' service channel.")
        self._file_provider.pop_root(request.path, request.is_back)
        channel.complete()


class PushRootService:
    """Adds a root and completes the channel."""

    def __init__(self, file_provider: FileProvider) -> None:
        self._file_provider = file_provider

    def __call__(self, channel: _Channel, request: RootRequest) -> None:
        _logger.debug("New 'push_root' service channel.")
        self._file_provider.push_root(request.path, request.is_back)
        channel.complete()


def all_services(file_provider: FileProvider) -> list[ListRootsService | PopRootService | PushRootService]:
    """All file server services bound to the given provider."""
    return [
        ListRootsService(file_provider),
        PopRootService(file_provider),
        PushRootService(file_provider),
    ]