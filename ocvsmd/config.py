"""Daemon configuration stored in a TOML file."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

import tomlkit

_logger = logging.getLogger(__name__)

NODE_ID_MAX = 0xFFFF
UNIQUE_ID_SIZE = 16

_MISSING = object()


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class Config:
    """TOML backed configuration of the daemon.

    Reading never fails: a missing or malformed entry reads as ``None`` (or an
    empty list). Changes are kept in memory until :meth:`save` is called.
    """

    def __init__(self, file_path: str | Path, root: tomlkit.TOMLDocument) -> None:
        self._file_path = Path(file_path)
        self._root = root
        self._is_dirty = False

    @classmethod
    def make(cls, file_path: str | Path) -> Config:
        """Load the configuration file; raises if it can't be read or parsed."""
        text = Path(file_path).read_text(encoding="utf-8")
        return cls(file_path, tomlkit.parse(text))

    @property
    def file_path(self) -> Path:
        return self._file_path

    @property
    def is_dirty(self) -> bool:
        """Whether there are changes not yet written to the file."""
        return self._is_dirty

    def save(self) -> None:
        """Write pending changes to the file; failures are logged, not raised."""
        if not self._is_dirty:
            return
        try:
            self._table("__meta__")["last_modified"] = datetime.now().astimezone()
            self._file_path.write_bytes(tomlkit.dumps(self._root).encode("utf-8"))
            self._is_dirty = False
        except (OSError, ValueError, TypeError) as ex:
            _logger.error("Failed to save config (path='%s'). Error: %s", self._file_path, ex)

    def cyphal_app_node_id(self) -> int | None:
        value = self._find("cyphal", "application", "node_id")
        if _is_int(value) and 0 <= value <= NODE_ID_MAX:
            return int(value)
        return None

    def cyphal_app_unique_id(self) -> bytes | None:
        value = self._find("cyphal", "application", "unique_id")
        if not isinstance(value, list) or len(value) != UNIQUE_ID_SIZE:
            return None
        if not all(_is_int(item) and 0 <= item <= 0xFF for item in value):
            return None
        return bytes(int(item) for item in value)

    def set_cyphal_app_unique_id(self, unique_id: Iterable[int]) -> None:
        """Store a 16-byte unique id as a one-line array of hex integers."""
        octets = list(unique_id)
        if len(octets) != UNIQUE_ID_SIZE:
            raise ValueError(f"unique id must have {UNIQUE_ID_SIZE} bytes, got {len(octets)}")
        if not all(_is_int(b) and 0 <= b <= 0xFF for b in octets):
            raise ValueError("unique id bytes must be integers in range 0..255")
        hex_items = ", ".join(f"0x{b:02x}" for b in octets)
        array = tomlkit.parse(f"unique_id = [{hex_items}]")["unique_id"]
        self._table("cyphal", "application")["unique_id"] = array
        self._is_dirty = True

    def cyphal_transport_interfaces(self) -> list[str]:
        return self._find_strings("cyphal", "transport", "interfaces")

    def file_server_roots(self) -> list[str]:
        return self._find_strings("file_server", "roots")

    def set_file_server_roots(self, roots: Iterable[str]) -> None:
        self._table("file_server")["roots"] = [str(root) for root in roots]
        self._is_dirty = True

    def ipc_connections(self) -> list[str]:
        return self._find_strings("ipc", "connections")

    def logging_file(self) -> str | None:
        return self._find_string("logging", "file")

    def logging_level(self) -> str | None:
        return self._find_string("logging", "level")

    def logging_flush_level(self) -> str | None:
        return self._find_string("logging", "flush_level")

    def _find(self, *keys: str) -> Any:
        node: Any = self._root
        for key in keys:
            if not isinstance(node, Mapping) or key not in node:
                return _MISSING
            node = node[key]
        return node

    def _find_string(self, *keys: str) -> str | None:
        value = self._find(*keys)
        return str(value) if isinstance(value, str) else None

    def _find_strings(self, *keys: str) -> list[str]:
        value = self._find(*keys)
        if isinstance(value, list) and all(isinstance(item, str) for item in value):
            return [str(item) for item in value]
        return []

    def _table(self, *keys: str) -> Any:
        node: Any = self._root
        for key in keys:
            if key not in node:
                node[key] = tomlkit.table()
            node = node[key]
            if not isinstance(node, Mapping):
                raise TypeError(f"config entry '{key}' is not a table")
        return node