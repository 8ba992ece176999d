"""UDP media: network interfaces that Cyphal/UDP sockets are made for."""

from __future__ import annotations

import errno

from .errors import PlatformError
from .udp import UdpRxSocket, UdpTxSocket, parse_iface_address

MAX_UDP_MEDIA = 3
"""Largest number of redundant UDP interfaces."""


class UdpMedia:
    """One local network interface, identified by its IPv4 address."""

    def __init__(self, iface_address: str = "") -> None:
        self._iface_address = iface_address

    @property
    def iface_address(self) -> str:
        return self._iface_address

    def set_address(self, iface_address: str) -> None:
        """Point this media at another local interface."""
        self._iface_address = iface_address

    def make_tx_socket(self) -> UdpTxSocket:
        """Open a socket sending out of this interface; raises PlatformError on failure."""
        local = parse_iface_address(self._iface_address)
        try:
            return UdpTxSocket(local)
        except ValueError as ex:
            raise PlatformError(errno.EINVAL) from ex

    def make_rx_socket(self, multicast_address: int, port: int) -> UdpRxSocket:
        """Open a socket receiving the multicast group on this interface; raises PlatformError on failure."""
        local = parse_iface_address(self._iface_address)
        try:
            return UdpRxSocket(local, multicast_address, port)
        except ValueError as ex:
            raise PlatformError(errno.EINVAL) from ex

    def __repr__(self) -> str:
        return f"UdpMedia({self._iface_address!r})"


class UdpMediaCollection:
    """Up to three UDP media configured from a comma separated address list."""

    def __init__(self) -> None:
        self._media = [UdpMedia("") for _ in range(MAX_UDP_MEDIA)]
        self._count = 0

    def parse(self, iface_addresses: str) -> None:
        """Configure media from e.g. ``"192.168.1.2,10.0.0.3"``; empty items are skipped."""
        addresses = [item for item in iface_addresses.split(",") if item][:MAX_UDP_MEDIA]
        for media, address in zip(self._media, addresses):
            media.set_address(address)
        self._count = len(addresses)

    def count(self) -> int:
        """Number of configured media."""
        return self._count

    def media(self) -> list[UdpMedia]:
        """The configured media, in the order they were listed."""
        return self._media[: self._count]