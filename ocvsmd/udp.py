"""Non-blocking UDP sockets for Cyphal/UDP transmission and multicast reception.

All addresses are plain integers in host order, e.g. 127.0.0.1 is 0x7F000001.
"""

from __future__ import annotations

import errno
import select
import socket
import struct
from collections.abc import Iterable

from .errors import PlatformError

OVERRIDE_TTL = 16
"""Multicast TTL recommended by the Cyphal/UDP specification."""

DSCP_MAX = 63
"""Largest DSCP value (RFC 2474)."""

RX_BUFFER_SIZE = 2000

_INT_MAX = 2**31 - 1
_UINT32_MAX = 0xFFFFFFFF
_UINT16_MAX = 0xFFFF
_DONTWAIT = getattr(socket, "MSG_DONTWAIT", 0)


def is_multicast(address: int) -> bool:
    """Whether the IPv4 address (host order) lies in 224.0.0.0/4."""
    return (address & 0xF0000000) == 0xE0000000


def parse_iface_address(address: str | None) -> int:
    """Convert a dotted IPv4 address to an integer; 0 if it is not recognised."""
    if address is None:
        return 0
    try:
        packed = socket.inet_pton(socket.AF_INET, address)
    except (OSError, ValueError, TypeError):
        return 0
    return int.from_bytes(packed, "big")


def _dotted(address: int) -> str:
    return socket.inet_ntoa(address.to_bytes(4, "big"))


def _platform_error(ex: OSError) -> PlatformError:
    return PlatformError(ex.errno if ex.errno else errno.EIO)


def _valid_address(address: int) -> bool:
    return isinstance(address, int) and 0 < address <= _UINT32_MAX


def _valid_port(port: int) -> bool:
    return isinstance(port, int) and 0 < port <= _UINT16_MAX


class _UdpSocket:
    """Common helpers around the underlying socket."""

    _sock: socket.socket | None

    @property
    def closed(self) -> bool:
        return self._sock is None

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def _require_open(self) -> socket.socket:
        if self._sock is None:
            raise ValueError("socket is closed")
        return self._sock


class UdpTxSocket(_UdpSocket):
    """Socket for sending datagrams out of one local interface."""

    def __init__(self, local_iface_address: int) -> None:
        self._sock = None
        if not _valid_address(local_iface_address):
            raise ValueError(f"invalid local interface address: {local_iface_address!r}")
        iface_be = local_iface_address.to_bytes(4, "big")
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        except OSError as ex:
            raise _platform_error(ex) from ex
        try:
            sock.bind((_dotted(local_iface_address), 0))
            sock.setblocking(False)
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, OVERRIDE_TTL)
            # Egress interface for multicast traffic.
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_IF, iface_be)
        except OSError as ex:
            sock.close()
            raise _platform_error(ex) from ex
        self._sock = sock

    def send(self, remote_address: int, remote_port: int, dscp: int, payload: bytes) -> bool:
        """Send one datagram without blocking.

        Returns True when sent, False when the socket is not ready.
        """
        sock = self._require_open()
        if not _valid_address(remote_address):
            raise ValueError(f"invalid remote address: {remote_address!r}")
        if not _valid_port(remote_port):
            raise ValueError(f"invalid remote port: {remote_port!r}")
        if not isinstance(dscp, int) or not 0 <= dscp <= DSCP_MAX:
            raise ValueError(f"invalid DSCP value: {dscp!r}")
        if payload is None:
            raise ValueError("payload is missing")
        data = bytes(payload)
        try:
            # The 2 least significant bits belong to the ECN field; best effort.
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_TOS, dscp << 2)
        except OSError:
            pass
        try:
            sent = sock.sendto(data, _DONTWAIT, (_dotted(remote_address), remote_port))
        except BlockingIOError:
            return False
        except OSError as ex:
            raise _platform_error(ex) from ex
        if sent != len(data):
            raise PlatformError(errno.EIO)
        return True

    def fileno(self) -> int:
        """The socket's descriptor, or -1 once closed."""
        return self._sock.fileno() if self._sock is not None else -1

    def close(self) -> None:
        """Close the socket; closing twice has no effect."""
        if self._sock is not None:
            self._sock.close()
            self._sock = None


class UdpRxSocket(_UdpSocket):
    """Socket subscribed to a multicast group and port on one local interface."""

    def __init__(self, local_iface_address: int, multicast_group: int, remote_port: int) -> None:
        self._sock = None
        if not _valid_address(local_iface_address):
            raise ValueError(f"invalid local interface address: {local_iface_address!r}")
        if not isinstance(multicast_group, int) or not is_multicast(multicast_group) \
                or multicast_group > _UINT32_MAX:
            raise ValueError(f"not a multicast group: {multicast_group!r}")
        if not _valid_port(remote_port):
            raise ValueError(f"invalid remote port: {remote_port!r}")
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        except OSError as ex:
            raise _platform_error(ex) from ex
        try:
            sock.setblocking(False)
            # Let other nodes on this host share the same Cyphal port; must precede bind.
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if hasattr(socket, "SO_REUSEPORT"):
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
            sock.bind((_dotted(multicast_group), remote_port))
            membership = struct.pack("!II", multicast_group, local_iface_address)
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, membership)
        except OSError as ex:
            sock.close()
            raise _platform_error(ex) from ex
        self._sock = sock

    def receive(self, max_size: int = RX_BUFFER_SIZE) -> bytes | None:
        """Read one datagram without blocking; None if nothing is pending."""
        sock = self._require_open()
        if not isinstance(max_size, int) or max_size < 0:
            raise ValueError(f"invalid buffer size: {max_size!r}")
        try:
            return sock.recv(max_size, _DONTWAIT)
        except BlockingIOError:
            return None
        except OSError as ex:
            raise _platform_error(ex) from ex

    def fileno(self) -> int:
        """The socket's descriptor, or -1 once closed."""
        return self._sock.fileno() if self._sock is not None else -1

    def close(self) -> None:
        """Close the socket; closing twice has no effect."""
        if self._sock is not None:
            self._sock.close()
            self._sock = None


def wait(
    timeout_usec: int,
    tx: Iterable[UdpTxSocket],
    rx: Iterable[UdpRxSocket],
) -> tuple[list[bool], list[bool]]:
    """Wait until any TX socket is writable or RX socket readable, or the timeout.

    Returns the readiness flags of the TX and RX sockets, in the given order.
    May return early even if nothing is ready.
    """
    tx_list = list(tx)
    rx_list = list(rx)
    if not tx_list and not rx_list:
        raise ValueError("nothing to wait for")
    if len(tx_list) + len(rx_list) > _INT_MAX:
        raise ValueError("too many sockets")
    if timeout_usec < 0:
        raise ValueError(f"invalid timeout: {timeout_usec!r}")

    entries = [(s.fileno(), select.POLLOUT) for s in tx_list]
    entries += [(s.fileno(), select.POLLIN) for s in rx_list]
    if any(fd < 0 for fd, _ in entries):
        raise ValueError("socket is closed")

    poller = select.poll()
    for fd, mask in entries:
        poller.register(fd, mask)
    timeout_ms = min(timeout_usec // 1000, _INT_MAX)
    try:
        events = poller.poll(timeout_ms)
    except OSError as ex:
        raise _platform_error(ex) from ex

    revents: dict[int, int] = {}
    for fd, event in events:
        revents[fd] = revents.get(fd, 0) | event
    tx_ready = [bool(revents.get(s.fileno(), 0) & select.POLLOUT) for s in tx_list]
    rx_ready = [bool(revents.get(s.fileno(), 0) & select.POLLIN) for s in rx_list]
    return tx_ready, rx_ready