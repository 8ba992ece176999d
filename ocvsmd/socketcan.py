"""Non-blocking SocketCAN sockets carrying extended-ID Cyphal/CAN frames.

Frames are exchanged with the kernel in the ``canfd_frame`` layout, which is
binary compatible with the classic ``can_frame`` for payloads of up to 8 bytes.
"""

from __future__ import annotations

import errno
import select
import socket
import struct
from collections.abc import Iterable
from dataclasses import dataclass

from .errors import PlatformError

CAN_EFF_FLAG = 0x80000000
"""Extended frame format flag of the CAN id."""
CAN_RTR_FLAG = 0x40000000
"""Remote transmission request flag of the CAN id."""
CAN_ERR_FLAG = 0x20000000
"""Error frame flag of the CAN id."""
CAN_EFF_MASK = 0x1FFFFFFF
"""Mask of the 29-bit extended CAN id."""

CAN_MAX_DLEN = 8
CANFD_MAX_DLEN = 64
CANFD_BRS = 0x01
CAN_RAW_FILTER_MAX = 512
IFNAMSIZ = 16

_FRAME_STRUCT = struct.Struct("=IBBBB64s")
_FILTER_STRUCT = struct.Struct("=II")
_TIMEVAL_STRUCT = struct.Struct("@ll")
_HEADER_SIZE = 8

CAN_MTU = _HEADER_SIZE + CAN_MAX_DLEN
CANFD_MTU = _FRAME_STRUCT.size

_PF_CAN = getattr(socket, "PF_CAN", 29)
_CAN_RAW = getattr(socket, "CAN_RAW", 1)
_SOL_CAN_RAW = getattr(socket, "SOL_CAN_RAW", 101)
_CAN_RAW_FILTER = getattr(socket, "CAN_RAW_FILTER", 1)
_CAN_RAW_RECV_OWN_MSGS = getattr(socket, "CAN_RAW_RECV_OWN_MSGS", 4)
_CAN_RAW_FD_FRAMES = getattr(socket, "CAN_RAW_FD_FRAMES", 5)
_SO_TIMESTAMP = getattr(socket, "SO_TIMESTAMP", 29)
_SOCK_NONBLOCK = getattr(socket, "SOCK_NONBLOCK", 0)
_MSG_DONTWAIT = getattr(socket, "MSG_DONTWAIT", 0)
_MSG_CONFIRM = getattr(socket, "MSG_CONFIRM", 0x800)
_UINT8_MAX = 0xFF
_MEGA = 1_000_000


@dataclass(frozen=True)
class CanFrame:
    """An extended-ID CAN data frame.

    ``timestamp_usec`` is the kernel receive time (CLOCK_REALTIME) when known;
    ``loopback`` marks a frame that this host sent itself.
    """

    extended_can_id: int
    payload: bytes = b""
    timestamp_usec: int | None = None
    loopback: bool = False


@dataclass(frozen=True)
class CanFilter:
    """Acceptance filter for extended-format data frames."""

    extended_can_id: int
    extended_mask: int


def _platform_error(ex: OSError) -> PlatformError:
    return PlatformError(ex.errno if ex.errno else errno.EIO)


def encode_frame(frame: CanFrame) -> bytes:
    """Serialize a frame as the kernel expects it.

    Payloads of up to 8 bytes use the classic MTU, longer ones the CAN FD MTU.
    """
    if frame is None or frame.payload is None:
        raise ValueError("frame or its payload is missing")
    payload = bytes(frame.payload)
    if len(payload) > _UINT8_MAX or len(payload) > CANFD_MAX_DLEN:
        raise ValueError(f"payload too large: {len(payload)} bytes")
    can_id = frame.extended_can_id | CAN_EFF_FLAG
    if not 0 <= can_id <= 0xFFFFFFFF:
        raise ValueError(f"invalid CAN id: {frame.extended_can_id!r}")
    # Bit rate switch is set on the assumption that classic hardware ignores it.
    raw = _FRAME_STRUCT.pack(can_id, len(payload), CANFD_BRS, 0, 0, payload)
    mtu = CANFD_MTU if len(payload) > CAN_MAX_DLEN else CAN_MTU
    return raw[:mtu]


def decode_frame(data: bytes) -> CanFrame | None:
    """Parse a frame read from the kernel.

    Returns None for anything but an extended data frame (standard id, RTR or
    error frames are dropped silently).
    """
    raw = bytes(data)
    if len(raw) not in (CAN_MTU, CANFD_MTU):
        raise PlatformError(errno.EIO)
    can_id, length, _flags, _res0, _res1, body = _FRAME_STRUCT.unpack(raw.ljust(CANFD_MTU, b"\0"))
    if length > CANFD_MAX_DLEN:
        raise PlatformError(errno.EFBIG)
    valid = (
        (can_id & CAN_EFF_FLAG) != 0
        and (can_id & CAN_ERR_FLAG) == 0
        and (can_id & CAN_RTR_FLAG) == 0
    )
    if not valid:
        return None
    return CanFrame(extended_can_id=can_id & CAN_EFF_MASK, payload=body[:length])


def encode_filters(filters: Iterable[CanFilter]) -> bytes:
    """Serialize acceptance filters as an array of kernel ``can_filter`` entries."""
    if filters is None:
        raise ValueError("filters are missing")
    items = list(filters)
    if len(items) > CAN_RAW_FILTER_MAX:
        raise PlatformError(errno.EFBIG)
    return b"".join(
        _FILTER_STRUCT.pack(
            (f.extended_can_id & CAN_EFF_MASK) | CAN_EFF_FLAG,
            (f.extended_mask & CAN_EFF_MASK) | CAN_EFF_FLAG | CAN_RTR_FLAG,
        )
        for f in items
    )


def _poll(sock: socket.socket, mask: int, timeout_usec: int) -> bool:
    """Wait for the event; False on timeout, PlatformError on a foreign event."""
    if timeout_usec < 0:
        raise ValueError(f"invalid timeout: {timeout_usec!r}")
    poller = select.poll()
    poller.register(sock.fileno(), mask)
    try:
        events = poller.poll(timeout_usec / 1000)
    except OSError as ex:
        raise _platform_error(ex) from ex
    if not events:
        return False
    revents = 0
    for _fd, event in events:
        revents |= event
    if revents & mask == 0:
        raise PlatformError(errno.EIO)
    return True


class SocketCan:
    """A non-blocking raw CAN socket bound to one interface."""

    def __init__(self, sock: socket.socket) -> None:
        self._sock: socket.socket | None = sock

    @classmethod
    def open(cls, iface_name: str, can_fd: bool = False) -> SocketCan:
        """Open and bind a socket with timestamping and own-message loop-back enabled."""
        if len(iface_name.encode()) + 1 > IFNAMSIZ:
            raise PlatformError(errno.ENAMETOOLONG)
        try:
            sock = socket.socket(_PF_CAN, socket.SOCK_RAW | _SOCK_NONBLOCK, _CAN_RAW)
        except OSError as ex:
            raise _platform_error(ex) from ex
        try:
            sock.setblocking(False)
            sock.bind((iface_name,))
            if can_fd:
                sock.setsockopt(_SOL_CAN_RAW, _CAN_RAW_FD_FRAMES, 1)
            sock.setsockopt(socket.SOL_SOCKET, _SO_TIMESTAMP, 1)
            sock.setsockopt(_SOL_CAN_RAW, _CAN_RAW_RECV_OWN_MSGS, 1)
        except OSError as ex:
            sock.close()
            raise _platform_error(ex) from ex
        return cls(sock)

    def _require_open(self) -> socket.socket:
        if self._sock is None:
            raise ValueError("socket is closed")
        return self._sock

    def push(self, frame: CanFrame, timeout_usec: int = 0) -> bool:
        """Enqueue a frame for transmission.

        Returns True when enqueued, False if the timeout expired first.
        """
        sock = self._require_open()
        data = encode_frame(frame)
        if not _poll(sock, select.POLLOUT, timeout_usec):
            return False
        try:
            sock.send(data)
        except OSError as ex:
            raise _platform_error(ex) from ex
        return True

    def pop(self, timeout_usec: int = 0, accept_loopback: bool = False) -> CanFrame | None:
        """Fetch one extended data frame.

        Returns None on timeout and when the frame is dropped (not an extended
        data frame, or a looped-back frame while ``accept_loopback`` is False).
        """
        sock = self._require_open()
        if not _poll(sock, select.POLLIN, timeout_usec):
            return None
        try:
            data, ancdata, msg_flags, _addr = sock.recvmsg(
                CANFD_MTU, socket.CMSG_SPACE(_TIMEVAL_STRUCT.size), _MSG_DONTWAIT
            )
        except OSError as ex:
            raise _platform_error(ex) from ex
        frame = decode_frame(data)
        if frame is None:
            return None
        is_loopback = (msg_flags & _MSG_CONFIRM) != 0
        if is_loopback and not accept_loopback:
            return None
        timestamp = None
        for level, kind, cdata in ancdata:
            if level == socket.SOL_SOCKET and kind == _SO_TIMESTAMP and len(cdata) >= _TIMEVAL_STRUCT.size:
                sec, usec = _TIMEVAL_STRUCT.unpack(cdata[: _TIMEVAL_STRUCT.size])
                timestamp = sec * _MEGA + usec
                break
        return CanFrame(
            extended_can_id=frame.extended_can_id,
            payload=frame.payload,
            timestamp_usec=timestamp,
            loopback=is_loopback,
        )

    def set_filters(self, filters: Iterable[CanFilter]) -> None:
        """Apply acceptance filters; only extended data frames can be accepted."""
        sock = self._require_open()
        data = encode_filters(filters)
        try:
            sock.setsockopt(_SOL_CAN_RAW, _CAN_RAW_FILTER, data)
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

    def __enter__(self) -> SocketCan:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()