"""Building blocks for an OpenCyphal node management service: configuration, UDP and SocketCAN sockets, file server."""

__version__ = "0.1.0"

__all__ = [
    "config",
    "errors",
    "file_provider",
    "file_server",
    "socketcan",
    "udp",
    "udp_media",
]