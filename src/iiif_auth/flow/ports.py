"""
Free-port selection for the callback listener.

A port is probed by binding and immediately closing a socket, so another
process can take it before the listener binds.
"""

from __future__ import annotations

import logging
import socket

from iiif_auth.errors import NoPortAvailableError
from iiif_auth.settings import PortRange


logger = logging.getLogger(__name__)


def is_port_available(port: int, *, host: str = "127.0.0.1") -> bool:
    """True if a TCP socket can be bound to ``host:port`` right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def find_available_port(start: int, end: int, *, host: str = "127.0.0.1") -> int:
    """
    Return the first bindable port in the closed range ``[start, end]``.

    Raises:
        NoPortAvailableError: If every port in the range is taken
        ValueError: If the range is empty or out of bounds
    """
    for port in PortRange(start, end):
        if is_port_available(port, host=host):
            logger.debug("port_selected", extra={"port": port})
            return port
    raise NoPortAvailableError(f"No available ports found between {start} and {end}")
