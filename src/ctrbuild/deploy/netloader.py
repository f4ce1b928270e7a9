"""
NetloaderTransport - find and ping a 3DS running the Homebrew Launcher netloader.

Discovery uses the same UDP handshake as 3dslink: the host sends "3dsboot"
to port 17491 (broadcast, or unicast when the address is known) from port
17495, and a listening device replies "boot3ds". The upload itself is left to
3dslink.
"""

import logging
import socket
from typing import Optional

from ctrbuild.core.protocols import DatagramSocketFactory, TimeProvider

logger = logging.getLogger(__name__)

NETLOADER_SERVER_PORT = 17491
NETLOADER_CLIENT_PORT = 17495
PING_MESSAGE = b'3dsboot'
PING_REPLY = b'boot3ds'
BROADCAST_ADDRESS = '255.255.255.255'
PING_INTERVAL = 0.5


class NetloaderTransport:
    """
    UDP ping transport for the 3DS netloader.

    Args:
        socket_factory: Creates UDP sockets
        time_provider: Clock for the discovery deadline
    """

    def __init__(self, socket_factory: DatagramSocketFactory, time_provider: TimeProvider):
        self.sockets = socket_factory
        self.time = time_provider

    def _wait_for_reply(self, sock, timeout: float) -> Optional[str]:
        """Read datagrams until a valid reply arrives or ``timeout`` passes."""
        deadline = self.time.current_time() + timeout
        while True:
            remaining = deadline - self.time.current_time()
            if remaining <= 0:
                return None
            sock.settimeout(remaining)
            try:
                data, (host, _port) = sock.recvfrom(64)
            except socket.timeout:
                return None
            if data.startswith(PING_REPLY):
                return host
            logger.debug("Ignoring unexpected datagram from %s: %r", host, data)

    def discover(self, timeout: float) -> Optional[str]:
        """Broadcast pings until a device answers or ``timeout`` elapses."""
        sock = self.sockets.create(broadcast=True, port=NETLOADER_CLIENT_PORT)
        try:
            deadline = self.time.current_time() + timeout
            while self.time.current_time() < deadline:
                logger.debug("Broadcasting netloader ping")
                sock.sendto(PING_MESSAGE, (BROADCAST_ADDRESS, NETLOADER_SERVER_PORT))
                wait = min(PING_INTERVAL, deadline - self.time.current_time())
                host = self._wait_for_reply(sock, wait)
                if host:
                    logger.debug("Device answered from %s", host)
                    return host
            return None
        finally:
            sock.close()

    def ping(self, address: str, timeout: float) -> bool:
        """Send one ping to ``address``; True if it answers within ``timeout``."""
        sock = self.sockets.create(broadcast=False, port=NETLOADER_CLIENT_PORT)
        try:
            sock.sendto(PING_MESSAGE, (address, NETLOADER_SERVER_PORT))
            return self._wait_for_reply(sock, timeout) is not None
        except OSError as e:
            # Unresolvable hostname, unreachable network, ...
            logger.debug("Ping to %s failed: %s", address, e)
            return False
        finally:
            sock.close()
