"""Non-blocking stream transports for TCP and Unix domain sockets.

A transport exposes readiness waits and best-effort reads and writes. The
``try_*`` calls never block: when the socket is not ready they raise
``BlockingIOError`` and the caller waits for readiness again. Readiness waits
use the running event loop's reader/writer callbacks, so a selector based
loop is required.
"""

import asyncio
import logging
import socket

from .errors import QapConnectionError

_LOGGER = logging.getLogger(__name__)


def _set_ready(fut):
    if not fut.done():
        fut.set_result(None)


class Transport:
    """Stream socket wrapper shared by the TCP and Unix variants."""

    kind = None

    def __init__(self, sock):
        sock.setblocking(False)
        self._sock = sock

    def __repr__(self):
        return f"<{type(self).__name__} fd={self.fileno()}>"

    def fileno(self):
        return self._sock.fileno()

    @property
    def closed(self):
        return self._sock.fileno() < 0

    async def _wait(self, add, remove):
        if self.closed:
            raise QapConnectionError("transport is closed")
        loop = asyncio.get_running_loop()
        fut = loop.create_future()
        fd = self._sock.fileno()
        getattr(loop, add)(fd, _set_ready, fut)
        try:
            await fut
        finally:
            getattr(loop, remove)(fd)

    async def wait_readable(self):
        """Suspend until the socket has data (or EOF) to read."""
        await self._wait("add_reader", "remove_reader")

    async def wait_writable(self):
        """Suspend until the socket accepts more data."""
        await self._wait("add_writer", "remove_writer")

    def try_read(self, buf):
        """Read into buf without blocking. Returns the byte count, 0 on EOF."""
        return self._sock.recv_into(buf)

    def try_write(self, data):
        """Write data without blocking. Returns the number of bytes accepted."""
        return self._sock.send(data)

    def shutdown(self):
        """Shut down both directions and close the socket."""
        if self.closed:
            return
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError as err:
            # Peer may already have gone away.
            _LOGGER.debug("Shutdown of %r failed: %s", self, err)
        finally:
            self._sock.close()


class TcpTransport(Transport):
    """TCP stream."""

    kind = "tcp"

    @classmethod
    async def open(cls, host, port):
        loop = asyncio.get_running_loop()
        infos = await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)
        if not infos:
            raise OSError(f"cannot resolve {host}:{port}")
        last_err = None
        for family, type_, proto, _canon, addr in infos:
            sock = None
            try:
                sock = socket.socket(family, type_, proto)
                sock.setblocking(False)
                await loop.sock_connect(sock, addr)
            except OSError as err:
                if sock is not None:
                    sock.close()
                last_err = err
                continue
            except BaseException:
                if sock is not None:
                    sock.close()
                raise
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
            return cls(sock)
        raise last_err


class UnixTransport(Transport):
    """Unix domain stream."""

    kind = "unix"

    @classmethod
    async def open(cls, path):
        loop = asyncio.get_running_loop()
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.setblocking(False)
            await loop.sock_connect(sock, path)
        except BaseException:
            # Includes cancellation by a connect timeout.
            sock.close()
            raise
        return cls(sock)
