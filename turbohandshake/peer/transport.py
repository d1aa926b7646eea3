import asyncio
import errno
import logging
import socket
from typing import Protocol

from turbohandshake.common.errors import PeerConnectionFailure, PeerConnectionTimeout
from turbohandshake.tracker.tracker_client import PeerAddress

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Byte stream the handshake runs over.

    `try_write`/`try_read` never block: they raise `BlockingIOError` when the
    stream is not ready, any other `OSError` on real failure, and `try_read`
    returns `b""` at end of stream.
    """

    async def writable(self) -> None: ...

    async def readable(self) -> None: ...

    def try_write(self, data: bytes) -> int: ...

    def try_read(self, size: int) -> bytes: ...

    def peer_addr(self) -> tuple[str, int]: ...

    def shutdown(self) -> None: ...

    def close(self) -> None: ...


def _wake(waiter: asyncio.Future):
    if not waiter.done():
        waiter.set_result(None)


class SocketTransport:
    """`Transport` over a non-blocking TCP socket driven by loop readiness callbacks."""

    __slots__ = ("_sock", "_loop")

    def __init__(self, sock: socket.socket, loop: asyncio.AbstractEventLoop | None = None):
        sock.setblocking(False)
        self._sock = sock
        self._loop = loop or asyncio.get_running_loop()

    @classmethod
    async def connect(cls, address: PeerAddress, timeout: float) -> "SocketTransport":
        loop = asyncio.get_running_loop()
        family = socket.AF_INET6 if address.ip.version == 6 else socket.AF_INET
        try:
            sock = socket.socket(family, socket.SOCK_STREAM)
        except OSError as e:
            raise PeerConnectionFailure(f"Failed to open socket for {address}: {e}") from e
        sock.setblocking(False)
        try:
            async with asyncio.timeout(timeout):
                await loop.sock_connect(sock, (str(address.ip), address.port))
        except TimeoutError:
            sock.close()
            raise PeerConnectionTimeout(timeout) from None
        except OSError as e:
            sock.close()
            raise PeerConnectionFailure(f"Failed to connect to {address}: {e}") from e
        except BaseException:
            sock.close()
            raise
        logger.debug(f"TCP connection established to {address}")
        return cls(sock, loop)

    async def _wait(self, add, remove):
        fd = self._sock.fileno()
        if fd < 0:
            raise OSError(errno.EBADF, "transport is closed")
        waiter = self._loop.create_future()
        add(fd, _wake, waiter)
        try:
            await waiter
        finally:
            remove(fd)

    async def writable(self) -> None:
        await self._wait(self._loop.add_writer, self._loop.remove_writer)

    async def readable(self) -> None:
        await self._wait(self._loop.add_reader, self._loop.remove_reader)

    def try_write(self, data: bytes) -> int:
        return self._sock.send(data)

    def try_read(self, size: int) -> bytes:
        return self._sock.recv(size)

    def peer_addr(self) -> tuple[str, int]:
        return self._sock.getpeername()[:2]

    def shutdown(self) -> None:
        self._sock.shutdown(socket.SHUT_RDWR)

    def close(self) -> None:
        self._sock.close()
