import asyncio
import logging
import time

from turbohandshake.common.errors import (
    InvalidResponseHandshake,
    PeerConnectionFailure,
    StreamIoTimeout,
)
from turbohandshake.peer.handshake import HANDSHAKE_FIXED_LENGTH, HandshakeMessage
from turbohandshake.peer.transport import Transport

logger = logging.getLogger(__name__)


class PeerConnection:
    """Runs the peer wire handshake over a transport it exclusively owns.

    Send and receive are separate phases, each bounded by `io_timeout` on its
    own. The caller keeps responsibility for shutting down and closing the
    transport once `handshake` returns or raises.
    """

    __slots__ = ("transport", "io_timeout", "host", "port", "remote_peer_id")

    def __init__(self, transport: Transport, io_timeout: float):
        self.transport = transport
        self.io_timeout = io_timeout
        try:
            self.host, self.port = transport.peer_addr()
        except OSError:
            self.host, self.port = "?", 0
        self.remote_peer_id: bytes | None = None

    async def _with_io_timeout(self, phase):
        try:
            async with asyncio.timeout(self.io_timeout):
                return await phase
        except TimeoutError:
            raise StreamIoTimeout(self.io_timeout) from None

    async def _send_handshake(self, message: bytes):
        logger.debug(f"[{self.host}:{self.port}] start handshake with peer...")
        sent = 0
        while sent < len(message):
            try:
                await self.transport.writable()
                sent += self.transport.try_write(message[sent:])
            except BlockingIOError:
                continue
            except OSError as e:
                raise PeerConnectionFailure(
                    f"Failed to send handshake to {self.host}:{self.port}: {e}"
                ) from e
        logger.debug(f"[{self.host}:{self.port}] handshake sent ({sent} bytes)")

    async def _read_some(self, size: int) -> bytes:
        while True:
            try:
                await self.transport.readable()
                return self.transport.try_read(size)
            except BlockingIOError:
                continue
            except OSError as e:
                raise PeerConnectionFailure(
                    f"Failed to read handshake from {self.host}:{self.port}: {e}"
                ) from e

    async def _read_length_prefix(self) -> int:
        # A zero prefix may be a placeholder from a stream with no real data yet;
        # keep polling until it has persisted for io_timeout. The receive phase
        # deadline shares that budget and normally fires first.
        zero_since = None
        while True:
            prefix = await self._read_some(1)
            if not prefix:
                raise PeerConnectionFailure(
                    f"Peer {self.host}:{self.port} closed the connection before handshaking"
                )
            if prefix[0] != 0:
                return prefix[0]
            now = time.monotonic()
            if zero_since is None:
                zero_since = now
            elif now - zero_since >= self.io_timeout:
                raise StreamIoTimeout(self.io_timeout)

    async def _receive_handshake(self) -> HandshakeMessage:
        logger.debug(f"[{self.host}:{self.port}] waiting for handshake response")
        protocol_id_length = await self._read_length_prefix()

        expected = protocol_id_length + HANDSHAKE_FIXED_LENGTH
        buf = bytearray((protocol_id_length,))
        while len(buf) < expected:
            chunk = await self._read_some(expected - len(buf))
            if not chunk:
                break
            buf += chunk
        return HandshakeMessage.decode(bytes(buf))

    async def handshake(self, peer_id: bytes, info_hash: bytes) -> HandshakeMessage:
        message = HandshakeMessage(peer_id, info_hash).encode()
        await self._with_io_timeout(self._send_handshake(message))
        response = await self._with_io_timeout(self._receive_handshake())
        logger.debug(f"[{self.host}:{self.port}] handshake response received: {response}")

        if response.info_hash != info_hash:
            logger.debug(
                f"[{self.host}:{self.port}] info hash mismatch: "
                f"{info_hash.hex()} != {response.info_hash.hex()}"
            )
            raise InvalidResponseHandshake(response)

        self.remote_peer_id = response.peer_id
        logger.info(
            f"Handshake completed with peer {self.host}:{self.port} "
            f"(peer_id: {response.peer_id[:8]!r}...)"
        )
        return response
