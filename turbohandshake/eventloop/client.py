import asyncio
import logging
import random
import string
from collections.abc import Awaitable, Callable
from pathlib import Path

import httpx

from turbohandshake.common.config import DEFAULT_CONFIG, ClientConfig
from turbohandshake.common.errors import InternalTaskFault, PeerWireError
from turbohandshake.peer.connected_peer import PeerConnection
from turbohandshake.peer.transport import SocketTransport, Transport
from turbohandshake.torrent.metadata import TorrentMetadata
from turbohandshake.torrent.parser import parse_torrent_file
from turbohandshake.tracker.tracker_client import PeerAddress, TrackerClient

logger = logging.getLogger(__name__)

PEER_ID_PREFIX = b"-TT0100-"
PEER_ID_LENGTH = 20
_PEER_ID_ALPHABET = string.ascii_letters + string.digits

TransportFactory = Callable[[PeerAddress, float], Awaitable[Transport]]


def generate_peer_id(rng: random.Random | None = None) -> bytes:
    """Azureus-style peer id: client prefix followed by random alphanumerics."""
    rng = rng or random.SystemRandom()
    suffix = "".join(
        rng.choice(_PEER_ID_ALPHABET) for _ in range(PEER_ID_LENGTH - len(PEER_ID_PREFIX))
    )
    return PEER_ID_PREFIX + suffix.encode("ascii")


class PeerOutcome:
    __slots__ = ("address", "peer_id", "error")

    def __init__(
        self,
        address: PeerAddress,
        peer_id: bytes | None = None,
        error: Exception | None = None,
    ):
        self.address = address
        self.peer_id = peer_id
        self.error = error

    @property
    def ok(self) -> bool:
        return self.error is None

    def __repr__(self):
        status = "ok" if self.ok else f"error={self.error!r}"
        return f"PeerOutcome({self.address}, {status})"


class DownloadSummary:
    __slots__ = ("torrent", "outcomes")

    def __init__(self, torrent: TorrentMetadata, outcomes: list[PeerOutcome]):
        self.torrent = torrent
        self.outcomes = outcomes

    @property
    def attempted(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.ok)

    @property
    def failed(self) -> int:
        return self.attempted - self.succeeded


class TorrentClient:
    """Parses a torrent, announces it, then handshakes with every peer at once.

    Each peer gets its own task and its own transport; a failed peer only
    affects its own `PeerOutcome`.
    """

    __slots__ = ("config", "peer_id", "http_client", "transport_factory")

    def __init__(
        self,
        config: ClientConfig | None = None,
        peer_id: bytes | None = None,
        rng: random.Random | None = None,
        http_client: httpx.AsyncClient | None = None,
        transport_factory: TransportFactory | None = None,
    ):
        self.config = config or DEFAULT_CONFIG
        self.peer_id = peer_id or generate_peer_id(rng)
        self.http_client = http_client
        self.transport_factory = transport_factory or SocketTransport.connect
        logger.info(f"Initialized TorrentClient with peer_id {self.peer_id!r}")

    async def announce(self, torrent: TorrentMetadata) -> list[PeerAddress]:
        tracker = TrackerClient(
            torrent.announce,
            torrent.info_hash,
            self.peer_id,
            port=self.config.listen_port,
            total_length=torrent.length,
            compact=True,
            http_client=self.http_client,
            timeout=self.config.tracker_timeout,
        )
        response = await tracker.started()
        return response.peer_addresses()

    async def _connect_peer(self, address: PeerAddress, info_hash: bytes) -> PeerOutcome:
        try:
            transport = await self.transport_factory(
                address, self.config.stream_connect_timeout
            )
        except (PeerWireError, OSError) as e:
            logger.debug(f"Peer connection error for {address}: {e!r}")
            return PeerOutcome(address, error=e)

        try:
            try:
                connection = PeerConnection(transport, self.config.handshake_io_timeout)
                response = await connection.handshake(self.peer_id, info_hash)
            except (PeerWireError, OSError) as e:
                logger.debug(f"Peer connection error for {address}: {e!r}")
                return PeerOutcome(address, error=e)

            # the handshake is already validated; a failed shutdown does not undo it
            try:
                transport.shutdown()
            except OSError as e:
                logger.debug(f"Shutdown after handshake with {address} failed: {e!r}")
        finally:
            transport.close()
        return PeerOutcome(address, peer_id=response.peer_id)

    async def connect_peers(
        self, peers: list[PeerAddress], info_hash: bytes
    ) -> list[PeerOutcome]:
        tasks = [
            asyncio.create_task(self._connect_peer(peer, info_hash), name=f"peer-{peer}")
            for peer in peers
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        outcomes = []
        for peer, result in zip(peers, results):
            if isinstance(result, BaseException):
                logger.error(f"Peer task for {peer} crashed: {result!r}")
                raise InternalTaskFault(f"Peer task for {peer} crashed: {result!r}") from result
            outcomes.append(result)
        return outcomes

    async def download(self, torrent_path: Path) -> DownloadSummary:
        """Currently stops after handshaking: every validated peer is disconnected again."""
        torrent = parse_torrent_file(Path(torrent_path))
        logger.debug(f"Torrent file: {torrent.name}")

        peers = await self.announce(torrent)
        logger.info(f"{len(peers)} peers found")

        outcomes = await self.connect_peers(peers, torrent.info_hash)
        summary = DownloadSummary(torrent, outcomes)
        logger.info(
            f"Handshake round finished: {summary.succeeded}/{summary.attempted} peers ok, "
            f"{summary.failed} failed"
        )
        return summary
