import ipaddress
import logging
import struct
from typing import NamedTuple
from urllib.parse import quote, urlencode

import bencodepy
import httpx

from turbohandshake.common.errors import (
    HttpTransportError,
    IPAddressParseFailed,
    PeerAddressInvalidLength,
    TrackerFailure,
    TrackerResponseDecodeError,
)

logger = logging.getLogger(__name__)

DEFAULT_PORT = 6881

# compact peer: 4 byte IPv4 + 2 byte big-endian port
COMPACT_PEER_IP_LENGTH = 4
COMPACT_PEER_LENGTH = COMPACT_PEER_IP_LENGTH + 2

EVENTS = frozenset({"started", "completed", "stopped"})


class PeerAddress(NamedTuple):
    ip: ipaddress.IPv4Address | ipaddress.IPv6Address
    port: int

    def __str__(self):
        if self.ip.version == 6:
            return f"[{self.ip}]:{self.port}"
        return f"{self.ip}:{self.port}"


def decode_compact_peers(data: bytes) -> list[PeerAddress]:
    peers = []
    for i in range(0, len(data), COMPACT_PEER_LENGTH):
        chunk = data[i : i + COMPACT_PEER_LENGTH]
        if len(chunk) != COMPACT_PEER_LENGTH:
            raise PeerAddressInvalidLength(len(chunk))
        ip = ipaddress.IPv4Address(chunk[:COMPACT_PEER_IP_LENGTH])
        (port,) = struct.unpack(">H", chunk[COMPACT_PEER_IP_LENGTH:])
        peers.append(PeerAddress(ip, port))
    return peers


def decode_peer_list(entries: list) -> list[PeerAddress]:
    peers = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise TrackerResponseDecodeError("peer list entries must be dictionaries")
        raw_ip = entry.get(b"ip")
        port = entry.get(b"port")
        if not isinstance(raw_ip, bytes) or not isinstance(port, int):
            raise TrackerResponseDecodeError(f"malformed peer entry: {entry!r}")
        if not 0 <= port <= 0xFFFF:
            raise TrackerResponseDecodeError(f"peer port out of range: {port}")
        ip_text = raw_ip.decode("utf-8", errors="replace")
        try:
            ip = ipaddress.ip_address(ip_text)
        except ValueError as e:
            raise IPAddressParseFailed(ip_text) from e
        # `peer id` is not surfaced
        peers.append(PeerAddress(ip, port))
    return peers


class AnnounceResponse:
    __slots__ = (
        "failure_reason",
        "warning_message",
        "interval",
        "min_interval",
        "tracker_id",
        "complete",
        "incomplete",
        "peers",
    )

    def __init__(
        self,
        interval: int | None,
        peers: bytes | list,
        failure_reason: str | None = None,
        warning_message: str | None = None,
        min_interval: int | None = None,
        tracker_id: str | None = None,
        complete: int | None = None,
        incomplete: int | None = None,
    ):
        self.interval = interval
        self.peers = peers
        self.failure_reason = failure_reason
        self.warning_message = warning_message
        self.min_interval = min_interval
        self.tracker_id = tracker_id
        self.complete = complete
        self.incomplete = incomplete

    def peer_addresses(self) -> list[PeerAddress]:
        """Normalize either peers encoding; the shape on the wire decides which."""
        if isinstance(self.peers, bytes):
            return decode_compact_peers(self.peers)
        if isinstance(self.peers, list):
            return decode_peer_list(self.peers)
        raise TrackerResponseDecodeError(
            f"unsupported peers value of type {type(self.peers).__name__}"
        )


def _optional_int(decoded: dict, key: bytes) -> int | None:
    value = decoded.get(key)
    if value is not None and not isinstance(value, int):
        raise TrackerResponseDecodeError(f"{key.decode()!r} must be an integer")
    return value


def _optional_text(decoded: dict, key: bytes) -> str | None:
    value = decoded.get(key)
    if value is None:
        return None
    if not isinstance(value, bytes):
        raise TrackerResponseDecodeError(f"{key.decode()!r} must be a string")
    return value.decode("utf-8", errors="replace")


def decode_announce_response(body: bytes) -> AnnounceResponse:
    try:
        decoded = bencodepy.decode(body)
    except (bencodepy.BencodeDecodeError, ValueError) as e:
        raise TrackerResponseDecodeError(f"malformed tracker response: {e}") from e
    if not isinstance(decoded, dict):
        raise TrackerResponseDecodeError("tracker response must be a dictionary")

    failure_reason = _optional_text(decoded, b"failure reason")
    if failure_reason is None:
        if b"interval" not in decoded:
            raise TrackerResponseDecodeError("tracker response has no 'interval'")
        if b"peers" not in decoded:
            raise TrackerResponseDecodeError("tracker response has no 'peers'")

    return AnnounceResponse(
        interval=_optional_int(decoded, b"interval"),
        peers=decoded.get(b"peers", b""),
        failure_reason=failure_reason,
        warning_message=_optional_text(decoded, b"warning message"),
        min_interval=_optional_int(decoded, b"min interval"),
        tracker_id=_optional_text(decoded, b"tracker id"),
        complete=_optional_int(decoded, b"complete"),
        incomplete=_optional_int(decoded, b"incomplete"),
    )


class TrackerClient:
    __slots__ = (
        "announce_url",
        "info_hash",
        "peer_id",
        "port",
        "total_length",
        "compact",
        "timeout",
        "http_client",
        "uploaded",
        "downloaded",
        "left",
        "interval",
        "min_interval",
        "tracker_id",
        "complete",
        "incomplete",
    )

    def __init__(
        self,
        announce_url: str,
        info_hash: bytes,
        peer_id: bytes,
        port: int = DEFAULT_PORT,
        total_length: int = 0,
        compact: bool = True,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ):
        self.announce_url = announce_url
        self.info_hash = info_hash
        self.peer_id = peer_id
        self.port = port
        self.total_length = total_length
        self.compact = compact
        self.timeout = timeout
        self.http_client = http_client
        self.uploaded = 0
        self.downloaded = 0
        self.left = total_length
        self.interval = None
        self.min_interval = None
        self.tracker_id = None
        self.complete = None
        self.incomplete = None

    def _build_query(self, event: str | None = None) -> str:
        params = {
            "info_hash": self.info_hash,  # raw bytes, percent-encoded byte by byte
            "peer_id": self.peer_id,
            "port": self.port,
            "uploaded": self.uploaded,
            "downloaded": self.downloaded,
            "left": self.left,
            "compact": int(self.compact),
        }
        if event:
            if event not in EVENTS:
                raise ValueError(f"Unknown announce event: {event}")
            params["event"] = event
        if self.tracker_id is not None:
            params["trackerid"] = self.tracker_id
        return urlencode(params, quote_via=quote)

    def build_url(self, event: str | None = None) -> str:
        separator = "&" if "?" in self.announce_url else "?"
        return f"{self.announce_url}{separator}{self._build_query(event)}"

    async def _get(self, url: str) -> bytes:
        if self.http_client is not None:
            response = await self.http_client.get(url, timeout=self.timeout)
            response.raise_for_status()
            return response.content
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.content

    async def announce(self, event: str | None = None) -> AnnounceResponse:
        scheme = self.announce_url.split(":", 1)[0].lower()
        if scheme not in {"http", "https"}:
            raise HttpTransportError(f"Unsupported tracker protocol: {scheme}")

        url = self.build_url(event)
        logger.debug(f"Announce URL: {url}")
        try:
            body = await self._get(url)
        except httpx.HTTPError as e:
            raise HttpTransportError(f"Announce to {self.announce_url} failed: {e}") from e

        response = decode_announce_response(body)
        if response.failure_reason is not None:
            raise TrackerFailure(response.failure_reason)
        if response.warning_message:
            logger.warning(f"Tracker warning: {response.warning_message}")

        self.interval = response.interval
        self.min_interval = response.min_interval
        self.tracker_id = response.tracker_id or self.tracker_id
        self.complete = response.complete
        self.incomplete = response.incomplete
        logger.info(
            f"Tracker replied: interval={response.interval}, "
            f"complete={response.complete}, incomplete={response.incomplete}"
        )
        return response

    async def started(self) -> AnnounceResponse:
        return await self.announce(event="started")
