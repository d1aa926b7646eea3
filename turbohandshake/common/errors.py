"""Exception hierarchy shared by every turbohandshake subsystem."""


class TorrentError(Exception):
    """Base class for all client errors."""


# Metainfo


class MetainfoError(TorrentError):
    pass


class FailedToReadFile(MetainfoError):
    pass


class FailedToParseFile(MetainfoError):
    pass


class InvalidPiecesData(MetainfoError):
    def __init__(self, length: int):
        super().__init__(f"info.pieces length {length} is not a multiple of 20")
        self.length = length


# Tracker


class TrackerError(TorrentError):
    pass


class HttpTransportError(TrackerError):
    pass


class TrackerResponseDecodeError(TrackerError):
    pass


class TrackerFailure(TrackerError):
    """The tracker answered with a `failure reason`."""

    def __init__(self, reason: str):
        super().__init__(f"Tracker failure: {reason}")
        self.reason = reason


class IPAddressParseFailed(TrackerError):
    def __init__(self, ip: str):
        super().__init__(f"Failed to parse IP address: {ip!r}")
        self.ip = ip


class PeerAddressInvalidLength(TrackerError):
    def __init__(self, length: int):
        super().__init__(f"Invalid length of bytes of peer address: {length}")
        self.length = length


# Peer wire


class PeerWireError(TorrentError):
    pass


class PeerConnectionFailure(PeerWireError):
    pass


class PeerConnectionTimeout(PeerConnectionFailure):
    def __init__(self, timeout: float):
        super().__init__(f"Peer connection timeout: {timeout}s")
        self.timeout = timeout


class EmptyHandshakeMessage(PeerWireError):
    pass


class InvalidHandshakeLength(PeerWireError):
    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Invalid handshake message bytes length: expected {expected}, got {actual}"
        )
        self.expected = expected
        self.actual = actual


class InvalidResponseHandshake(PeerWireError):
    """The peer answered for a different torrent; `message` is what it sent."""

    def __init__(self, message):
        super().__init__(f"Invalid response handshake message: {message!r}")
        self.message = message


class StreamIoTimeout(PeerWireError):
    def __init__(self, timeout: float):
        super().__init__(f"Peer connection I/O timeout: {timeout}s")
        self.timeout = timeout


class InternalTaskFault(TorrentError):
    """A peer task died from something other than an ordinary network error."""
