from dataclasses import dataclass

from turbohandshake.common.errors import EmptyHandshakeMessage, InvalidHandshakeLength
from turbohandshake.torrent.metadata import SHA1_HASH_LENGTH

PROTOCOL_ID = b"BitTorrent protocol"
RESERVED_LENGTH = 8
# everything but the protocol id: length byte + reserved + info hash + 20 byte peer id
HANDSHAKE_FIXED_LENGTH = 1 + RESERVED_LENGTH + SHA1_HASH_LENGTH + 20


@dataclass(frozen=True, slots=True)
class HandshakeMessage:
    """<pstrlen><pstr><8 reserved><20 info_hash><peer_id>"""

    peer_id: bytes
    info_hash: bytes
    protocol_id: bytes = PROTOCOL_ID

    def encode(self) -> bytes:
        if len(self.protocol_id) > 0xFF:
            raise ValueError(f"protocol id too long: {len(self.protocol_id)} bytes")
        if len(self.info_hash) != SHA1_HASH_LENGTH:
            raise ValueError(f"info hash must be {SHA1_HASH_LENGTH} bytes")
        return b"".join(
            (
                bytes((len(self.protocol_id),)),
                self.protocol_id,
                bytes(RESERVED_LENGTH),
                self.info_hash,
                self.peer_id,
            )
        )

    @classmethod
    def decode(cls, data: bytes) -> "HandshakeMessage":
        """Protocol id and reserved bits are taken as sent; callers validate the info hash."""
        if not data:
            raise EmptyHandshakeMessage("empty handshake message")
        protocol_id_length = data[0]
        expected = protocol_id_length + HANDSHAKE_FIXED_LENGTH
        if len(data) < expected:
            raise InvalidHandshakeLength(expected, len(data))

        hash_start = 1 + protocol_id_length + RESERVED_LENGTH
        peer_id_start = hash_start + SHA1_HASH_LENGTH
        return cls(
            peer_id=bytes(data[peer_id_start:]),
            info_hash=bytes(data[hash_start:peer_id_start]),
            protocol_id=bytes(data[1 : 1 + protocol_id_length]),
        )
