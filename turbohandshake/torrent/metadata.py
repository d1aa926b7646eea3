SHA1_HASH_LENGTH = 20


class TorrentFileEntry:
    __slots__ = ("path", "length", "offset")

    def __init__(self, path: str, length: int, offset: int):
        self.path = path
        self.length = length
        self.offset = offset

    def __repr__(self):
        return f"TorrentFileEntry({self.path!r}, length={self.length}, offset={self.offset})"


class TorrentMetadata:
    """Parsed .torrent description. Built once by the parser, never mutated."""

    __slots__ = (
        "announce",
        "info_hash",
        "piece_hashes",
        "piece_length",
        "length",
        "name",
        "files",
        "md5sum",
    )

    def __init__(
        self,
        announce: str,
        info_hash: bytes,
        piece_hashes: list[bytes],
        piece_length: int,
        length: int,
        name: str,
        files: list[TorrentFileEntry],
        md5sum: str | None = None,
    ):
        self.announce = announce
        self.info_hash = info_hash
        self.piece_hashes = piece_hashes
        self.piece_length = piece_length
        self.length = length
        self.name = name
        self.files = files
        self.md5sum = md5sum

    def __repr__(self):
        return (
            f"TorrentMetadata(name={self.name!r}, info_hash={self.info_hash.hex()}, "
            f"pieces={len(self.piece_hashes)}, length={self.length})"
        )
