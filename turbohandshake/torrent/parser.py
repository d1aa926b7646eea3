import hashlib
import logging
from pathlib import Path

import bencodepy

from turbohandshake.common.errors import (
    FailedToParseFile,
    FailedToReadFile,
    InvalidPiecesData,
)
from turbohandshake.torrent.metadata import (
    SHA1_HASH_LENGTH,
    TorrentFileEntry,
    TorrentMetadata,
)

logger = logging.getLogger(__name__)


def split_piece_hashes(pieces: bytes) -> list[bytes]:
    if len(pieces) % SHA1_HASH_LENGTH != 0:
        raise InvalidPiecesData(len(pieces))
    return [
        pieces[i : i + SHA1_HASH_LENGTH] for i in range(0, len(pieces), SHA1_HASH_LENGTH)
    ]


def compute_info_hash(info: dict) -> bytes:
    """SHA-1 of the info dict in canonical bencoding (keys sorted at every level)."""
    return hashlib.sha1(bencodepy.encode(_canonical(info))).digest()


def _canonical(value):
    if isinstance(value, dict):
        return {key: _canonical(value[key]) for key in sorted(value)}
    if isinstance(value, list):
        return [_canonical(item) for item in value]
    return value


def _require(mapping: dict, key: bytes, kind: type):
    if key not in mapping:
        raise FailedToParseFile(f"missing key {key.decode()!r}")
    value = mapping[key]
    if not isinstance(value, kind):
        raise FailedToParseFile(
            f"key {key.decode()!r} has type {type(value).__name__}, expected {kind.__name__}"
        )
    return value


def _text(raw: bytes, key: str) -> str:
    if not isinstance(raw, bytes):
        raise FailedToParseFile(f"key {key!r} must be a string")
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise FailedToParseFile(f"key {key!r} is not valid UTF-8") from e


def _parse_files(info: dict, name: str) -> tuple[list[TorrentFileEntry], int]:
    if b"files" not in info:
        length = _require(info, b"length", int)
        return [TorrentFileEntry(name, length, 0)], length

    files = []
    offset = 0
    for file_dict in _require(info, b"files", list):
        if not isinstance(file_dict, dict):
            raise FailedToParseFile("info.files entries must be dictionaries")
        length = _require(file_dict, b"length", int)
        segments = [_text(seg, "path") for seg in _require(file_dict, b"path", list)]
        files.append(TorrentFileEntry("/".join(segments), length, offset))
        offset += length
    return files, offset


def decode_metainfo(content: bytes) -> TorrentMetadata:
    try:
        metainfo = bencodepy.decode(content)
    except (bencodepy.BencodeDecodeError, ValueError) as e:
        raise FailedToParseFile(f"malformed bencoding: {e}") from e
    if not isinstance(metainfo, dict):
        raise FailedToParseFile("top level of a .torrent file must be a dictionary")

    announce = _text(_require(metainfo, b"announce", bytes), "announce")
    info = _require(metainfo, b"info", dict)
    name = _text(_require(info, b"name", bytes), "name")
    piece_length = _require(info, b"piece length", int)
    piece_hashes = split_piece_hashes(_require(info, b"pieces", bytes))
    files, length = _parse_files(info, name)
    md5sum = _text(info[b"md5sum"], "md5sum") if b"md5sum" in info else None

    return TorrentMetadata(
        announce=announce,
        info_hash=compute_info_hash(info),
        piece_hashes=piece_hashes,
        piece_length=piece_length,
        length=length,
        name=name,
        files=files,
        md5sum=md5sum,
    )


def parse_torrent_file(path: Path) -> TorrentMetadata:
    path = Path(path)
    logger.info(f"Parsing torrent file: {path}")

    try:
        content = path.read_bytes()
    except OSError as e:
        raise FailedToReadFile(f"failed to read {path}: {e}") from e

    metadata = decode_metainfo(content)
    logger.info(
        f"Parsed torrent {metadata.name}: {len(metadata.files)} file(s), "
        f"{metadata.length} bytes, {len(metadata.piece_hashes)} pieces, "
        f"info_hash {metadata.info_hash.hex()}"
    )
    return metadata
