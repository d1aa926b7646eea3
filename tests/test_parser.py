"""Tests for .torrent parsing and info hash computation."""

import hashlib

import pytest

from turbohandshake.common.errors import (
    FailedToParseFile,
    FailedToReadFile,
    InvalidPiecesData,
)
from turbohandshake.torrent.parser import (
    compute_info_hash,
    decode_metainfo,
    parse_torrent_file,
    split_piece_hashes,
)

pytestmark = [pytest.mark.unit, pytest.mark.metadata]


def test_parse_single_file_torrent(write_torrent, info_dict):
    metadata = parse_torrent_file(write_torrent(info_dict))

    assert metadata.announce == "http://tracker.test/announce"
    assert metadata.name == "sample.iso"
    assert metadata.piece_length == 16384
    assert metadata.length == 20000
    assert metadata.piece_hashes == [
        hashlib.sha1(b"piece-0").digest(),
        hashlib.sha1(b"piece-1").digest(),
    ]
    assert len(metadata.files) == 1
    assert metadata.files[0].path == "sample.iso"
    assert metadata.md5sum is None


def test_info_hash_matches_hand_encoded_info():
    pieces = b"\xaa" * 20
    info = {b"pieces": pieces, b"name": b"a.txt", b"length": 10, b"piece length": 16384}
    # keys in sorted order: length, name, piece length, pieces
    canonical = (
        b"d6:lengthi10e4:name5:a.txt12:piece lengthi16384e6:pieces20:" + pieces + b"e"
    )

    assert compute_info_hash(info) == hashlib.sha1(canonical).digest()


def test_info_hash_ignores_insertion_order(info_dict):
    reordered = dict(reversed(list(info_dict.items())))

    assert list(reordered) != list(info_dict)
    assert compute_info_hash(reordered) == compute_info_hash(info_dict)


def test_info_hash_excludes_announce(write_torrent, info_dict):
    first = parse_torrent_file(write_torrent(info_dict, b"http://a.test/announce", "a.torrent"))
    second = parse_torrent_file(write_torrent(info_dict, b"http://b.test/announce", "b.torrent"))

    assert first.info_hash == second.info_hash
    assert first.info_hash == compute_info_hash(info_dict)


def test_info_hash_covers_optional_fields(info_dict):
    with_md5 = {**info_dict, b"md5sum": b"d41d8cd98f00b204e9800998ecf8427e"}

    assert compute_info_hash(with_md5) != compute_info_hash(info_dict)


def test_md5sum_is_exposed(write_torrent, info_dict):
    info_dict[b"md5sum"] = b"d41d8cd98f00b204e9800998ecf8427e"

    metadata = parse_torrent_file(write_torrent(info_dict))

    assert metadata.md5sum == "d41d8cd98f00b204e9800998ecf8427e"


@pytest.mark.parametrize("count", [0, 1, 7])
def test_split_piece_hashes_keeps_order(count):
    digests = [hashlib.sha1(str(i).encode()).digest() for i in range(count)]

    assert split_piece_hashes(b"".join(digests)) == digests


@pytest.mark.parametrize("length", [1, 19, 21, 59])
def test_split_piece_hashes_rejects_ragged_length(length):
    with pytest.raises(InvalidPiecesData) as exc_info:
        split_piece_hashes(b"\x01" * length)
    assert exc_info.value.length == length


def test_invalid_pieces_in_file(write_torrent, info_dict):
    info_dict[b"pieces"] = b"\x00" * 30

    with pytest.raises(InvalidPiecesData):
        parse_torrent_file(write_torrent(info_dict))


def test_multi_file_torrent(write_torrent, info_dict):
    del info_dict[b"length"]
    info_dict[b"files"] = [
        {b"length": 100, b"path": [b"dir", b"a.bin"]},
        {b"length": 250, b"path": [b"b.bin"]},
    ]

    metadata = parse_torrent_file(write_torrent(info_dict))

    assert metadata.length == 350
    assert [(f.path, f.length, f.offset) for f in metadata.files] == [
        ("dir/a.bin", 100, 0),
        ("b.bin", 250, 100),
    ]


def test_missing_file(tmp_path):
    with pytest.raises(FailedToReadFile):
        parse_torrent_file(tmp_path / "missing.torrent")


@pytest.mark.parametrize(
    "content",
    [
        b"",
        b"not bencode at all",
        b"d8:announce",
        b"li1ei2ee",
    ],
)
def test_malformed_content(content):
    with pytest.raises(FailedToParseFile):
        decode_metainfo(content)


@pytest.mark.parametrize("missing", [b"name", b"piece length", b"pieces", b"length"])
def test_missing_info_key(write_torrent, info_dict, missing):
    del info_dict[missing]

    with pytest.raises(FailedToParseFile):
        parse_torrent_file(write_torrent(info_dict))


def test_wrong_value_type(write_torrent, info_dict):
    info_dict[b"piece length"] = b"16384"

    with pytest.raises(FailedToParseFile):
        parse_torrent_file(write_torrent(info_dict))
