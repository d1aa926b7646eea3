"""Pytest configuration and shared fixtures for turbohandshake tests."""

import asyncio
import hashlib
from pathlib import Path

import bencodepy
import pytest


def pytest_configure(config):
    markers = [
        ("unit", "marks tests as unit tests"),
        ("peer", "marks tests as peer protocol tests"),
        ("tracker", "marks tests as tracker tests"),
        ("metadata", "marks tests as torrent metadata tests"),
        ("network", "marks tests that open loopback sockets"),
        ("client", "marks tests as orchestrator tests"),
    ]
    for name, desc in markers:
        config.addinivalue_line("markers", f"{name}: {desc}")


class MemoryTransport:
    """In-memory Transport double.

    `response` is what the peer "sends"; once it is consumed reads return b""
    (end of stream) unless `zero_fill` is set, in which case the stream keeps
    yielding zero bytes. `never_readable`/`never_writable` park the
    corresponding readiness wait forever.
    """

    def __init__(
        self,
        response: bytes = b"",
        *,
        peer=("127.0.0.1", 6881),
        never_readable=False,
        never_writable=False,
        zero_fill=False,
        write_would_block=0,
        read_would_block=0,
        max_write=None,
        write_error=None,
        read_error=None,
    ):
        self.inbound = bytearray(response)
        self.written = bytearray()
        self.peer = peer
        self.never_readable = never_readable
        self.never_writable = never_writable
        self.zero_fill = zero_fill
        self.write_would_block = write_would_block
        self.read_would_block = read_would_block
        self.max_write = max_write
        self.write_error = write_error
        self.read_error = read_error
        self.write_attempts = 0
        self.read_attempts = 0
        self.shutdown_called = False
        self.closed = False

    async def writable(self):
        if self.never_writable:
            await asyncio.Event().wait()
        await asyncio.sleep(0)

    async def readable(self):
        if self.never_readable:
            await asyncio.Event().wait()
        await asyncio.sleep(0)

    def try_write(self, data):
        self.write_attempts += 1
        if self.write_would_block:
            self.write_would_block -= 1
            raise BlockingIOError
        if self.write_error is not None:
            raise self.write_error
        chunk = bytes(data[: self.max_write]) if self.max_write else bytes(data)
        self.written += chunk
        return len(chunk)

    def try_read(self, size):
        self.read_attempts += 1
        if self.read_would_block:
            self.read_would_block -= 1
            raise BlockingIOError
        if self.read_error is not None:
            raise self.read_error
        if not self.inbound and self.zero_fill:
            return b"\x00"
        chunk = bytes(self.inbound[:size])
        del self.inbound[:size]
        return chunk

    def peer_addr(self):
        return self.peer

    def shutdown(self):
        self.shutdown_called = True

    def close(self):
        self.closed = True


@pytest.fixture
def memory_transport():
    return MemoryTransport


@pytest.fixture
def info_dict():
    pieces = hashlib.sha1(b"piece-0").digest() + hashlib.sha1(b"piece-1").digest()
    return {
        b"name": b"sample.iso",
        b"piece length": 16384,
        b"length": 20000,
        b"pieces": pieces,
    }


@pytest.fixture
def write_torrent(tmp_path):
    def _write(info: dict, announce: bytes = b"http://tracker.test/announce", name="sample.torrent"):
        path = Path(tmp_path) / name
        path.write_bytes(bencodepy.encode({b"announce": announce, b"info": info}))
        return path

    return _write
