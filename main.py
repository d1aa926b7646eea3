#!/usr/bin/env python3
"""
TurboHandshake - BitTorrent peer handshake client using Python asyncio
Main entry point for the application.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from turbohandshake.common.config import ClientConfig
from turbohandshake.common.errors import TorrentError
from turbohandshake.common.logging import config_logging
from turbohandshake.eventloop.client import DownloadSummary, TorrentClient

logger = logging.getLogger(__name__)


def print_summary(summary: DownloadSummary):
    torrent = summary.torrent
    print(f"\n{'=' * 60}")
    print(f"Torrent: {torrent.name}")
    print(f"Size: {torrent.length / (1024 * 1024):.2f} MB")
    print(f"Pieces: {len(torrent.piece_hashes)} x {torrent.piece_length / 1024:.0f} KB")
    print(f"Tracker: {torrent.announce}")
    print(f"Peers: {summary.attempted} attempted, {summary.succeeded} handshaked, {summary.failed} failed")
    print(f"{'=' * 60}\n")
    for outcome in summary.outcomes:
        if outcome.ok:
            print(f"  ok    {outcome.address}  {outcome.peer_id!r}")
        else:
            print(f"  fail  {outcome.address}  {outcome.error}")


async def run(torrent_path: Path) -> int:
    client = TorrentClient(ClientConfig.from_env())
    try:
        summary = await client.download(torrent_path)
    except TorrentError as e:
        logger.error(f"Download failed: {e}", exc_info=True)
        print(f"\nDownload failed: {e}")
        return 1
    print_summary(summary)
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="TurboHandshake - announce a torrent and handshake with its peers",
    )
    parser.add_argument("torrent", type=Path, help="Path to the .torrent file")
    args = parser.parse_args()

    config_logging("handshake.log.jsonl")

    try:
        sys.exit(asyncio.run(run(args.torrent)))
    except KeyboardInterrupt:
        print("\n\nShutting down...")
        sys.exit(130)


if __name__ == "__main__":
    main()
