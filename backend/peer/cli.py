"""
Headless peer (`jam-peer`).

Connects to a relay, logs every scheduled note through LoggingRenderer and
plays notes typed on stdin:

    on 60 100     note-on, note 60, velocity 100
    off 60        note-off, note 60
    raw 144 60 0  any status/note/velocity triple
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from dotenv import load_dotenv

from config import AppConfig
from constants import MIDI_NOTE_OFF, MIDI_NOTE_ON
from observability.logger import log_event
from peer.client import JamClient
from peer.renderers import LoggingRenderer
from protocol.binary import BinaryProtocolError


def parse_input_line(line: str) -> tuple[int, int, int] | None:
    """
    Parse one stdin command into (command, note, velocity).

    Returns None for blank lines. Raises ValueError for anything else
    that does not parse.
    """
    parts = line.split()
    if not parts:
        return None

    verb, args = parts[0].lower(), parts[1:]
    values = [int(a, 0) for a in args]

    if verb == "on" and len(values) == 2:
        return MIDI_NOTE_ON, values[0], values[1]
    if verb == "off" and len(values) == 1:
        return MIDI_NOTE_OFF, values[0], 0
    if verb == "raw" and len(values) == 3:
        return values[0], values[1], values[2]

    raise ValueError(f"Unrecognised input: {line.strip()!r}")


async def _read_stdin(client: JamClient) -> None:
    while True:
        line = await asyncio.to_thread(sys.stdin.readline)
        if not line:
            return
        try:
            parsed = parse_input_line(line)
        except ValueError as e:
            log_event({"event_type": "INPUT_REJECTED", "error": str(e)})
            continue
        if parsed is None:
            continue
        try:
            await client.play_local(*parsed)
        except BinaryProtocolError as e:
            log_event({"event_type": "INPUT_REJECTED", "error": str(e)})


def build_client(url: str, probe_interval_s: float) -> JamClient:
    """JamClient wired to a LoggingRenderer, ready to play from the start."""
    client = JamClient(
        url=url,
        renderer=LoggingRenderer(),
        probe_interval_s=probe_interval_s,
    )
    # logging needs no setup, so remote notes are not held back until local input
    client.dispatcher.enable_audio()
    return client


async def _main_async(url: str, probe_interval_s: float) -> None:
    client = build_client(url, probe_interval_s)
    link = asyncio.create_task(client.run())
    try:
        await _read_stdin(client)
    finally:
        await client.close()
        link.cancel()
        try:
            await link
        except asyncio.CancelledError:
            pass


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    config = AppConfig.load_from_env()

    parser = argparse.ArgumentParser(description="Headless jam relay peer")
    parser.add_argument("--url", default=config.relay_url, help="relay WebSocket URL")
    parser.add_argument(
        "--probe-interval",
        type=float,
        default=config.latency_probe_interval_s,
        help="seconds between latency probes",
    )
    args = parser.parse_args(argv)

    try:
        asyncio.run(_main_async(args.url, args.probe_interval))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
