from __future__ import annotations

import argparse
import logging
from typing import Sequence

from geocoin.cli.pygame_viewer import run_pygame_viewer
from geocoin.content.io import JsonFileStore, clear_session_snapshot
from geocoin.sim.session import GameSession

DEFAULT_SAVE_PATH = "saves/canonical_viewer_save.json"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="geocoin-play", description="Canonical Geocoin launcher.")
    parser.add_argument("--save-path", default=DEFAULT_SAVE_PATH, help="Save file loaded at startup and autosaved.")
    parser.add_argument("--reset", action="store_true", help="Discard any saved game before starting.")
    parser.add_argument("--headless", action="store_true", help="Run startup path in headless mode.")
    parser.add_argument("--verbose", action="store_true", help="Log engine activity at DEBUG level.")
    return parser


def _ensure_save_exists(*, save_path: str, reset: bool) -> None:
    store = JsonFileStore(save_path)
    if reset:
        clear_session_snapshot(store)
    GameSession.start(store)


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    _ensure_save_exists(save_path=args.save_path, reset=args.reset)
    return run_pygame_viewer(save_path=args.save_path, headless=args.headless)


if __name__ == "__main__":
    raise SystemExit(main())
