from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable
from typing import Any

from geocoin.sim.board import Board
from geocoin.sim.location import LatLng
from geocoin.sim.player import Player


def _digest(payload: Any) -> str:
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def board_hash(board: Board) -> str:
    """Digest of the materialized state only; cell registry order does not affect it."""
    board_payload = board.to_dict()
    payload = {
        "tile_width": board_payload["tileWidth"],
        "tile_visibility_radius": board_payload["tileVisibilityRadius"],
        "caches": sorted(
            board_payload["cacheMomentos"],
            key=lambda row: (row["cell"]["i"], row["cell"]["j"]),
        ),
    }
    return _digest(payload)


def session_hash(board: Board, player: Player, move_history: Iterable[LatLng]) -> str:
    payload = {
        "board": board_hash(board),
        "player": {
            "location": player.get_location().to_dict(),
            "coins": [coin.to_dict() for coin in player.get_inventory()],
        },
        "move_history": [point.to_dict() for point in move_history],
    }
    return _digest(payload)
