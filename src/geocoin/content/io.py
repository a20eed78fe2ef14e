from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any, Protocol

from geocoin.content.schema import validate_move_history_payload
from geocoin.sim.board import CACHE_SPAWN_PROBABILITY, Board, LuckFn
from geocoin.sim.location import LatLng
from geocoin.sim.luck import luckiness
from geocoin.sim.player import DEFAULT_MOVE_STEP, Player

logger = logging.getLogger(__name__)

BOARD_KEY = "board"
PLAYER_KEY = "player"
MOVE_HISTORY_KEY = "moveHistory"
SNAPSHOT_KEYS = (BOARD_KEY, PLAYER_KEY, MOVE_HISTORY_KEY)
MOVE_HISTORY_SCHEMA_VERSION = 1
CANONICAL_JSON_INDENT = 2
CANONICAL_JSON_SEPARATORS = (",", ": ")


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set_many(self, values: dict[str, str]) -> None: ...

    def remove_many(self, keys: Iterable[str]) -> None: ...


@dataclass
class MemoryStore:
    values: dict[str, str] = field(default_factory=dict)

    def get(self, key: str) -> str | None:
        return self.values.get(key)

    def set_many(self, values: dict[str, str]) -> None:
        self.values.update(values)

    def remove_many(self, keys: Iterable[str]) -> None:
        for key in keys:
            self.values.pop(key, None)


def _canonical_json(payload: dict[str, Any]) -> str:
    return json.dumps(
        payload,
        indent=CANONICAL_JSON_INDENT,
        separators=CANONICAL_JSON_SEPARATORS,
        sort_keys=True,
    )


def _write_atomic_json(path: str | Path, payload: dict[str, Any]) -> None:
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)
    serialized = _canonical_json(payload)

    temp_path: Path | None = None
    try:
        with NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=destination.parent,
            delete=False,
            suffix=".tmp",
        ) as temp_file:
            temp_file.write(serialized)
            temp_file.flush()
            os.fsync(temp_file.fileno())
            temp_path = Path(temp_file.name)
        os.replace(temp_path, destination)
    except Exception:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)
        raise


class JsonFileStore:
    """String blobs kept in one canonical JSON object on disk."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("save file unreadable path=%s: %s", self.path, exc)
            return {}
        if not isinstance(payload, dict):
            logger.warning("save file is not an object path=%s", self.path)
            return {}
        return {key: value for key, value in payload.items() if isinstance(key, str) and isinstance(value, str)}

    def get(self, key: str) -> str | None:
        return self._read().get(key)

    def set_many(self, values: dict[str, str]) -> None:
        payload = self._read()
        payload.update(values)
        _write_atomic_json(self.path, payload)

    def remove_many(self, keys: Iterable[str]) -> None:
        payload = self._read()
        for key in keys:
            payload.pop(key, None)
        _write_atomic_json(self.path, payload)


def serialize_move_history(points: Iterable[LatLng]) -> str:
    payload = {
        "schemaVersion": MOVE_HISTORY_SCHEMA_VERSION,
        "points": [point.to_dict() for point in points],
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


def deserialize_move_history(data: str) -> list[LatLng]:
    try:
        payload = json.loads(data)
    except (TypeError, json.JSONDecodeError) as exc:
        raise ValueError(f"moveHistory payload is not valid JSON: {exc}") from exc
    validate_move_history_payload(payload)
    return [LatLng.from_dict(point) for point in payload["points"]]


@dataclass
class SessionSnapshot:
    board: Board
    player: Player
    move_history: list[LatLng]


def save_session_snapshot(store: KeyValueStore, board: Board, player: Player, move_history: Iterable[LatLng]) -> None:
    store.set_many(
        {
            BOARD_KEY: board.serialize(),
            PLAYER_KEY: player.serialize(),
            MOVE_HISTORY_KEY: serialize_move_history(move_history),
        }
    )


def load_session_snapshot(
    store: KeyValueStore,
    *,
    luck: LuckFn = luckiness,
    cache_spawn_probability: float = CACHE_SPAWN_PROBABILITY,
    move_step: float = DEFAULT_MOVE_STEP,
) -> SessionSnapshot | None:
    """Restore all three blobs, or return None when any is missing or invalid."""
    blobs = {key: store.get(key) for key in SNAPSHOT_KEYS}
    missing = sorted(key for key, value in blobs.items() if value is None)
    if missing:
        logger.info("no saved state; missing keys=%s", missing)
        return None

    try:
        board = Board.deserialize(
            blobs[BOARD_KEY],
            luck=luck,
            cache_spawn_probability=cache_spawn_probability,
        )
        player = Player.deserialize(blobs[PLAYER_KEY], cell_factory=board.canonical_cell, move_step=move_step)
        move_history = deserialize_move_history(blobs[MOVE_HISTORY_KEY])
        for point in (player.get_location(), *move_history):
            board.cell_coords_for_point(point)
    except (ValueError, OverflowError) as exc:
        logger.warning("discarding saved state: %s", exc)
        return None

    logger.info(
        "restored saved state known_cells=%d caches=%d coins=%d",
        len(board.registry),
        len(board.materialized_cells()),
        player.get_coin_count(),
    )
    return SessionSnapshot(board=board, player=player, move_history=move_history)


def clear_session_snapshot(store: KeyValueStore) -> None:
    store.remove_many(SNAPSHOT_KEYS)
