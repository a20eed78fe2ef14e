from __future__ import annotations

import math
from typing import Any

SUPPORTED_SCHEMA_VERSIONS = {1}
MAX_TILE_VISIBILITY_RADIUS = 64
REQUIRED_BOARD_FIELDS = {"schemaVersion", "tileWidth", "tileVisibilityRadius", "knownCells", "cacheMomentos"}
REQUIRED_PLAYER_FIELDS = {"schemaVersion", "location", "coins"}
REQUIRED_MOVE_HISTORY_FIELDS = {"schemaVersion", "points"}


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def _validate_schema_version(payload: dict[str, Any], *, field_prefix: str) -> None:
    if "schemaVersion" not in payload:
        raise ValueError(f"{field_prefix} missing required field: schemaVersion")
    version = payload["schemaVersion"]
    if not _is_int(version):
        raise ValueError(f"{field_prefix}.schemaVersion must be an integer")
    if version not in SUPPORTED_SCHEMA_VERSIONS:
        raise ValueError(f"{field_prefix} unsupported schema_version: {version}")


def _validate_required_fields(payload: Any, required: set[str], *, field_prefix: str) -> None:
    if not isinstance(payload, dict):
        raise ValueError(f"{field_prefix} payload must be an object")
    _validate_schema_version(payload, field_prefix=field_prefix)
    missing = required - set(payload.keys())
    if missing:
        raise ValueError(f"{field_prefix} missing required fields: {sorted(missing)}")


def _validate_cell(value: Any, *, field_name: str) -> None:
    if not isinstance(value, dict) or not {"i", "j"} <= value.keys():
        raise ValueError(f"{field_name} must be an object with i and j")
    if not _is_int(value["i"]) or not _is_int(value["j"]):
        raise ValueError(f"{field_name}.i and {field_name}.j must be integers")


def _validate_lat_lng(value: Any, *, field_name: str) -> None:
    if not isinstance(value, dict) or not {"lat", "lng"} <= value.keys():
        raise ValueError(f"{field_name} must be an object with lat and lng")
    if not _is_number(value["lat"]) or not _is_number(value["lng"]):
        raise ValueError(f"{field_name}.lat and {field_name}.lng must be numeric")


def _validate_coin(value: Any, *, field_name: str) -> None:
    if not isinstance(value, dict):
        raise ValueError(f"{field_name} must be an object")
    _validate_cell(value.get("spawnLoc"), field_name=f"{field_name}.spawnLoc")
    serial = value.get("serial")
    if not _is_int(serial) or serial < 0:
        raise ValueError(f"{field_name}.serial must be a non-negative integer")


def validate_board_payload(payload: dict[str, Any]) -> None:
    _validate_required_fields(payload, REQUIRED_BOARD_FIELDS, field_prefix="board")

    tile_width = payload["tileWidth"]
    if not _is_number(tile_width) or tile_width <= 0:
        raise ValueError("board.tileWidth must be a positive number")
    radius = payload["tileVisibilityRadius"]
    if not _is_int(radius) or not 0 <= radius <= MAX_TILE_VISIBILITY_RADIUS:
        raise ValueError(f"board.tileVisibilityRadius must be an integer within [0, {MAX_TILE_VISIBILITY_RADIUS}]")

    known_cells = payload["knownCells"]
    if not isinstance(known_cells, list):
        raise ValueError("board.knownCells must be a list")
    for index, row in enumerate(known_cells):
        if not isinstance(row, list) or len(row) != 2:
            raise ValueError(f"board.knownCells[{index}] must be a [key, cell] pair")
        key, cell = row
        if not isinstance(key, str) or not key:
            raise ValueError(f"board.knownCells[{index}] key must be a non-empty string")
        _validate_cell(cell, field_name=f"board.knownCells[{index}]")
        if key != f"{cell['i']}:{cell['j']}":
            raise ValueError(f"board.knownCells[{index}] key {key!r} does not match its cell")

    momentos = payload["cacheMomentos"]
    if not isinstance(momentos, list):
        raise ValueError("board.cacheMomentos must be a list")
    for index, row in enumerate(momentos):
        if not isinstance(row, dict) or "cell" not in row or "momento" not in row:
            raise ValueError(f"board.cacheMomentos[{index}] missing cell or momento")
        _validate_cell(row["cell"], field_name=f"board.cacheMomentos[{index}].cell")
        if not isinstance(row["momento"], str):
            raise ValueError(f"board.cacheMomentos[{index}].momento must be a string")


def validate_cache_payload(payload: Any, *, field_name: str = "cache") -> None:
    if not isinstance(payload, dict):
        raise ValueError(f"{field_name} must be an object")
    coins = payload.get("coins")
    if not isinstance(coins, list):
        raise ValueError(f"{field_name}.coins must be a list")
    for index, coin in enumerate(coins):
        _validate_coin(coin, field_name=f"{field_name}.coins[{index}]")
    current_serial = payload.get("currentSerial")
    if not _is_int(current_serial) or current_serial < 0:
        raise ValueError(f"{field_name}.currentSerial must be a non-negative integer")
    _validate_cell(payload.get("location"), field_name=f"{field_name}.location")


def validate_player_payload(payload: dict[str, Any]) -> None:
    _validate_required_fields(payload, REQUIRED_PLAYER_FIELDS, field_prefix="player")
    _validate_lat_lng(payload["location"], field_name="player.location")
    coins = payload["coins"]
    if not isinstance(coins, list):
        raise ValueError("player.coins must be a list")
    for index, coin in enumerate(coins):
        _validate_coin(coin, field_name=f"player.coins[{index}]")


def validate_move_history_payload(payload: dict[str, Any]) -> None:
    _validate_required_fields(payload, REQUIRED_MOVE_HISTORY_FIELDS, field_prefix="moveHistory")
    points = payload["points"]
    if not isinstance(points, list):
        raise ValueError("moveHistory.points must be a list")
    for index, point in enumerate(points):
        _validate_lat_lng(point, field_name=f"moveHistory.points[{index}]")
