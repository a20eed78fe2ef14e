import json
from pathlib import Path

import pytest

from geocoin.content.io import (
    BOARD_KEY,
    MOVE_HISTORY_KEY,
    PLAYER_KEY,
    JsonFileStore,
    MemoryStore,
    clear_session_snapshot,
    deserialize_move_history,
    load_session_snapshot,
    save_session_snapshot,
    serialize_move_history,
)
from geocoin.sim.board import Board
from geocoin.sim.hash import board_hash
from geocoin.sim.location import LatLng
from geocoin.sim.player import Player
from geocoin.sim.session import OAKES_CLASSROOM, GameSession, MoveDirection

LUCKY = {"3:4": 0.05, "5:5": 0.02, "-1:-2": 0.04}


def _luck(key: str) -> float:
    return LUCKY.get(key, 0.99)


def _build_state() -> tuple[Board, Player, list[LatLng]]:
    board = Board(1.0, 2, luck=_luck)
    lucky = board.canonical_cell(3, 4)
    cache = board.get_cache_for_cell(lucky)
    player = Player(LatLng(3.5, 4.5), move_step=1.0)
    player.add_coin(cache.take_coin())
    player.add_coin(cache.take_coin())
    board.set_cache_for_cell(lucky, cache)
    board.get_cache_for_cell(board.canonical_cell(-1, -2))
    board.get_cells_near_point(LatLng(0.5, 0.5), radius=1)
    return board, player, [LatLng(0.5, 0.5), LatLng(3.5, 4.5)]


def test_board_roundtrip_preserves_materialized_caches() -> None:
    board, _, _ = _build_state()

    restored = Board.deserialize(board.serialize(), luck=_luck)

    assert restored.tile_width == 1.0
    assert restored.tile_visibility_radius == 2
    assert len(restored.registry) == len(board.registry)
    assert restored.materialized_cells() == board.materialized_cells()
    for cell in board.materialized_cells():
        assert restored.get_cache_for_cell(cell) == board.get_cache_for_cell(cell)
    assert board_hash(restored) == board_hash(board)


def test_restored_coins_share_canonical_cells() -> None:
    board, _, _ = _build_state()

    restored = Board.deserialize(board.serialize(), luck=_luck)
    cell = restored.canonical_cell(3, 4)
    cache = restored.get_cache_for_cell(cell)

    assert cache.location is cell
    assert all(coin.spawn_cell is cell for coin in cache.coins)
    assert restored.materialized_cells()[0] is cell


def test_restored_board_does_not_regenerate_mutated_cache() -> None:
    board, _, _ = _build_state()

    restored = Board.deserialize(board.serialize(), luck=_luck)

    assert [coin.serial for coin in restored.get_cache_for_cell(restored.canonical_cell(3, 4)).coins] == [0, 1, 2]


def test_board_payload_uses_documented_field_names() -> None:
    board, _, _ = _build_state()

    payload = json.loads(board.serialize())

    assert set(payload) == {"schemaVersion", "tileWidth", "tileVisibilityRadius", "knownCells", "cacheMomentos"}
    assert ["3:4", {"i": 3, "j": 4}] in payload["knownCells"]
    momento = json.loads(payload["cacheMomentos"][0]["momento"])
    assert set(momento) == {"coins", "currentSerial", "location"}
    assert momento["coins"][0] == {"spawnLoc": {"i": 3, "j": 4}, "serial": 0}


def test_board_deserialize_rejects_missing_schema_version() -> None:
    payload = json.loads(_build_state()[0].serialize())
    payload.pop("schemaVersion")

    with pytest.raises(ValueError, match="missing required field: schemaVersion"):
        Board.from_dict(payload)


def test_board_deserialize_rejects_unsupported_schema_version() -> None:
    payload = json.loads(_build_state()[0].serialize())
    payload["schemaVersion"] = 99

    with pytest.raises(ValueError, match="unsupported schema_version: 99"):
        Board.from_dict(payload)


def test_board_deserialize_rejects_mismatched_known_cell_key() -> None:
    payload = json.loads(_build_state()[0].serialize())
    payload["knownCells"][0][0] = "100:100"

    with pytest.raises(ValueError, match="does not match its cell"):
        Board.from_dict(payload)


def test_board_deserialize_rejects_momento_for_wrong_cell() -> None:
    payload = json.loads(_build_state()[0].serialize())
    payload["cacheMomentos"][0]["cell"] = {"i": 9, "j": 9}

    with pytest.raises(ValueError, match="does not match cell 9:9"):
        Board.from_dict(payload)


def test_board_deserialize_rejects_invalid_json() -> None:
    with pytest.raises(ValueError, match="not valid JSON"):
        Board.deserialize("{")


def test_move_history_roundtrip_and_validation() -> None:
    points = [LatLng(0.0, 0.0), LatLng(1.25, -2.5)]

    assert deserialize_move_history(serialize_move_history(points)) == points
    with pytest.raises(ValueError, match="moveHistory.points\\[0\\]"):
        deserialize_move_history('{"schemaVersion": 1, "points": [{"lat": "x", "lng": 0}]}')


def test_snapshot_roundtrip_through_memory_store() -> None:
    board, player, history = _build_state()
    store = MemoryStore()

    save_session_snapshot(store, board, player, history)
    snapshot = load_session_snapshot(store, luck=_luck, move_step=1.0)

    assert snapshot is not None
    assert snapshot.move_history == history
    assert snapshot.player.get_location() == player.get_location()
    assert [coin.label for coin in snapshot.player.get_inventory()] == ["3:4#4", "3:4#3"]
    assert snapshot.player.get_inventory()[0].spawn_cell is snapshot.board.canonical_cell(3, 4)


@pytest.mark.parametrize("missing_key", [BOARD_KEY, PLAYER_KEY, MOVE_HISTORY_KEY])
def test_snapshot_with_missing_blob_is_discarded(missing_key: str) -> None:
    board, player, history = _build_state()
    store = MemoryStore()
    save_session_snapshot(store, board, player, history)
    store.remove_many([missing_key])

    assert load_session_snapshot(store, luck=_luck) is None


def test_snapshot_with_corrupt_blob_is_discarded() -> None:
    board, player, history = _build_state()
    store = MemoryStore()
    save_session_snapshot(store, board, player, history)
    store.set_many({PLAYER_KEY: "not json"})

    assert load_session_snapshot(store, luck=_luck) is None


def test_clear_snapshot_removes_all_blobs() -> None:
    board, player, history = _build_state()
    store = MemoryStore({"unrelated": "keep"})
    save_session_snapshot(store, board, player, history)

    clear_session_snapshot(store)

    assert store.values == {"unrelated": "keep"}


def test_json_file_store_writes_atomically(tmp_path: Path) -> None:
    board, player, history = _build_state()
    path = tmp_path / "nested" / "save.json"

    save_session_snapshot(JsonFileStore(path), board, player, history)

    assert path.exists()
    assert list(path.parent.glob("*.tmp")) == []
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert set(payload) == {BOARD_KEY, PLAYER_KEY, MOVE_HISTORY_KEY}
    assert all(isinstance(value, str) for value in payload.values())


def test_json_file_store_output_is_stable_across_cycles(tmp_path: Path) -> None:
    board, player, history = _build_state()
    first_path = tmp_path / "first.json"
    second_path = tmp_path / "second.json"

    save_session_snapshot(JsonFileStore(first_path), board, player, history)
    snapshot = load_session_snapshot(JsonFileStore(first_path), luck=_luck, move_step=1.0)
    save_session_snapshot(JsonFileStore(second_path), snapshot.board, snapshot.player, snapshot.move_history)

    assert first_path.read_text(encoding="utf-8") == second_path.read_text(encoding="utf-8")


def test_json_file_store_treats_unreadable_file_as_empty(tmp_path: Path) -> None:
    path = tmp_path / "save.json"
    path.write_text("{broken", encoding="utf-8")
    store = JsonFileStore(path)

    assert store.get(BOARD_KEY) is None
    assert load_session_snapshot(store) is None

    store.set_many({"other": "value"})
    assert json.loads(path.read_text(encoding="utf-8")) == {"other": "value"}


def _corrupt_blob(store: MemoryStore, key: str, mutate) -> None:
    payload = json.loads(store.get(key))
    mutate(payload)
    store.set_many({key: json.dumps(payload)})


@pytest.mark.parametrize(
    ("key", "mutate"),
    [
        (BOARD_KEY, lambda payload: payload.update(tileWidth=float("nan"))),
        (BOARD_KEY, lambda payload: payload.update(tileWidth=float("inf"))),
        (BOARD_KEY, lambda payload: payload.update(tileVisibilityRadius=10_000_000)),
        (PLAYER_KEY, lambda payload: payload["location"].update(lat=float("nan"))),
        (PLAYER_KEY, lambda payload: payload["location"].update(lng=float("-inf"))),
        (PLAYER_KEY, lambda payload: payload["location"].update(lat=10**400)),
        (MOVE_HISTORY_KEY, lambda payload: payload["points"].append({"lat": 0.0, "lng": float("nan")})),
    ],
)
def test_snapshot_with_non_finite_values_is_discarded(key: str, mutate) -> None:
    board, player, history = _build_state()
    store = MemoryStore()
    save_session_snapshot(store, board, player, history)
    _corrupt_blob(store, key, mutate)

    assert load_session_snapshot(store, luck=_luck, move_step=1.0) is None


@pytest.mark.parametrize(
    ("key", "mutate"),
    [
        (PLAYER_KEY, lambda payload: payload["location"].update(lat=1e308)),
        (MOVE_HISTORY_KEY, lambda payload: payload["points"].append({"lat": 0.0, "lng": -1e308})),
    ],
)
def test_snapshot_with_points_off_the_grid_is_discarded(key: str, mutate) -> None:
    board = Board(luck=_luck)
    player = Player(LatLng(36.9895, -122.0628))
    store = MemoryStore()
    save_session_snapshot(store, board, player, [player.get_location()])
    _corrupt_blob(store, key, mutate)

    assert load_session_snapshot(store, luck=_luck) is None


def test_session_starts_fresh_from_off_grid_player_location() -> None:
    store = MemoryStore()
    session = GameSession.start(store)
    session.move(MoveDirection.UP)
    _corrupt_blob(store, PLAYER_KEY, lambda payload: payload["location"].update(lat=1e308))

    fresh = GameSession.start(store)

    assert fresh.player.get_location() == OAKES_CLASSROOM
    assert fresh.move_history == [OAKES_CLASSROOM]


def test_session_starts_fresh_from_nan_tile_width() -> None:
    store = MemoryStore()
    GameSession.start(store)
    _corrupt_blob(store, BOARD_KEY, lambda payload: payload.update(tileWidth=float("nan")))

    fresh = GameSession.start(store)

    assert fresh.board.tile_width == 1e-4
    assert json.loads(store.get(BOARD_KEY))["tileWidth"] == 1e-4


def test_json_file_store_treats_undecodable_file_as_empty(tmp_path: Path) -> None:
    path = tmp_path / "save.json"
    path.write_bytes(b"\xff\xfe\x00garbage")

    assert JsonFileStore(path).get(BOARD_KEY) is None

    session = GameSession.start(JsonFileStore(path))

    assert session.player.get_coin_count() == 0
    assert set(json.loads(path.read_text(encoding="utf-8"))) == {BOARD_KEY, PLAYER_KEY, MOVE_HISTORY_KEY}
