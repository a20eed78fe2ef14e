from __future__ import annotations

import json
import logging
import math
from collections.abc import Callable
from typing import Any

from geocoin.content.schema import MAX_TILE_VISIBILITY_RADIUS, validate_board_payload
from geocoin.sim.cache import Cache, CacheMemento, Coin
from geocoin.sim.location import Cell, CellBounds, LatLng
from geocoin.sim.luck import luckiness

logger = logging.getLogger(__name__)

TILE_DEGREES = 1e-4
NEIGHBORHOOD_SIZE = 8
CACHE_SPAWN_PROBABILITY = 0.1
MAX_COINS_SCALE = 100
BOARD_SCHEMA_VERSION = 1

LuckFn = Callable[[str], float]


class CellRegistry:
    """Flyweight table mapping ``"i:j"`` keys to the single Cell instance for that pair."""

    def __init__(self) -> None:
        self._cells: dict[str, Cell] = {}

    def __len__(self) -> int:
        return len(self._cells)

    def __contains__(self, key: object) -> bool:
        return key in self._cells

    def canonical_cell(self, i: int, j: int) -> Cell:
        key = f"{i}:{j}"
        cell = self._cells.get(key)
        if cell is None:
            cell = Cell(i, j)
            self._cells[key] = cell
        return cell

    def canonicalize(self, cell: Cell) -> Cell:
        return self.canonical_cell(cell.i, cell.j)

    def register(self, key: str, cell: Cell) -> Cell:
        if key != cell.key:
            raise ValueError(f"known cell key {key!r} does not match cell {cell.key!r}")
        return self._cells.setdefault(key, cell)

    def known_cells(self) -> list[tuple[str, Cell]]:
        return list(self._cells.items())


class Board:
    """Lazily materialized cache engine over an unbounded grid."""

    def __init__(
        self,
        tile_width: float = TILE_DEGREES,
        tile_visibility_radius: int = NEIGHBORHOOD_SIZE,
        *,
        luck: LuckFn = luckiness,
        cache_spawn_probability: float = CACHE_SPAWN_PROBABILITY,
    ) -> None:
        if not isinstance(tile_width, (int, float)) or isinstance(tile_width, bool):
            raise ValueError("tile_width must be a positive number")
        if not math.isfinite(tile_width) or tile_width <= 0:
            raise ValueError("tile_width must be a positive number")
        if isinstance(tile_visibility_radius, bool) or not isinstance(tile_visibility_radius, int):
            raise ValueError("tile_visibility_radius must be an integer")
        if not 0 <= tile_visibility_radius <= MAX_TILE_VISIBILITY_RADIUS:
            raise ValueError(f"tile_visibility_radius must be within [0, {MAX_TILE_VISIBILITY_RADIUS}]")
        self.tile_width = float(tile_width)
        self.tile_visibility_radius = tile_visibility_radius
        self.cache_spawn_probability = cache_spawn_probability
        self.registry = CellRegistry()
        self._luck = luck
        self._mementos: dict[Cell, CacheMemento] = {}

    # Cell geometry

    def canonical_cell(self, i: int, j: int) -> Cell:
        return self.registry.canonical_cell(i, j)

    def cell_coords_for_point(self, point: LatLng) -> tuple[int, int]:
        """Grid coordinates for a point without registering a cell; raises OverflowError off the grid."""
        return (math.floor(point.lat / self.tile_width), math.floor(point.lng / self.tile_width))

    def get_cell_for_point(self, point: LatLng) -> Cell:
        return self.canonical_cell(*self.cell_coords_for_point(point))

    def get_cell_bounds(self, cell: Cell) -> CellBounds:
        return CellBounds(
            south=cell.i * self.tile_width,
            west=cell.j * self.tile_width,
            north=(cell.i + 1) * self.tile_width,
            east=(cell.j + 1) * self.tile_width,
        )

    def get_cell_center(self, cell: Cell) -> LatLng:
        return self.get_cell_bounds(cell).center

    def get_cells_near_point(self, point: LatLng, radius: int | None = None) -> list[Cell]:
        if radius is None:
            radius = self.tile_visibility_radius
        if radius < 0:
            raise ValueError("radius must be >= 0")
        origin = self.get_cell_for_point(point)
        return [
            self.canonical_cell(origin.i + di, origin.j + dj)
            for di in range(-radius, radius + 1)
            for dj in range(-radius, radius + 1)
        ]

    # Deterministic generation

    @staticmethod
    def cell_key(cell: Cell) -> str:
        return cell.key

    def calculate_luckiness(self, cell: Cell) -> float:
        return self._luck(self.cell_key(cell))

    def calculate_num_coins_to_spawn(self, cell: Cell) -> int:
        return math.floor(self.calculate_luckiness(cell) * MAX_COINS_SCALE)

    def cache_exists(self, cell: Cell) -> bool:
        return self.calculate_luckiness(cell) < self.cache_spawn_probability

    def _init_new_cache(self, cell: Cell) -> CacheMemento:
        num_coins = self.calculate_num_coins_to_spawn(cell)
        cache = Cache(location=cell)
        for _ in range(num_coins):
            cache.put_coin(Coin(spawn_cell=cell, serial=cache.current_serial))
            cache.current_serial += 1
        memento = CacheMemento.capture(cache)
        self._mementos[cell] = memento
        logger.debug("materialized cache cell=%s coins=%d", cell.key, num_coins)
        return memento

    # Cache engine

    def get_cache_for_cell(self, cell: Cell) -> Cache | None:
        canonical = self.registry.canonicalize(cell)
        if not self.cache_exists(canonical):
            return None
        memento = self._mementos.get(canonical)
        if memento is None:
            memento = self._init_new_cache(canonical)
        return memento.restore()

    def set_cache_for_cell(self, cell: Cell, cache: Cache) -> None:
        canonical = self.registry.canonicalize(cell)
        if cache.location != canonical:
            raise ValueError(f"cache.location {cache.location.key} does not match cell {canonical.key}")
        self._mementos[canonical] = CacheMemento.capture(cache)

    def has_memento(self, cell: Cell) -> bool:
        return self.registry.canonicalize(cell) in self._mementos

    def materialized_cells(self) -> list[Cell]:
        return list(self._mementos)

    # Persistence

    def to_dict(self) -> dict[str, Any]:
        return {
            "schemaVersion": BOARD_SCHEMA_VERSION,
            "tileWidth": self.tile_width,
            "tileVisibilityRadius": self.tile_visibility_radius,
            "knownCells": [[key, cell.to_dict()] for key, cell in self.registry.known_cells()],
            "cacheMomentos": [
                {"cell": cell.to_dict(), "momento": memento.to_json()} for cell, memento in self._mementos.items()
            ],
        }

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        *,
        luck: LuckFn = luckiness,
        cache_spawn_probability: float = CACHE_SPAWN_PROBABILITY,
    ) -> "Board":
        validate_board_payload(data)
        board = cls(
            tile_width=data["tileWidth"],
            tile_visibility_radius=data["tileVisibilityRadius"],
            luck=luck,
            cache_spawn_probability=cache_spawn_probability,
        )
        for key, cell_payload in data["knownCells"]:
            board.registry.register(key, Cell.from_dict(cell_payload))
        for row in data["cacheMomentos"]:
            cell = Cell.from_dict(row["cell"])
            memento = CacheMemento.from_json(row["momento"], board.canonical_cell)
            if memento.location != cell:
                raise ValueError(f"cache momento location {memento.location.key} does not match cell {cell.key}")
            board.set_cache_for_cell(cell, memento.restore())
        return board

    def serialize(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))

    @classmethod
    def deserialize(
        cls,
        data: str,
        *,
        luck: LuckFn = luckiness,
        cache_spawn_probability: float = CACHE_SPAWN_PROBABILITY,
    ) -> "Board":
        try:
            payload = json.loads(data)
        except (TypeError, json.JSONDecodeError) as exc:
            raise ValueError(f"board payload is not valid JSON: {exc}") from exc
        return cls.from_dict(payload, luck=luck, cache_spawn_probability=cache_spawn_probability)
