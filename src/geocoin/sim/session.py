from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum

from geocoin.content.io import (
    KeyValueStore,
    clear_session_snapshot,
    load_session_snapshot,
    save_session_snapshot,
)
from geocoin.content.schema import MAX_TILE_VISIBILITY_RADIUS
from geocoin.sim.board import CACHE_SPAWN_PROBABILITY, NEIGHBORHOOD_SIZE, TILE_DEGREES, Board, LuckFn
from geocoin.sim.cache import Cache, Coin
from geocoin.sim.geolocation import (
    DEFAULT_POLL_INTERVAL_MS,
    GeolocationPoller,
    GeolocationProvider,
    UnavailableGeolocationProvider,
)
from geocoin.sim.location import Cell, LatLng
from geocoin.sim.luck import luckiness
from geocoin.sim.player import Player, PlayerEvent

logger = logging.getLogger(__name__)

OAKES_CLASSROOM = LatLng(lat=36.98949379578401, lng=-122.06277128548504)


class MoveDirection(str, Enum):
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"


@dataclass(frozen=True)
class GameSettings:
    tile_width: float = TILE_DEGREES
    tile_visibility_radius: int = NEIGHBORHOOD_SIZE
    cache_spawn_probability: float = CACHE_SPAWN_PROBABILITY
    default_location: LatLng = OAKES_CLASSROOM
    geolocation_interval_ms: int = DEFAULT_POLL_INTERVAL_MS

    def __post_init__(self) -> None:
        if not math.isfinite(self.tile_width) or self.tile_width <= 0:
            raise ValueError("tile_width must be positive")
        if not 0 <= self.tile_visibility_radius <= MAX_TILE_VISIBILITY_RADIUS:
            raise ValueError(f"tile_visibility_radius must be within [0, {MAX_TILE_VISIBILITY_RADIUS}]")
        if not 0.0 <= self.cache_spawn_probability <= 1.0:
            raise ValueError("cache_spawn_probability must be within [0.0, 1.0]")


class GameSession:
    """Explicit session state: one board, one player and the player's movement trail."""

    def __init__(
        self,
        *,
        board: Board,
        player: Player,
        move_history: list[LatLng],
        store: KeyValueStore,
        settings: GameSettings | None = None,
        luck: LuckFn = luckiness,
        geolocation_provider: GeolocationProvider | None = None,
    ) -> None:
        self.settings = settings or GameSettings()
        self.store = store
        self._luck = luck
        self.board = board
        self.player = player
        self.move_history = move_history
        self.visible: list[tuple[Cell, Cache]] = []
        self._current_cell: Cell | None = None
        self.geolocation = GeolocationPoller(
            geolocation_provider or UnavailableGeolocationProvider(),
            self.set_player_location,
            interval_ms=self.settings.geolocation_interval_ms,
        )
        self._attach_player()
        self.refresh_caches()

    @classmethod
    def new_state(cls, settings: GameSettings, *, luck: LuckFn = luckiness) -> tuple[Board, Player, list[LatLng]]:
        board = Board(
            settings.tile_width,
            settings.tile_visibility_radius,
            luck=luck,
            cache_spawn_probability=settings.cache_spawn_probability,
        )
        player = Player(settings.default_location, move_step=settings.tile_width)
        return board, player, [settings.default_location]

    @classmethod
    def start(
        cls,
        store: KeyValueStore,
        settings: GameSettings | None = None,
        *,
        luck: LuckFn = luckiness,
        geolocation_provider: GeolocationProvider | None = None,
    ) -> "GameSession":
        settings = settings or GameSettings()
        snapshot = load_session_snapshot(
            store,
            luck=luck,
            cache_spawn_probability=settings.cache_spawn_probability,
            move_step=settings.tile_width,
        )
        if snapshot is None:
            board, player, move_history = cls.new_state(settings, luck=luck)
        else:
            board, player, move_history = snapshot.board, snapshot.player, snapshot.move_history
        session = cls(
            board=board,
            player=player,
            move_history=move_history,
            store=store,
            settings=settings,
            luck=luck,
            geolocation_provider=geolocation_provider,
        )
        if snapshot is None:
            session.save()
        return session

    def _attach_player(self) -> None:
        self._current_cell = self.board.get_cell_for_point(self.player.get_location())
        self.player.subscribe(PlayerEvent.LOCATION_CHANGED, self._on_location_changed)

    def _on_location_changed(self, player: Player) -> None:
        location = player.get_location()
        self.move_history.append(location)
        cell = self.board.get_cell_for_point(location)
        if cell is not self._current_cell:
            logger.debug("player entered cell=%s", cell.key)
            self._current_cell = cell
            self.refresh_caches()
        self.save()

    # Queries

    @property
    def current_cell(self) -> Cell:
        return self.board.get_cell_for_point(self.player.get_location())

    def cells_near_player(self) -> list[Cell]:
        return self.board.get_cells_near_point(self.player.get_location())

    def refresh_caches(self) -> list[tuple[Cell, Cache]]:
        visible: list[tuple[Cell, Cache]] = []
        for cell in self.cells_near_player():
            if not self.board.cache_exists(cell):
                continue
            cache = self.board.get_cache_for_cell(cell)
            if cache is not None:
                visible.append((cell, cache))
        self.visible = visible
        return visible

    def visible_caches(self) -> list[tuple[Cell, Cache]]:
        return list(self.visible)

    def cache_at(self, cell: Cell) -> Cache | None:
        return self.board.get_cache_for_cell(cell)

    def coin_home(self, coin: Coin) -> LatLng:
        return self.board.get_cell_center(coin.spawn_cell)

    def status_text(self) -> str:
        count = self.player.get_coin_count()
        noun = "coin" if count == 1 else "coins"
        return f"{count} {noun} in inventory"

    # Commands

    def _replace_visible(self, cell: Cell, cache: Cache) -> None:
        for index, (visible_cell, _) in enumerate(self.visible):
            if visible_cell is cell:
                self.visible[index] = (cell, cache)
                return

    def withdraw(self, cell: Cell) -> Coin | None:
        cell = self.board.registry.canonicalize(cell)
        cache = self.board.get_cache_for_cell(cell)
        if cache is None or cache.coin_count() == 0:
            return None
        coin = cache.take_coin()
        self.player.add_coin(coin)
        self.board.set_cache_for_cell(cell, cache)
        self._replace_visible(cell, cache)
        logger.info("withdrew coin=%s from cell=%s", coin.label, cell.key)
        self.save()
        return coin

    def deposit(self, cell: Cell) -> Coin | None:
        cell = self.board.registry.canonicalize(cell)
        cache = self.board.get_cache_for_cell(cell)
        if cache is None or self.player.get_coin_count() == 0:
            return None
        coin = self.player.get_coin()
        cache.put_coin(coin)
        self.board.set_cache_for_cell(cell, cache)
        self._replace_visible(cell, cache)
        logger.info("deposited coin=%s into cell=%s", coin.label, cell.key)
        self.save()
        return coin

    def move(self, direction: MoveDirection | str) -> None:
        direction = MoveDirection(direction)
        if direction is MoveDirection.UP:
            self.player.move_up()
        elif direction is MoveDirection.DOWN:
            self.player.move_down()
        elif direction is MoveDirection.LEFT:
            self.player.move_left()
        else:
            self.player.move_right()

    def set_player_location(self, location: LatLng) -> None:
        self.player.set_location(location)

    def toggle_geolocation(self) -> bool:
        return self.geolocation.toggle()

    def poll_geolocation(self, now_ms: int) -> bool:
        return self.geolocation.tick(now_ms)

    def save(self) -> None:
        save_session_snapshot(self.store, self.board, self.player, self.move_history)

    def reset(self) -> None:
        self.player.unsubscribe(PlayerEvent.LOCATION_CHANGED, self._on_location_changed)
        clear_session_snapshot(self.store)
        self.board, self.player, self.move_history = self.new_state(self.settings, luck=self._luck)
        self._attach_player()
        self.refresh_caches()
        self.save()
        logger.info("session reset")
