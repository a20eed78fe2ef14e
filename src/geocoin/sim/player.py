from __future__ import annotations

import json
from collections.abc import Callable
from enum import Enum
from typing import Any

from geocoin.content.schema import validate_player_payload
from geocoin.sim.cache import CellFactory, Coin
from geocoin.sim.location import Cell, LatLng

PLAYER_SCHEMA_VERSION = 1
DEFAULT_MOVE_STEP = 1e-4


class PlayerEvent(str, Enum):
    LOCATION_CHANGED = "onLocationChanged"
    INVENTORY_CHANGED = "onInventoryChanged"


PlayerListener = Callable[["Player"], None]


class Player:
    """Position, LIFO coin inventory and per-event subscribers for one session."""

    def __init__(self, location: LatLng, *, move_step: float = DEFAULT_MOVE_STEP) -> None:
        if move_step <= 0:
            raise ValueError("move_step must be positive")
        self._location = location
        self._coins: list[Coin] = []
        self.move_step = move_step
        self._listeners: dict[PlayerEvent, list[PlayerListener]] = {event: [] for event in PlayerEvent}

    def subscribe(self, event: PlayerEvent, listener: PlayerListener) -> None:
        self._listeners[PlayerEvent(event)].append(listener)

    def unsubscribe(self, event: PlayerEvent, listener: PlayerListener) -> None:
        listeners = self._listeners[PlayerEvent(event)]
        if listener in listeners:
            listeners.remove(listener)

    def _notify(self, event: PlayerEvent) -> None:
        for listener in list(self._listeners[event]):
            listener(self)

    def get_location(self) -> LatLng:
        return self._location

    def set_location(self, location: LatLng) -> None:
        self._location = location
        self._notify(PlayerEvent.LOCATION_CHANGED)

    def _move_by(self, d_lat: float, d_lng: float) -> None:
        self.set_location(LatLng(lat=self._location.lat + d_lat, lng=self._location.lng + d_lng))

    def move_up(self) -> None:
        self._move_by(self.move_step, 0.0)

    def move_down(self) -> None:
        self._move_by(-self.move_step, 0.0)

    def move_left(self) -> None:
        self._move_by(0.0, -self.move_step)

    def move_right(self) -> None:
        self._move_by(0.0, self.move_step)

    def add_coin(self, coin: Coin) -> None:
        self._coins.append(coin)
        self._notify(PlayerEvent.INVENTORY_CHANGED)

    def get_coin(self) -> Coin | None:
        if not self._coins:
            return None
        coin = self._coins.pop()
        self._notify(PlayerEvent.INVENTORY_CHANGED)
        return coin

    def get_coin_count(self) -> int:
        return len(self._coins)

    def get_inventory(self) -> tuple[Coin, ...]:
        return tuple(self._coins)

    def to_dict(self) -> dict[str, Any]:
        return {
            "schemaVersion": PLAYER_SCHEMA_VERSION,
            "location": self._location.to_dict(),
            "coins": [coin.to_dict() for coin in self._coins],
        }

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        *,
        cell_factory: CellFactory = Cell,
        move_step: float = DEFAULT_MOVE_STEP,
    ) -> "Player":
        validate_player_payload(data)
        player = cls(LatLng.from_dict(data["location"]), move_step=move_step)
        player._coins = [Coin.from_dict(row, cell_factory) for row in data["coins"]]
        return player

    def serialize(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))

    @classmethod
    def deserialize(
        cls,
        data: str,
        *,
        cell_factory: CellFactory = Cell,
        move_step: float = DEFAULT_MOVE_STEP,
    ) -> "Player":
        try:
            payload = json.loads(data)
        except (TypeError, json.JSONDecodeError) as exc:
            raise ValueError(f"player payload is not valid JSON: {exc}") from exc
        return cls.from_dict(payload, cell_factory=cell_factory, move_step=move_step)
