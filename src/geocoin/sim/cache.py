from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from geocoin.content.schema import validate_cache_payload
from geocoin.sim.location import Cell

CellFactory = Callable[[int, int], Cell]


def _plain_cell(i: int, j: int) -> Cell:
    return Cell(i, j)


def _cell_from_payload(data: Any, cell_factory: CellFactory, *, field_name: str) -> Cell:
    if not isinstance(data, dict):
        raise ValueError(f"{field_name} must be an object")
    i = data.get("i")
    j = data.get("j")
    if isinstance(i, bool) or not isinstance(i, int) or isinstance(j, bool) or not isinstance(j, int):
        raise ValueError(f"{field_name} requires integer i and j")
    return cell_factory(i, j)


@dataclass(frozen=True)
class Coin:
    """Collectible token identified by the cell it spawned in and its serial."""

    spawn_cell: Cell
    serial: int

    def __post_init__(self) -> None:
        if isinstance(self.serial, bool) or not isinstance(self.serial, int) or self.serial < 0:
            raise ValueError("coin serial must be a non-negative integer")

    @property
    def label(self) -> str:
        return f"{self.spawn_cell.key}#{self.serial}"

    def to_dict(self) -> dict[str, Any]:
        return {"spawnLoc": self.spawn_cell.to_dict(), "serial": self.serial}

    @classmethod
    def from_dict(cls, data: dict[str, Any], cell_factory: CellFactory = _plain_cell) -> "Coin":
        if not isinstance(data, dict):
            raise ValueError("coin must be an object")
        serial = data.get("serial")
        if isinstance(serial, bool) or not isinstance(serial, int):
            raise ValueError("coin.serial must be an integer")
        return cls(
            spawn_cell=_cell_from_payload(data.get("spawnLoc"), cell_factory, field_name="coin.spawnLoc"),
            serial=serial,
        )


@dataclass
class Cache:
    location: Cell
    coins: list[Coin] = field(default_factory=list)
    current_serial: int = 0

    def __post_init__(self) -> None:
        if isinstance(self.current_serial, bool) or not isinstance(self.current_serial, int):
            raise ValueError("cache current_serial must be an integer")
        if self.current_serial < 0:
            raise ValueError("cache current_serial must be >= 0")
        self.coins = list(self.coins)

    def coin_count(self) -> int:
        return len(self.coins)

    def take_coin(self) -> Coin | None:
        if not self.coins:
            return None
        return self.coins.pop()

    def put_coin(self, coin: Coin) -> None:
        self.coins.append(coin)

    def to_dict(self) -> dict[str, Any]:
        return {
            "coins": [coin.to_dict() for coin in self.coins],
            "currentSerial": self.current_serial,
            "location": self.location.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], cell_factory: CellFactory = _plain_cell) -> "Cache":
        if not isinstance(data, dict):
            raise ValueError("cache must be an object")
        coins = data.get("coins")
        if not isinstance(coins, list):
            raise ValueError("cache.coins must be a list")
        current_serial = data.get("currentSerial")
        if isinstance(current_serial, bool) or not isinstance(current_serial, int):
            raise ValueError("cache.currentSerial must be an integer")
        return cls(
            location=_cell_from_payload(data.get("location"), cell_factory, field_name="cache.location"),
            coins=[Coin.from_dict(row, cell_factory) for row in coins],
            current_serial=current_serial,
        )


@dataclass(frozen=True)
class CacheMemento:
    """Immutable snapshot of a cache; restoring it yields an independent mutable copy."""

    location: Cell
    coins: tuple[Coin, ...]
    current_serial: int

    @classmethod
    def capture(cls, cache: Cache) -> "CacheMemento":
        return cls(location=cache.location, coins=tuple(cache.coins), current_serial=cache.current_serial)

    def restore(self) -> Cache:
        return Cache(location=self.location, coins=list(self.coins), current_serial=self.current_serial)

    def to_json(self) -> str:
        return json.dumps(self.restore().to_dict(), sort_keys=True, separators=(",", ":"))

    @classmethod
    def from_json(cls, text: str, cell_factory: CellFactory = _plain_cell) -> "CacheMemento":
        try:
            payload = json.loads(text)
        except (TypeError, json.JSONDecodeError) as exc:
            raise ValueError(f"cache momento is not valid JSON: {exc}") from exc
        validate_cache_payload(payload, field_name="momento")
        return cls.capture(Cache.from_dict(payload, cell_factory))
