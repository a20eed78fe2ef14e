from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from geocoin.sim.location import LatLng

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_MS = 1000

GeolocationProvider = Callable[[], LatLng]
PositionCallback = Callable[[LatLng], None]


class GeolocationError(RuntimeError):
    """Raised by a provider when a position cannot be acquired."""


class UnavailableGeolocationProvider:
    def __call__(self) -> LatLng:
        raise GeolocationError("Geolocation is not supported on this device.")


class ScriptedGeolocationProvider:
    """Replays a fixed sequence of positions, then keeps reporting the last one."""

    def __init__(self, points: Iterable[LatLng]) -> None:
        self._points = list(points)
        if not self._points:
            raise ValueError("scripted geolocation requires at least one point")
        self._index = 0

    def __call__(self) -> LatLng:
        point = self._points[min(self._index, len(self._points) - 1)]
        self._index += 1
        return point

    @classmethod
    def from_text(cls, text: str) -> "ScriptedGeolocationProvider":
        """Parse ``lat,lng`` pairs separated by ``;`` or newlines."""
        points: list[LatLng] = []
        for raw in text.replace("\n", ";").split(";"):
            raw = raw.strip()
            if not raw:
                continue
            lat_text, sep, lng_text = raw.partition(",")
            if not sep:
                raise ValueError(f"geolocation point must be 'lat,lng': {raw!r}")
            points.append(LatLng(lat=float(lat_text), lng=float(lng_text)))
        return cls(points)


class GeolocationPoller:
    """Fixed-interval geolocation polling; disabling turns ticks into no-ops without stopping the schedule."""

    def __init__(
        self,
        provider: GeolocationProvider,
        on_position: PositionCallback,
        *,
        interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        enabled: bool = False,
    ) -> None:
        if not isinstance(interval_ms, int) or interval_ms <= 0:
            raise ValueError("interval_ms must be a positive integer")
        self.provider = provider
        self.on_position = on_position
        self.interval_ms = interval_ms
        self.enabled = enabled
        self._next_tick_ms: int | None = None

    def toggle(self) -> bool:
        self.enabled = not self.enabled
        logger.info("geolocation %s", "enabled" if self.enabled else "disabled")
        return self.enabled

    def tick(self, now_ms: int) -> bool:
        """Advance the timer; return True when a position was applied on this call."""
        if self._next_tick_ms is None:
            self._next_tick_ms = now_ms
        if now_ms < self._next_tick_ms:
            return False
        while self._next_tick_ms <= now_ms:
            self._next_tick_ms += self.interval_ms
        if not self.enabled:
            return False
        return self.poll_once()

    def poll_once(self) -> bool:
        try:
            position = self.provider()
        except GeolocationError as exc:
            logger.warning("error getting location: %s", exc)
            return False
        logger.debug("geolocation lat=%s lng=%s", position.lat, position.lng)
        self.on_position(position)
        return True
