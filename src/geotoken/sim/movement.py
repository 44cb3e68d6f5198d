from __future__ import annotations

from collections.abc import Callable, Iterable

from geotoken.sim.grid import LatLng

MoveCallback = Callable[[float, float, bool], None]

KEY_STEPS: dict[str, tuple[int, int]] = {
    "w": (1, 0),
    "s": (-1, 0),
    "a": (0, -1),
    "d": (0, 1),
}
KEY_REPEAT_INTERVAL_SECONDS = 0.1
MAX_CATCH_UP_STEPS = 5


class MovementUnavailable(RuntimeError):
    """The host cannot provide this kind of movement."""


class MovementSource:
    """Single-subscriber position source.

    ``start`` begins delivery, ``stop`` ends it; once stopped, no callback is
    invoked until the source is started again.
    """

    name = "movement"

    def __init__(self) -> None:
        self._callback: MoveCallback | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def on_move(self, callback: MoveCallback) -> None:
        self._callback = callback

    def start(self) -> None:
        self._running = True

    def stop(self) -> None:
        self._running = False

    def _emit(self, lat: float, lng: float, authoritative: bool) -> None:
        if not self._running or self._callback is None:
            return
        self._callback(lat, lng, authoritative)


class PositionFeed:
    """Push hub standing in for a positioning service's watch API."""

    def __init__(self) -> None:
        self._next_watch_id = 1
        self._watchers: dict[int, Callable[[float, float], None]] = {}

    def watch(self, callback: Callable[[float, float], None]) -> int:
        watch_id = self._next_watch_id
        self._next_watch_id += 1
        self._watchers[watch_id] = callback
        return watch_id

    def clear_watch(self, watch_id: int) -> None:
        self._watchers.pop(watch_id, None)

    @property
    def watcher_count(self) -> int:
        return len(self._watchers)

    def push(self, lat: float, lng: float) -> None:
        for watch_id in sorted(self._watchers):
            callback = self._watchers.get(watch_id)
            if callback is not None:
                callback(lat, lng)


class PositionFeedMovement(MovementSource):
    """Push-based source: every fix from the feed is an authoritative position."""

    name = "geolocation"

    def __init__(self, feed: PositionFeed | None) -> None:
        super().__init__()
        self.feed = feed
        self._watch_id: int | None = None

    def start(self) -> None:
        if self.feed is None:
            raise MovementUnavailable("Geolocation not supported.")
        if self._watch_id is None:
            self._watch_id = self.feed.watch(self._on_fix)
        super().start()

    def stop(self) -> None:
        if self.feed is not None and self._watch_id is not None:
            self.feed.clear_watch(self._watch_id)
        self._watch_id = None
        super().stop()

    def _on_fix(self, lat: float, lng: float) -> None:
        self._emit(lat, lng, True)


class KeyRepeatMovement(MovementSource):
    """Poll-based source: while WASD keys are held, step once per interval.

    The host drives time by calling ``poll`` with elapsed seconds. Steps are
    relative to the current position and never authoritative.
    """

    name = "keyboard"

    def __init__(
        self,
        position: Callable[[], LatLng],
        *,
        step: float,
        interval: float = KEY_REPEAT_INTERVAL_SECONDS,
    ) -> None:
        super().__init__()
        if step <= 0:
            raise ValueError("step must be > 0")
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self._position = position
        self.step = step
        self.interval = interval
        self._held: set[str] = set()
        self._accumulator = 0.0

    def press(self, key: str) -> None:
        key = key.lower()
        if key in KEY_STEPS:
            self._held.add(key)

    def release(self, key: str) -> None:
        self._held.discard(key.lower())

    @property
    def held_keys(self) -> frozenset[str]:
        return frozenset(self._held)

    def stop(self) -> None:
        self._held.clear()
        self._accumulator = 0.0
        super().stop()

    def poll(self, elapsed: float) -> int:
        """Advance the repeat timer; returns how many steps were emitted."""
        if not self.running:
            return 0
        self._accumulator += max(0.0, elapsed)
        emitted = 0
        while self._accumulator >= self.interval:
            self._accumulator -= self.interval
            if emitted >= MAX_CATCH_UP_STEPS:
                continue
            if self._step_once():
                emitted += 1
        return emitted

    def _step_once(self) -> bool:
        delta_lat = 0
        delta_lng = 0
        for key in self._held:
            d_lat, d_lng = KEY_STEPS[key]
            delta_lat += d_lat
            delta_lng += d_lng
        if delta_lat == 0 and delta_lng == 0:
            return False
        current = self._position()
        self._emit(current.lat + delta_lat * self.step, current.lng + delta_lng * self.step, False)
        return True


class ScriptedMovement(MovementSource):
    """Deterministic source replaying a fixed list of moves, one per ``advance``."""

    name = "scripted"

    def __init__(self, moves: Iterable[tuple[float, float, bool]] = ()) -> None:
        super().__init__()
        self._moves = list(moves)
        self._cursor = 0

    @property
    def remaining(self) -> int:
        return len(self._moves) - self._cursor

    def queue(self, lat: float, lng: float, authoritative: bool = False) -> None:
        self._moves.append((lat, lng, authoritative))

    def advance(self, count: int = 1) -> int:
        delivered = 0
        while delivered < count and self._cursor < len(self._moves) and self.running:
            lat, lng, authoritative = self._moves[self._cursor]
            self._cursor += 1
            self._emit(lat, lng, authoritative)
            delivered += 1
        return delivered
