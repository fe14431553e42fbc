# location.py
from __future__ import annotations

import asyncio
import enum
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional, Dict, Any

from shared import logger


NO_LOCATION_REASON = "Unable to get current location"


class LocationUnavailable(Exception):
    """The provider gave no usable location, or reported a failure."""

    def __init__(self, reason: Optional[str] = None):
        super().__init__(reason or "Location unavailable")
        self.reason = reason


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def __post_init__(self):
        lat = float(self.latitude)
        lon = float(self.longitude)
        if not -90.0 <= lat <= 90.0:
            raise ValueError(f"latitude out of range: {lat}")
        if not -180.0 <= lon <= 180.0:
            raise ValueError(f"longitude out of range: {lon}")
        # frozen: coerce through object.__setattr__
        object.__setattr__(self, "latitude", lat)
        object.__setattr__(self, "longitude", lon)

    def as_dict(self) -> Dict[str, float]:
        return {"lat": self.latitude, "lon": self.longitude}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> Optional["Coordinate"]:
        """Inverse of as_dict(). Returns None for an empty or partial dict."""
        if not d or d.get("lat") is None or d.get("lon") is None:
            return None
        return cls(d["lat"], d["lon"])


OnFix = Callable[[Optional[Coordinate]], None]
OnError = Callable[[Optional[str]], None]


class LocationProvider(ABC):
    """
    Capability a platform backend offers to LocationService.

    Callbacks may fire from any thread and may fire more than once;
    stop_updates() must be idempotent and safe to call from inside a callback.
    """

    name = "base"

    def request_authorization(self) -> None:
        pass

    @abstractmethod
    def start_updates(self, on_fix: OnFix, on_error: OnError) -> None:
        ...

    @abstractmethod
    def stop_updates(self) -> None:
        ...


class FetchState(enum.Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    RESOLVED = "resolved"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PendingFetch:
    """
    Single-shot result cell for one outstanding provider request.

    Must be created on the event loop thread. resolve/fail/cancel may be
    called from any thread; only the first one counts. `on_settle` runs on
    the settling thread right after the winner is decided and before the
    awaiting caller is woken.
    """

    def __init__(self, on_settle: Optional[Callable[[FetchState], None]] = None,
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop or asyncio.get_running_loop()
        self._loop_thread = threading.get_ident()
        self._future = self._loop.create_future()
        self._on_settle = on_settle
        self._lock = threading.Lock()
        self._state = FetchState.IDLE
        self._result: Optional[Coordinate] = None
        self._error: Optional[LocationUnavailable] = None

    @property
    def error(self) -> Optional[LocationUnavailable]:
        """The failure, set as soon as fail() wins."""
        with self._lock:
            return self._error

    @property
    def result(self) -> Optional[Coordinate]:
        """The resolved coordinate, set as soon as resolve() wins."""
        with self._lock:
            return self._result

    @property
    def state(self) -> FetchState:
        with self._lock:
            return self._state

    def begin(self) -> None:
        with self._lock:
            if self._state is not FetchState.IDLE:
                raise RuntimeError(f"fetch already {self._state.value}")
            self._state = FetchState.REQUESTING

    def resolve(self, coord: Coordinate) -> bool:
        return self._settle(FetchState.RESOLVED, coord, None)

    def fail(self, reason: Optional[str] = None) -> bool:
        return self._settle(FetchState.FAILED, None, LocationUnavailable(reason))

    def cancel(self) -> bool:
        return self._settle(FetchState.CANCELLED, None, None)

    async def wait(self) -> Coordinate:
        return await self._future

    def _settle(self, state: FetchState, result, exc) -> bool:
        with self._lock:
            if self._state is not FetchState.REQUESTING:
                logger.debug(f"Ignoring late {state.value} on {self._state.value} fetch")
                return False
            self._state = state
            self._result = result
            self._error = exc

        if self._on_settle is not None:
            self._on_settle(state)

        if threading.get_ident() == self._loop_thread:
            self._complete(state, result, exc)
        else:
            self._loop.call_soon_threadsafe(self._complete, state, result, exc)
        return True

    def _complete(self, state, result, exc) -> None:
        # the awaiting task may already have been cancelled
        if self._future.done():
            return
        if state is FetchState.RESOLVED:
            self._future.set_result(result)
        elif state is FetchState.FAILED:
            self._future.set_exception(exc)
        else:
            self._future.cancel()


class LocationService:
    """
    Asks a provider for one location fix and hands it back to the caller.

    Calls on the same service are serialized: each call gets its own
    PendingFetch and its own provider session. `timeout_s=None` waits
    for as long as the provider takes.
    """

    def __init__(self, provider: LocationProvider, timeout_s: Optional[float] = None):
        self.provider = provider
        self.timeout_s = timeout_s
        self._call_lock: Optional[asyncio.Lock] = None
        self._call_loop: Optional[asyncio.AbstractEventLoop] = None
        self._latest_lock = threading.Lock()
        self._latest: Optional[Coordinate] = None

    def latest(self) -> Optional[Coordinate]:
        """Instant, non-blocking. Last successful fix or None."""
        with self._latest_lock:
            return self._latest

    async def get_current_location(self) -> Coordinate:
        # asyncio.Lock binds to one loop; a new asyncio.run() gets a new lock
        loop = asyncio.get_running_loop()
        if self._call_lock is None or self._call_loop is not loop:
            self._call_lock = asyncio.Lock()
            self._call_loop = loop
        async with self._call_lock:
            return await self._fetch_once()

    async def _fetch_once(self) -> Coordinate:
        name = self.provider.name

        def stop(state: FetchState) -> None:
            try:
                self.provider.stop_updates()
            except Exception as e:
                logger.warning(f"  ⚠️ {name} stop_updates failed after {state.value}: {e}")

        fetch = PendingFetch(on_settle=stop)

        def on_fix(coord: Optional[Coordinate]) -> None:
            if coord is None:
                if fetch.fail(NO_LOCATION_REASON):
                    logger.warning(f"  ⚠️ {name} reported no location")
            else:
                fetch.resolve(coord)

        def on_error(reason: Optional[str]) -> None:
            if fetch.fail(reason):
                logger.warning(f"  ⚠️ {name} failed: {reason}")

        self.provider.request_authorization()
        fetch.begin()
        try:
            self.provider.start_updates(on_fix, on_error)
        except LocationUnavailable as e:
            # surfaced by wait() below
            if fetch.fail(e.reason):
                logger.error(f"  ❌ {name} could not start: {e}")
        except Exception as e:
            # OS errors from platform handles, e.g. location services disabled
            if fetch.fail(str(e) or type(e).__name__):
                logger.error(f"  ❌ {name} could not start: {e!r}")

        try:
            if self.timeout_s is None:
                coord = await fetch.wait()
            else:
                coord = await asyncio.wait_for(fetch.wait(), self.timeout_s)
        except asyncio.TimeoutError:
            reason = f"Timed out after {self.timeout_s:g} s"
            if fetch.fail(reason):
                logger.warning(f"  ⚠️ {name} {reason}")
                raise LocationUnavailable(reason) from None
            # a callback won the race against the timer
            if fetch.state is FetchState.FAILED:
                raise fetch.error from None
            if fetch.state is not FetchState.RESOLVED:
                raise LocationUnavailable(reason) from None
            coord = fetch.result
        except asyncio.CancelledError:
            fetch.cancel()
            raise

        with self._latest_lock:
            self._latest = coord
        logger.info(f"   ✅ {name} fix {coord.latitude:.6f},{coord.longitude:.6f}")
        return coord
