# provider_winrt.py
from __future__ import annotations

import asyncio
import threading
from typing import Optional

from location import Coordinate, LocationProvider, LocationUnavailable, OnFix, OnError
from shared import logger


def _geolocator_class():
    try:
        from winrt.windows.devices.geolocation import Geolocator  # type: ignore
    except ImportError as e:
        raise LocationUnavailable("Windows geolocation is not available") from e
    return Geolocator


class WinRtProvider(LocationProvider):
    """
    Windows Geolocator. The one-shot get_geoposition_async() runs on a worker
    thread with its own asyncio loop and reports back through the callbacks.
    """

    name = "winrt"

    def __init__(self, geolocator=None, desired_accuracy_m: Optional[int] = None):
        self._geolocator = geolocator
        self.desired_accuracy_m = desired_accuracy_m
        self._lock = threading.Lock()
        self._session = 0
        self._active = False

    @property
    def geolocator(self):
        if self._geolocator is None:
            self._geolocator = _geolocator_class()()
            if self.desired_accuracy_m:
                self._geolocator.desired_accuracy_in_meters = int(self.desired_accuracy_m)
        return self._geolocator

    def start_updates(self, on_fix: OnFix, on_error: OnError) -> None:
        locator = self.geolocator
        with self._lock:
            self._session += 1
            session = self._session
            self._active = True

        t = threading.Thread(
            target=self._worker, args=(locator, session, on_fix, on_error),
            name="WinRtGeolocator", daemon=True,
        )
        t.start()

    def stop_updates(self) -> None:
        # the WinRT operation itself keeps running; its result is dropped
        with self._lock:
            self._active = False

    def _current(self, session: int) -> bool:
        with self._lock:
            return self._active and session == self._session

    def _worker(self, locator, session: int, on_fix: OnFix, on_error: OnError) -> None:
        async def _get():
            pos = await locator.get_geoposition_async()
            p = pos.coordinate.point.position
            return Coordinate(p.latitude, p.longitude)

        try:
            coord = asyncio.run(_get())
        except Exception as e:
            # WinRT surfaces access denied / timeouts as OSError or RuntimeError
            if self._current(session):
                logger.warning(f"  ⚠️ WinRT geolocation failed: {e}")
                on_error(str(e) or type(e).__name__)
            return

        if self._current(session):
            on_fix(coord)
