# provider_corelocation.py
from __future__ import annotations

import threading
from typing import Optional

from location import Coordinate, LocationProvider, LocationUnavailable, OnFix, OnError
from shared import logger


# kCLLocationAccuracyBest / kCLDistanceFilterNone
ACCURACY_BEST = -1.0
DISTANCE_FILTER_NONE = -1.0

_delegate_class = None
_delegate_class_lock = threading.Lock()


def _corelocation():
    try:
        import CoreLocation  # type: ignore
    except ImportError as e:
        raise LocationUnavailable("CoreLocation is not available") from e
    return CoreLocation


def _make_delegate_class():
    """NSObject subclasses can only be registered once per process."""
    global _delegate_class
    with _delegate_class_lock:
        if _delegate_class is not None:
            return _delegate_class

        import objc  # type: ignore
        from Foundation import NSObject  # type: ignore

        class LocateQtLocationDelegate(NSObject):

            def initWithProvider_(self, provider):
                self = objc.super(LocateQtLocationDelegate, self).init()
                if self is None:
                    return None
                self.provider = provider
                return self

            def locationManager_didUpdateLocations_(self, manager, locations):
                self.provider.did_update_locations(locations)

            def locationManager_didFailWithError_(self, manager, error):
                self.provider.did_fail(error)

        _delegate_class = LocateQtLocationDelegate
        return _delegate_class


class CoreLocationProvider(LocationProvider):
    """
    macOS CLLocationManager driven through a delegate.

    Delegate callbacks arrive on the run loop of the thread that created the
    manager, so that thread must be running one (Qt's main loop does).
    """

    name = "corelocation"

    def __init__(self, manager=None, delegate=None, desired_accuracy: float = ACCURACY_BEST):
        self._manager = manager
        self._delegate = delegate
        self.desired_accuracy = desired_accuracy
        self._on_fix: Optional[OnFix] = None
        self._on_error: Optional[OnError] = None
        self._active = False

    @property
    def manager(self):
        if self._manager is None:
            CoreLocation = _corelocation()
            self._manager = CoreLocation.CLLocationManager.alloc().init()
        return self._manager

    def request_authorization(self) -> None:
        self.manager.requestWhenInUseAuthorization()

    def start_updates(self, on_fix: OnFix, on_error: OnError) -> None:
        mgr = self.manager
        if self._delegate is None:
            self._delegate = _make_delegate_class().alloc().initWithProvider_(self)

        self._on_fix = on_fix
        self._on_error = on_error
        self._active = True

        mgr.setDesiredAccuracy_(self.desired_accuracy)
        mgr.setDistanceFilter_(DISTANCE_FILTER_NONE)
        # manager holds the delegate weakly; self._delegate keeps it alive
        mgr.setDelegate_(self._delegate)
        mgr.startUpdatingLocation()

    def stop_updates(self) -> None:
        if not self._active:
            return
        self._active = False
        self._manager.stopUpdatingLocation()
        self._manager.setDelegate_(None)

    # --- delegate entry points ---

    def did_update_locations(self, locations) -> None:
        if not self._active:
            return
        locations = list(locations or [])
        if not locations:
            self._on_fix(None)
            return
        coord = locations[-1].coordinate()
        try:
            fix = Coordinate(coord.latitude, coord.longitude)
        except ValueError as e:
            self._on_error(f"Bad CoreLocation position: {e}")
            return
        self._on_fix(fix)

    def did_fail(self, error) -> None:
        if not self._active:
            return
        reason = str(error.localizedDescription()) if error is not None else None
        logger.warning(f"  ⚠️ CoreLocation: {reason}")
        self._on_error(reason)
