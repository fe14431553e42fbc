# provider_qt.py
from __future__ import annotations

from typing import Optional

from qt_compat import IS_QT6
from qt_compat import QGeoPositionInfoSource

from location import Coordinate, LocationProvider, LocationUnavailable, OnFix, OnError
from shared import logger


ERROR_REASONS = {
    QGeoPositionInfoSource.AccessError: "Location permission denied",
    QGeoPositionInfoSource.ClosedError: "Location source closed",
    QGeoPositionInfoSource.UnknownSourceError: "Unknown location source error",
}
if IS_QT6:
    ERROR_REASONS[QGeoPositionInfoSource.UpdateTimeoutError] = "Location update timed out"


def coordinate_from_info(info) -> Optional[Coordinate]:
    """QGeoPositionInfo -> Coordinate, or None when Qt has no valid fix."""
    if info is None or not info.isValid():
        return None
    c = info.coordinate()
    if not c.isValid():
        return None
    return Coordinate(c.latitude(), c.longitude())


class QtPositionProvider(LocationProvider):
    """
    Qt Positioning default source (GeoClue / CoreLocation / WinRT plugin).

    Signals are delivered on the Qt event loop of the thread that owns the
    source, so a Qt loop must be running (see QtAsyncio in locate.py).
    """

    name = "qt"

    def __init__(self, source=None, parent=None, update_timeout_ms: int = 0):
        self._source = source
        self._parent = parent
        self.update_timeout_ms = update_timeout_ms
        self._on_fix: Optional[OnFix] = None
        self._on_error: Optional[OnError] = None
        self._connected = False

    @property
    def source(self):
        if self._source is None:
            self._source = QGeoPositionInfoSource.createDefaultSource(self._parent)
            if self._source is None:
                raise LocationUnavailable("No Qt positioning source available")
            logger.info(f"   ✅ Qt positioning source: {self._source.sourceName()}")
        return self._source

    def start_updates(self, on_fix: OnFix, on_error: OnError) -> None:
        src = self.source
        self._on_fix = on_fix
        self._on_error = on_error

        src.positionUpdated.connect(self._position_updated)
        if IS_QT6:
            src.errorOccurred.connect(self._error_occurred)
        else:
            src.error.connect(self._error_occurred)
            src.updateTimeout.connect(self._update_timeout)
        self._connected = True

        src.requestUpdate(self.update_timeout_ms)

    def stop_updates(self) -> None:
        if not self._connected:
            return
        self._connected = False
        src = self._source
        src.stopUpdates()
        src.positionUpdated.disconnect(self._position_updated)
        if IS_QT6:
            src.errorOccurred.disconnect(self._error_occurred)
        else:
            src.error.disconnect(self._error_occurred)
            src.updateTimeout.disconnect(self._update_timeout)

    def _position_updated(self, info) -> None:
        if self._on_fix is None:
            return
        try:
            coord = coordinate_from_info(info)
        except ValueError as e:
            self._on_error(f"Bad Qt position: {e}")
            return
        self._on_fix(coord)

    def _error_occurred(self, error) -> None:
        if self._on_error is None:
            return
        reason = ERROR_REASONS.get(error, f"Qt positioning error {error}")
        logger.warning(f"  ⚠️ Qt positioning: {reason}")
        self._on_error(reason)

    def _update_timeout(self) -> None:
        if self._on_error is not None:
            self._on_error("Location update timed out")
