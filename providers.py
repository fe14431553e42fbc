# providers.py
from __future__ import annotations

import sys
from typing import Optional, List

from location import LocationProvider
from shared import logger


PROVIDERS = ("qt", "corelocation", "winrt", "nmea")


def available_providers() -> List[str]:
    return ["auto", *PROVIDERS]


def platform_default(platform: Optional[str] = None) -> str:
    platform = platform or sys.platform
    if platform == "darwin":
        return "corelocation"
    if platform.startswith("win"):
        return "winrt"
    # Linux and the rest: Qt picks GeoClue or whatever plugin is installed
    return "qt"


def create_provider(
    name: str = "auto",
    *,
    timeout_ms: int = 0,
    desired_accuracy_m: Optional[int] = None,
    serial_port: Optional[str] = None,
    serial_baud: int = 4800,
    nmea_fix_timeout_s: float = 10.0,
    handle=None,
) -> LocationProvider:
    """
    Build a provider by name. `handle` is the platform object the backend
    wraps (QGeoPositionInfoSource, CLLocationManager, Geolocator or an open
    serial port); the backend creates its own when it is None.
    """
    name = (name or "auto").lower()
    if name == "auto":
        name = platform_default()
        logger.info(f"   ✅ Auto-selected location provider: {name}")

    if name == "qt":
        from provider_qt import QtPositionProvider
        return QtPositionProvider(source=handle, update_timeout_ms=timeout_ms)

    if name == "corelocation":
        from provider_corelocation import CoreLocationProvider
        return CoreLocationProvider(manager=handle)

    if name == "winrt":
        from provider_winrt import WinRtProvider
        return WinRtProvider(geolocator=handle, desired_accuracy_m=desired_accuracy_m)

    if name == "nmea":
        from provider_nmea import NmeaSerialProvider
        return NmeaSerialProvider(
            port=handle,
            port_name=serial_port or None,
            baud=serial_baud,
            fix_timeout_s=nmea_fix_timeout_s,
        )

    raise ValueError(f"Unknown location provider '{name}' (choose from {', '.join(available_providers())})")
