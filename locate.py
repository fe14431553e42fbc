# locate.py
import sys
import json
import asyncio
import argparse

import shared

from qt_compat import IS_QT6
from qt_compat import QCoreApplication

from location import Coordinate, LocationService, LocationUnavailable
from providers import available_providers, create_provider
from shared import logger


def fmt_fix(fix, as_json: bool = False) -> str:
    if as_json:
        return json.dumps(fix.as_dict())
    return f"{fix.latitude:.6f},{fix.longitude:.6f}"


def parse_args(argv=None):
    p = argparse.ArgumentParser(prog="locateqt", description="Print the current device location once.")
    p.add_argument("--provider", choices=available_providers(), default=shared.provider,
                   help="location backend (default: %(default)s)")
    p.add_argument("--timeout", type=float, default=shared.timeout_s,
                   help="seconds to wait for a fix, 0 waits forever (default: %(default)s)")
    p.add_argument("--port", default=shared.serial_port, help="serial port for the nmea provider")
    p.add_argument("--baud", type=int, default=shared.serial_baud, help="serial baud rate (default: %(default)s)")
    p.add_argument("--json", action="store_true", help='print {"lat": .., "lon": ..}')
    p.add_argument("--last", action="store_true", help="print the last stored fix without asking the provider")
    return p.parse_args(argv)


def run_event_loop(coro) -> None:
    """Run `coro` on Qt's event loop so Qt and CoreLocation callbacks get delivered."""
    if not IS_QT6:
        asyncio.run(coro)
        return
    from PySide6 import QtAsyncio

    if QCoreApplication.instance() is None:
        QCoreApplication(sys.argv)
    QtAsyncio.run(coro, keep_running=False, quit_qapp=True)


def main(argv=None) -> int:
    shared.ensure_settings_exists()
    shared.load_settings()
    args = parse_args(argv)

    if args.last:
        fix = Coordinate.from_dict(shared.last_fix)
        if fix is None:
            print("No stored fix", file=sys.stderr)
            return 1
        print(fmt_fix(fix, args.json))
        return 0

    provider = create_provider(
        args.provider,
        timeout_ms=shared.qt_update_timeout_ms,
        desired_accuracy_m=shared.desired_accuracy_m,
        serial_port=args.port,
        serial_baud=args.baud,
        nmea_fix_timeout_s=shared.nmea_fix_timeout_s,
    )
    service = LocationService(provider, timeout_s=args.timeout or None)
    outcome = {}

    async def _fetch():
        try:
            outcome["fix"] = await service.get_current_location()
        except LocationUnavailable as e:
            outcome["error"] = e

    run_event_loop(_fetch())

    fix = outcome.get("fix")
    if fix is None:
        err = outcome.get("error") or LocationUnavailable()
        logger.error(f"  ❌ {err}")
        print(f"Location unavailable: {err}", file=sys.stderr)
        return 1

    shared.last_fix = fix.as_dict()
    shared.save_settings()
    print(fmt_fix(fix, args.json))
    return 0


if __name__ == "__main__":
    sys.exit(main())
