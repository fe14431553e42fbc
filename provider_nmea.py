# provider_nmea.py
from __future__ import annotations

import math
import threading
import time
from typing import Optional, Dict, Any

import serial  # pyserial
from serial.tools import list_ports

from location import Coordinate, LocationProvider, LocationUnavailable, OnFix, OnError
from shared import logger


DEFAULT_BAUD = 4800


def _score_port(p) -> int:
    desc = (getattr(p, "description", "") or "").lower()
    hwid = (getattr(p, "hwid", "") or "").lower()
    dev = (getattr(p, "device", "") or "")

    score = 0
    # Prolific PL2303 (GlobalSat BU-353)
    if "pl2303" in desc or "pl2303" in hwid:
        score += 50
    if "prolific" in desc or "prolific" in hwid:
        score += 30
    if "067b" in hwid:
        score += 20
    if dev.startswith("/dev/cu."):
        score += 5
    return score


def find_best_port(ports=None) -> Optional[str]:
    if ports is None:
        ports = list_ports.comports()
    ports = list(ports)
    if not ports:
        return None
    ports.sort(key=_score_port, reverse=True)
    return getattr(ports[0], "device", None)


def dm_to_deg(dm: str, hemi: str) -> Optional[float]:
    # dm like "3348.5096" (ddmm.mmmm) or "15113.1800" (dddmm.mmmm)
    if not dm:
        return None
    try:
        v = float(dm)
    except ValueError:
        return None
    if not math.isfinite(v):
        return None
    deg = int(v // 100)
    minutes = v - (deg * 100)
    out = deg + minutes / 60.0
    if hemi in ("S", "W"):
        out = -out
    return out


def parse_nmea(line: str) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    if not line.startswith("$"):
        return out

    # drop checksum
    parts = line.strip().split("*", 1)[0].split(",")
    if len(parts) < 2:
        return out

    t = parts[0]

    # $GPRMC,hhmmss.sss,A,llll.ll,a,yyyyy.yy,a,...
    if t.endswith("RMC") and len(parts) >= 7:
        lat = dm_to_deg(parts[3], parts[4])
        lon = dm_to_deg(parts[5], parts[6])
        out["rmc_valid"] = (parts[2] == "A")
        if lat is not None and lon is not None:
            out["lat"] = lat
            out["lon"] = lon

    # $GPGGA,hhmmss.sss,llll.ll,a,yyyyy.yy,a,fixq,sats,hdop,alt,M,...
    elif t.endswith("GGA") and len(parts) >= 10:
        lat = dm_to_deg(parts[2], parts[3])
        lon = dm_to_deg(parts[4], parts[5])
        fixq = parts[6]
        out["fix_quality"] = int(fixq) if fixq.isdigit() else 0
        if lat is not None and lon is not None:
            out["lat"] = lat
            out["lon"] = lon

    return out


def has_fix(d: Dict[str, Any]) -> bool:
    return (
        d.get("lat") is not None
        and d.get("lon") is not None
        and (d.get("fix_quality", 0) > 0 or d.get("rmc_valid", False))
    )


class NmeaSerialProvider(LocationProvider):
    """
    USB GPS receiver speaking NMEA-0183 over a serial port.

    Pass an already-open `port` object (anything with readline/close), or a
    `port_name`; with neither, the best-scoring serial port is used.
    """

    name = "nmea"

    def __init__(self, port=None, port_name: Optional[str] = None, baud: int = DEFAULT_BAUD,
                 fix_timeout_s: float = 10.0):
        self._port = port
        self.port_name = port_name
        self.baud = baud
        self.fix_timeout_s = fix_timeout_s
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start_updates(self, on_fix: OnFix, on_error: OnError) -> None:
        if self._thread and self._thread.is_alive():
            raise LocationUnavailable("NMEA reader already running")
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._worker, args=(on_fix, on_error), name="NMEAReader", daemon=True
        )
        self._thread.start()

    def stop_updates(self) -> None:
        self._stop.set()

    def _open(self):
        if self._port is not None:
            return self._port, False
        port_name = self.port_name or find_best_port()
        if not port_name:
            raise LocationUnavailable("No serial GPS port found")
        ser = serial.Serial(port_name, self.baud, timeout=0.2)
        logger.info(f"   ✅ Opened GPS port {port_name} @ {self.baud}")
        return ser, True

    def _worker(self, on_fix: OnFix, on_error: OnError) -> None:
        try:
            ser, owned = self._open()
        except LocationUnavailable as e:
            on_error(e.reason)
            return
        except (serial.SerialException, ValueError, OSError) as e:
            # pyserial raises ValueError for bad baud / port settings
            logger.error(f"  ❌ GPS port open failed: {e}")
            on_error(str(e))
            return

        best: Dict[str, Any] = {}
        deadline = time.monotonic() + self.fix_timeout_s
        try:
            while not self._stop.is_set():
                if time.monotonic() >= deadline:
                    on_fix(None)
                    return
                raw = ser.readline()
                if not raw:
                    continue
                line = raw.decode("ascii", errors="ignore").strip()
                d = parse_nmea(line)
                if not d:
                    continue
                best.update(d)
                if has_fix(best):
                    try:
                        coord = Coordinate(best["lat"], best["lon"])
                    except ValueError as e:
                        on_error(f"Bad NMEA position: {e}")
                        return
                    on_fix(coord)
                    return
        except (serial.SerialException, OSError) as e:
            logger.error(f"  ❌ GPS read failed: {e}")
            on_error(str(e))
        finally:
            if owned:
                ser.close()
