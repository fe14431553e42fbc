import asyncio
import time
from types import SimpleNamespace

import pytest
import serial

import provider_nmea
from location import NO_LOCATION_REASON, Coordinate, LocationService, LocationUnavailable
from provider_nmea import NmeaSerialProvider, dm_to_deg, find_best_port, has_fix, parse_nmea


RMC_VALID = "$GPRMC,123519,A,4807.038,N,01131.000,E,022.4,084.4,230394,003.1,W*6A"
RMC_VOID = "$GPRMC,123519,V,,,,,,,230394,,*7C"
GGA_FIX = "$GPGGA,123519,4807.038,N,01131.000,E,1,08,0.9,545.4,M,46.9,M,,*47"
GGA_NOFIX = "$GPGGA,123519,,,,,0,00,,,M,,M,,*66"


class FakeSerial:
    def __init__(self, lines=(), error=None):
        self.lines = [ln.encode("ascii") + b"\r\n" for ln in lines]
        self.error = error
        self.closed = False

    def readline(self):
        if self.error is not None:
            raise self.error
        if self.lines:
            return self.lines.pop(0)
        time.sleep(0.005)
        return b""

    def close(self):
        self.closed = True


def test_dm_to_deg():
    assert dm_to_deg("4807.038", "N") == pytest.approx(48.1173)
    assert dm_to_deg("01131.000", "E") == pytest.approx(11.516666, abs=1e-6)
    assert dm_to_deg("3348.5096", "S") == pytest.approx(-33.808493, abs=1e-6)
    assert dm_to_deg("15113.1800", "W") == pytest.approx(-151.2196667, abs=1e-6)
    assert dm_to_deg("", "N") is None
    assert dm_to_deg("garbage", "N") is None


def test_parse_rmc_and_gga():
    rmc = parse_nmea(RMC_VALID)
    assert rmc["rmc_valid"] is True
    assert rmc["lat"] == pytest.approx(48.1173)
    assert rmc["lon"] == pytest.approx(11.516666, abs=1e-6)

    gga = parse_nmea(GGA_FIX)
    assert gga["fix_quality"] == 1
    assert gga["lat"] == pytest.approx(48.1173)

    void = parse_nmea(RMC_VOID)
    assert void["rmc_valid"] is False
    assert "lat" not in void

    assert parse_nmea("not a sentence") == {}
    assert parse_nmea("$GPGSV,3,1,11,03,03,111,00*74") == {}


def test_has_fix():
    assert has_fix(parse_nmea(RMC_VALID))
    assert has_fix(parse_nmea(GGA_FIX))
    assert not has_fix(parse_nmea(GGA_NOFIX))
    assert not has_fix({"lat": 1.0, "lon": 2.0})


def test_find_best_port_prefers_prolific():
    ports = [
        SimpleNamespace(device="/dev/ttyS0", description="Serial", hwid="PNP0501"),
        SimpleNamespace(device="/dev/ttyUSB0", description="USB-Serial Controller",
                        hwid="USB VID:PID=067B:2303 Prolific"),
    ]
    assert find_best_port(ports) == "/dev/ttyUSB0"
    assert find_best_port([]) is None


def test_first_valid_fix_resolves():
    port = FakeSerial([GGA_NOFIX, RMC_VOID, "$GPGSV,junk", RMC_VALID, GGA_FIX])
    provider = NmeaSerialProvider(port=port, fix_timeout_s=2.0)
    service = LocationService(provider, timeout_s=5.0)

    fix = asyncio.run(service.get_current_location())

    assert isinstance(fix, Coordinate)
    assert fix.latitude == pytest.approx(48.1173)
    assert fix.longitude == pytest.approx(11.516666, abs=1e-6)
    # injected port belongs to the caller
    assert port.closed is False


def test_no_fix_within_window_reports_no_location():
    provider = NmeaSerialProvider(port=FakeSerial([RMC_VOID, GGA_NOFIX]), fix_timeout_s=0.1)
    service = LocationService(provider, timeout_s=5.0)

    with pytest.raises(LocationUnavailable) as ei:
        asyncio.run(service.get_current_location())
    assert ei.value.reason == NO_LOCATION_REASON


def test_serial_error_is_reported():
    port = FakeSerial(error=serial.SerialException("device disconnected"))
    provider = NmeaSerialProvider(port=port, fix_timeout_s=1.0)
    service = LocationService(provider, timeout_s=5.0)

    with pytest.raises(LocationUnavailable) as ei:
        asyncio.run(service.get_current_location())
    assert "device disconnected" in ei.value.reason


def test_missing_port_is_reported(monkeypatch):
    monkeypatch.setattr(provider_nmea, "find_best_port", lambda ports=None: None)
    service = LocationService(NmeaSerialProvider(), timeout_s=5.0)

    with pytest.raises(LocationUnavailable) as ei:
        asyncio.run(service.get_current_location())
    assert ei.value.reason == "No serial GPS port found"


def test_opened_port_is_closed(monkeypatch):
    opened = []

    def fake_serial(name, baud, timeout):
        port = FakeSerial([RMC_VALID])
        opened.append((name, baud, port))
        return port

    monkeypatch.setattr(provider_nmea.serial, "Serial", fake_serial)
    provider = NmeaSerialProvider(port_name="/dev/ttyUSB0", baud=9600, fix_timeout_s=2.0)
    service = LocationService(provider, timeout_s=5.0)

    asyncio.run(service.get_current_location())
    provider._thread.join(2.0)

    name, baud, port = opened[0]
    assert (name, baud) == ("/dev/ttyUSB0", 9600)
    assert port.closed is True


def test_dm_to_deg_rejects_non_finite():
    assert dm_to_deg("nan", "N") is None
    assert dm_to_deg("inf", "E") is None
    assert dm_to_deg("-inf", "S") is None
    assert parse_nmea("$GPRMC,123519,A,nan,N,inf,E,022.4,084.4,230394,003.1,W*6A") == {"rmc_valid": True}


def test_non_finite_sentence_ends_in_no_location():
    port = FakeSerial(["$GPRMC,123519,A,nan,N,01131.000,E,022.4,084.4,230394,003.1,W*6A"])
    provider = NmeaSerialProvider(port=port, fix_timeout_s=0.2)
    service = LocationService(provider)  # no service timeout: the reader must answer

    with pytest.raises(LocationUnavailable) as ei:
        asyncio.run(asyncio.wait_for(service.get_current_location(), 5.0))
    assert ei.value.reason == NO_LOCATION_REASON


def test_bad_port_settings_are_reported(monkeypatch):
    def bad_serial(name, baud, timeout):
        raise ValueError("Not a valid baudrate: -1")

    monkeypatch.setattr(provider_nmea.serial, "Serial", bad_serial)
    provider = NmeaSerialProvider(port_name="/dev/ttyUSB0", baud=-1)
    service = LocationService(provider, timeout_s=5.0)

    with pytest.raises(LocationUnavailable) as ei:
        asyncio.run(service.get_current_location())
    assert ei.value.reason == "Not a valid baudrate: -1"


def test_os_error_while_reading_is_reported():
    port = FakeSerial(error=OSError(5, "Input/output error"))
    service = LocationService(NmeaSerialProvider(port=port), timeout_s=5.0)

    with pytest.raises(LocationUnavailable) as ei:
        asyncio.run(service.get_current_location())
    assert "Input/output error" in ei.value.reason
