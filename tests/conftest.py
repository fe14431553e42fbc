import pytest

import shared
from location import LocationProvider


class FakeProvider(LocationProvider):
    """Records calls; `on_start(provider)` decides what the "OS" answers."""

    name = "fake"

    def __init__(self, on_start=None, start_error=None):
        self.on_start = on_start
        self.start_error = start_error
        self.fix_cb = None
        self.error_cb = None
        self.auth_requests = 0
        self.starts = 0
        self.stops = 0

    def request_authorization(self):
        self.auth_requests += 1

    def start_updates(self, on_fix, on_error):
        self.starts += 1
        self.fix_cb = on_fix
        self.error_cb = on_error
        if self.start_error is not None:
            raise self.start_error
        if self.on_start is not None:
            self.on_start(self)

    def stop_updates(self):
        self.stops += 1


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def settings_file(tmp_path, monkeypatch):
    snapshot = shared.to_settings()
    path = tmp_path / "settings.json"
    monkeypatch.setattr(shared, "SETTINGS_FILE", path)
    yield path
    shared.from_settings(snapshot)
