import json

import pytest


SCENARIO_FRAME = (
    '{"dispositivos":[{"type":"dados","serieSlave":"S1","macSlave":"AA:BB",'
    '"versionSlave":"1.0","te":"20.5","ph":"7.0","pr":"1.0","rd":"",'
    '"teS":"24","rpmS":"100"}]}'
)

BOOT_BANNER = "ESP-ROM:esp32c3-api1-20210207\nBooting...\nWiFi connected\n"


def device(**overrides):
    """One wire-format device element; every value is a string."""
    element = {
        "type": "dados",
        "serieSlave": "20100402025",
        "macSlave": "10:02:00:28:E1:F2",
        "versionSlave": "3.2.2",
        "te": "20.69545555",
        "ph": "5.395999908",
        "pr": "3.801954746",
        "rd": "",
        "teS": "24",
        "rpmS": "138",
    }
    element.update(overrides)
    return element


def frame(*elements):
    """Compact JSON frame exactly as the gateway prints it."""
    if not elements:
        elements = (device(),)
    return json.dumps({"dispositivos": list(elements)}, separators=(",", ":"))


class FakeClock:

    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
