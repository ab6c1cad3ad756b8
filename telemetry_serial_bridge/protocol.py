# telemetry_serial_bridge/protocol.py

import json
from typing import Iterator, List, Optional, Tuple

# ======================================================
# FRAMING
# ======================================================

# Every device report starts with this literal prefix.
FRAME_START = '{"dispositivos":'
DEVICES_KEY = "dispositivos"


def find_frame_end(text: str, start: int) -> int:
    """
    Index of the '}' closing the object opened at `start`,
    or -1 if the object is not complete yet.

    Braces inside string literals do not count. Inside a string a
    backslash consumes the next character, so an escaped quote never
    terminates the literal.
    """
    depth = 0
    in_string = False
    escaped = False

    for i in range(start, len(text)):
        c = text[i]

        if in_string:
            if escaped:
                escaped = False
            elif c == '\\':
                escaped = True
            elif c == '"':
                in_string = False
            continue

        if c == '"':
            in_string = True
        elif c == '{':
            depth += 1
        elif c == '}':
            depth -= 1
            if depth == 0:
                return i

    return -1


def iter_frames(text: str, pos: int = 0) -> Iterator[Tuple[int, int]]:
    """
    Yield (start, end) of each complete frame from `pos` on.

    Stops at the first frame that is not complete yet; nothing past
    it can be delimited.
    """
    while True:
        start = text.find(FRAME_START, pos)
        if start == -1:
            return

        end = find_frame_end(text, start)
        if end == -1:
            return

        yield start, end
        pos = end + 1


# ======================================================
# MCU → HOST
# ======================================================

def decode_frame(text: str) -> Optional[List]:
    """
    Decode one balanced frame.

    Expected:
      {"dispositivos":[{...}, {...}]}

    Returns the device list, or None when the frame is not a JSON
    object holding a "dispositivos" array.
    """
    try:
        parsed = json.loads(text)
    except (ValueError, RecursionError):
        return None

    if not isinstance(parsed, dict):
        return None

    devices = parsed.get(DEVICES_KEY)
    if not isinstance(devices, list):
        return None

    return devices


# ======================================================
# HOST → ROS
# ======================================================

def encode_record(record) -> str:
    """
    Compact JSON for one DeviceRecord, keyed by the wire field names.
    """
    return json.dumps(record.to_wire(), separators=(",", ":"))
