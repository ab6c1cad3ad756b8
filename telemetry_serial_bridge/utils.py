import math
import re

_LEADING_FLOAT = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def parse_float(text: str) -> float:
    """
    Leading-number float parse, as the firmware's consumers expect:

      "20.5"  -> 20.5
      "12abc" -> 12.0
      ""      -> 0.0
      "abc"   -> 0.0

    Non-finite results (overflow) also map to 0.0
    """
    match = _LEADING_FLOAT.match(text)
    if match is None:
        return 0.0

    value = float(match.group(1))
    if not math.isfinite(value):
        return 0.0
    return value
