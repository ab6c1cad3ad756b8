# telemetry_serial_bridge/buffer.py

import logging
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Callable, Optional

from .protocol import FRAME_START, iter_frames

logger = logging.getLogger(__name__)

# ======================================================
# LIMITS
# ======================================================

DEFAULT_MAX_SIZE = 50000         # chars
DEFAULT_MAX_AGE = 30.0           # seconds
DEFAULT_FAILURE_THRESHOLD = 5

# Upper bound of what an emergency trim keeps.
RETENTION_CAP = 10000

# Age cleanup only commits if it discards less than this share.
AGE_TRIM_RATIO = 0.8

WARNING_RATIO = 0.8
CRITICAL_RATIO = 0.9


@dataclass
class ParserConfig:
    max_size: int = DEFAULT_MAX_SIZE
    max_age: float = DEFAULT_MAX_AGE
    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD

    def __post_init__(self):
        if self.max_size <= 0:
            raise ValueError("max_size must be positive")
        if self.max_age <= 0:
            raise ValueError("max_age must be positive")
        if self.failure_threshold <= 0:
            raise ValueError("failure_threshold must be positive")


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class Cleanup(str, Enum):
    EMERGENCY = "emergency"
    AGE = "age"


@dataclass(frozen=True)
class BufferHealth:
    size: int
    max_size: int
    since_cleanup: float
    status: HealthStatus

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data


class StreamBuffer:
    """
    Unconsumed serial text plus the clock of its last cleanup.

    The size and age policy is evaluated once per ingestion through
    check_health(); everything else only appends or consumes.
    """

    def __init__(self, config: ParserConfig, clock: Callable[[], float] = time.monotonic):
        self.config = config
        self._clock = clock

        self.content = ""
        self.last_cleanup = clock()

    def __len__(self) -> int:
        return len(self.content)

    def append(self, chunk: str):
        self.content += chunk

    def consume(self, end: int):
        """Drop everything before `end`."""
        if end > 0:
            self.content = self.content[end:]

    def clear(self):
        self.content = ""
        self.mark_clean()

    def mark_clean(self):
        self.last_cleanup = self._clock()

    # =====================================================
    # HEALTH QUERY
    # =====================================================
    def health(self) -> BufferHealth:
        size = len(self.content)
        max_size = self.config.max_size

        if size > max_size * CRITICAL_RATIO:
            status = HealthStatus.CRITICAL
        elif size >= max_size * WARNING_RATIO:
            status = HealthStatus.WARNING
        else:
            status = HealthStatus.HEALTHY

        return BufferHealth(
            size=size,
            max_size=max_size,
            since_cleanup=self._clock() - self.last_cleanup,
            status=status,
        )

    # =====================================================
    # HEALTH POLICY
    # =====================================================
    def check_health(self, appended: int = 0) -> Optional[Cleanup]:
        """
        Trim the buffer if it is oversized or stale.

        `appended` is the length of the chunk just added. The age scan
        only drops frames that were already buffered before it, so
        frames that chunk completes are left for extraction.

        Returns which cleanup ran, if any. Size takes priority over age.
        """
        if len(self.content) > self.config.max_size:
            self._emergency_trim()
            return Cleanup.EMERGENCY

        elapsed = self._clock() - self.last_cleanup
        if elapsed > self.config.max_age and self.content:
            logger.warning(
                "Buffer stale for %.1fs (%d chars), checking integrity",
                elapsed,
                len(self.content),
            )
            self._age_cleanup(max(0, len(self.content) - appended))
            return Cleanup.AGE

        return None

    def _emergency_trim(self):
        size = len(self.content)
        last_start = self.content.rfind(FRAME_START)

        if last_start != -1:
            keep = min(RETENTION_CAP, self.config.max_size, size - last_start)
            self.content = self.content[size - keep:]
            logger.warning(
                "Buffer oversized (%d chars), trimmed to %d", size, len(self.content)
            )
        else:
            self.content = ""
            logger.warning(
                "Buffer oversized (%d chars) with no frame start, cleared", size
            )

        self.mark_clean()

    def _age_cleanup(self, stale: int):
        if FRAME_START not in self.content:
            logger.warning("No frame start in stale buffer, cleared")
            self.clear()
            return

        # End of the last complete frame reachable from the head,
        # counting only frames that end inside the stale prefix
        last_end = -1
        for _, end in iter_frames(self.content[:stale]):
            last_end = end + 1

        if 0 < last_end < len(self.content) * AGE_TRIM_RATIO:
            self.consume(last_end)
            logger.warning("Dropped %d stale chars from buffer", last_end)

        self.mark_clean()
