# telemetry_serial_bridge/parser.py

import logging
import time
from dataclasses import asdict, dataclass
from typing import Callable, List, Optional

from .buffer import BufferHealth, Cleanup, ParserConfig, StreamBuffer
from .protocol import FRAME_START, decode_frame, iter_frames
from .records import DeviceRecord, normalize_devices

logger = logging.getLogger(__name__)

# Corruption recovery never re-finds a frame start closer than this.
RECOVERY_LOOKAHEAD = 100

RecordSink = Callable[[DeviceRecord], None]


@dataclass(frozen=True)
class Frame:
    text: str
    devices: list


@dataclass
class ParserStats:
    bytes_received: int = 0
    frames_extracted: int = 0
    frames_rejected: int = 0
    records_emitted: int = 0
    records_dropped: int = 0
    recoveries: int = 0
    emergency_trims: int = 0
    age_cleanups: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class FrameParser:
    """
    Streaming telemetry frame parser.

    Responsibilities:
    - Accumulate partial serial input
    - Keep the buffer bounded (size and age policy)
    - Realign on the frame start
    - Extract brace-balanced frames, resync after repeated failures
    - Normalize device elements into DeviceRecord values
    - Track extraction statistics

    One instance per serial session. Not thread-safe.
    """

    def __init__(
        self,
        config: Optional[ParserConfig] = None,
        sink: Optional[RecordSink] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or ParserConfig()
        self._buffer = StreamBuffer(self.config, clock)
        self._sink = sink

        self.stats = ParserStats()

    # =====================================================
    # PUBLIC API
    # =====================================================
    def ingest(self, chunk: str) -> List[DeviceRecord]:
        records: List[DeviceRecord] = []

        if not chunk:
            return records

        self.stats.bytes_received += len(chunk)

        # Whitespace never completes a frame. It is kept only inside an
        # already buffered frame, and only while it fits.
        if chunk.isspace():
            buf = self._buffer
            if buf.content and len(buf) + len(chunk) <= self.config.max_size:
                buf.append(chunk)
            return records

        self._buffer.append(chunk)

        cleanup = self._buffer.check_health(appended=len(chunk))
        if cleanup is Cleanup.EMERGENCY:
            self.stats.emergency_trims += 1
        elif cleanup is Cleanup.AGE:
            self.stats.age_cleanups += 1

        for frame in self._extract_frames():
            valid = normalize_devices(frame.devices)
            self.stats.records_dropped += len(frame.devices) - len(valid)
            records.extend(valid)

        self.stats.records_emitted += len(records)

        if self._sink is not None:
            for record in records:
                self._sink(record)

        return records

    def health(self) -> BufferHealth:
        return self._buffer.health()

    def reset(self):
        self._buffer.clear()
        self.stats = ParserStats()
        logger.info("Parser buffer reset")

    def configure(self, max_size: int, max_age: float, failure_threshold: int):
        self.config = ParserConfig(
            max_size=max_size,
            max_age=max_age,
            failure_threshold=failure_threshold,
        )
        self._buffer.config = self.config

    def set_sink(self, sink: Optional[RecordSink]):
        self._sink = sink

    # =====================================================
    # EXTRACTION
    # =====================================================
    def _extract_frames(self) -> List[Frame]:
        frames: List[Frame] = []
        buf = self._buffer

        # Strip noise (boot banners, truncated tails) before the first frame
        first = buf.content.find(FRAME_START)
        if first > 0:
            buf.consume(first)

        search_pos = 0
        failures = 0
        scanning = True

        # An incomplete frame ends the scan; wait for more data
        while scanning:
            scanning = False
            content = buf.content

            for start, end in iter_frames(content, search_pos):
                text = content[start:end + 1]
                search_pos = end + 1

                devices = decode_frame(text)
                if devices is not None:
                    failures = 0
                    self.stats.frames_extracted += 1
                    frames.append(Frame(text=text, devices=devices))
                    continue

                failures += 1
                self.stats.frames_rejected += 1
                logger.warning("Extracted frame is invalid, skipping: %.200s", text)

                if failures >= self.config.failure_threshold:
                    # Recovery rewrites the buffer, rescan from its head
                    self._recover(search_pos)
                    search_pos = 0
                    failures = 0
                    scanning = True
                    break

        buf.consume(search_pos)

        if frames:
            buf.mark_clean()

        return frames

    def _recover(self, position: int):
        """Resync on the next frame start past a run of corrupted frames."""
        self.stats.recoveries += 1
        buf = self._buffer

        next_start = buf.content.find(FRAME_START, position + RECOVERY_LOOKAHEAD)
        if next_start != -1:
            logger.warning(
                "Too many consecutive invalid frames, skipping %d chars",
                next_start,
            )
            buf.consume(next_start)
        else:
            logger.warning(
                "Too many consecutive invalid frames and no frame start ahead, "
                "clearing %d chars",
                len(buf.content),
            )
            buf.consume(len(buf.content))
