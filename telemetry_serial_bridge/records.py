# telemetry_serial_bridge/records.py

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .utils import parse_float

logger = logging.getLogger(__name__)

# Category tag carried by telemetry snapshots.
DEVICE_KIND = "dados"


class DevicePayload(BaseModel):
    """One element of the "dispositivos" array.

    Every field is a string on the wire, numeric readings included.
    Strict mode rejects numbers, nulls and nested objects in place of
    a string.
    """

    model_config = ConfigDict(strict=True, extra="ignore")

    kind: str = Field(alias="type")
    serial: str = Field(alias="serieSlave")
    mac: str = Field(alias="macSlave")
    version: str = Field(alias="versionSlave")
    te: str
    ph: str
    pr: str
    rd: str
    te_s: str = Field(alias="teS")
    rpm_s: str = Field(alias="rpmS")

    def to_record(self) -> "DeviceRecord":
        return DeviceRecord(
            kind=self.kind.lower(),
            serial=self.serial.lower(),
            mac=self.mac.lower(),
            version=self.version.lower(),
            temperature=parse_float(self.te),
            ph=parse_float(self.ph),
            pressure=parse_float(self.pr),
            rd=parse_float(self.rd),
            secondary_temperature=parse_float(self.te_s),
            rpm=parse_float(self.rpm_s),
        )


@dataclass(frozen=True)
class DeviceRecord:
    """Normalized telemetry snapshot of one field device."""

    kind: str
    serial: str
    mac: str
    version: str
    temperature: float
    ph: float
    pressure: float
    rd: float
    secondary_temperature: float
    rpm: float

    def is_valid(self) -> bool:
        return (
            self.kind == DEVICE_KIND
            and bool(self.serial)
            and bool(self.mac)
            and not math.isnan(self.temperature)
        )

    def to_wire(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "serieSlave": self.serial,
            "macSlave": self.mac,
            "versionSlave": self.version,
            "te": self.temperature,
            "ph": self.ph,
            "pr": self.pressure,
            "rd": self.rd,
            "teS": self.secondary_temperature,
            "rpmS": self.rpm,
        }


def decode_device(element: Any) -> Optional[DeviceRecord]:
    """Typed decode of one array element; None if it does not fit the schema."""
    try:
        payload = DevicePayload.model_validate(element)
    except ValidationError as e:
        logger.debug("Dropping malformed device element: %s", e.errors())
        return None
    return payload.to_record()


def normalize_devices(elements: Iterable[Any]) -> List[DeviceRecord]:
    """
    Turn a frame's device array into valid records.

    Malformed or invalid elements are dropped one by one; the rest of
    the frame is unaffected.
    """
    records: List[DeviceRecord] = []

    for element in elements:
        record = decode_device(element)
        if record is None:
            continue

        if not record.is_valid():
            logger.debug(
                "Ignoring invalid device record kind=%r serial=%r",
                record.kind,
                record.serial,
            )
            continue

        records.append(record)

    return records
