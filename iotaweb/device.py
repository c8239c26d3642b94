"""Device-wide definitions: identity, file locations, priorities, trace words and EEPROM layout."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import ClassVar, TypeVar

VERSION = "02_07_04"
DEVICE_NAME = "IotaWatt"

SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600
SECONDS_PER_SEVENTY_YEARS = 2208988800
MS_PER_HOUR = 3600000

SYSTEM_DIR = "/iotawatt/"
EXPORT_LOG_PATH = "/iotawatt/export.log"
CURRENT_LOG_PATH = "/iotawatt/iotalog.log"
HISTORY_LOG_PATH = "/iotawatt/histlog.log"
MESSAGE_LOG_PATH = "/iotawatt/iotamsgs.txt"
AUTH_PATH = "/iotawatt/auth.txt"
CONFIG_PATH = "/config.txt"
CONFIG_NEW_PATH = "/config+1.txt"
CONFIG_OLD_PATH = "/config-1.txt"
TABLE_PATH = "/tables.txt"
NEW_TABLE_PATH = "/table+1.txt"
INTEGRATIONS_DIR = "/iotawatt/integrations/"
UPDATE_HOST = "iotawatt.com"
VERSIONS_PATH = "/firmware/versions.json"
VERSIONS_DIR = "/firmware/bin/"
TABLE_DIR = "/download/tables/"

QUERY_VOLTAGE = 1
QUERY_POWER = 2
QUERY_ENERGY = 3
QUERY_OTHER = 4

LED_CONNECT_WIFI = "R.G.G..."
LED_CONNECT_WIFI_NO_RTC = "R.R.G..."
LED_SD_INIT_FAILURE = "G.R.R..."
LED_DUMPING_LOG = "R.G.R..."
LED_HALT = "R.R.R..."
LED_NO_CONFIG = "G.R.R.R..."
LED_BAD_CONFIG = "G.R.R.G..."
LED_UPDATING = "R.G."

ADC_BITS = 12
ADC_RANGE = 4096
MAX_INPUTS = 15
MAX_SAMPLES = 1000
VOLTAGE_ATTENUATION = 13
HTTP_REQUEST_MAX = 1

_T = TypeVar("_T", int, float)


def clamp(value: _T, low: _T, high: _T) -> _T:
    """Limit value to the range [low, high]; low wins if the bounds cross."""
    if value <= low:
        return low
    if value >= high:
        return high
    return value


class Priority(IntEnum):
    """Tie-breaking priority of scheduled services."""

    LOW = 2
    LM = 3
    ML = 4
    MED = 5
    MH = 6
    HM = 7
    HIGH = 8


class TraceModule(IntEnum):
    """Module identifiers recorded in trace words."""

    LOOP = 1
    LOG = 2
    EMONCMS = 3
    GFD = 4
    UPDATE = 5
    SETUP = 6
    INFLUX = 7
    SAMP = 8
    POWER = 9
    WEB = 10
    CONFIG = 11
    ENCRYPT_ENCODE = 12
    UPLOAD_GRAPH = 13
    HISTORY = 14
    BASE64 = 15
    STATS = 18
    DATALOG = 19
    TIME_SYNC = 20
    WIFI = 21
    PVOUTPUT = 22
    SAMPLE_PHASE = 23
    RTCWDT = 24
    CSVQUERY = 25
    XURL = 26
    UTILITY = 27
    EXPORT_LOG = 28
    INFLUX2 = 29
    INFLUX2_CONFIG = 30
    UPLOADER = 31
    INFLUX1 = 32
    INTEGRATOR = 33
    SCRIPT = 34
    SCRIPTSET = 35


def _check_byte(name: str, value: int) -> None:
    if not 0 <= value <= 0xFF:
        raise ValueError(f"{name} must be in 0..255, got {value}")


@dataclass(frozen=True)
class TraceEntry:
    """A trace point packed into one 32-bit word, sequence number in the low byte."""

    seq: int = 0
    mod: int = 0
    id: int = 0
    det: int = 0

    def __post_init__(self) -> None:
        for name in ("seq", "mod", "id", "det"):
            _check_byte(name, getattr(self, name))

    @property
    def module(self) -> TraceModule | None:
        """The trace module, or None if the code is not a known module."""
        try:
            return TraceModule(self.mod)
        except ValueError:
            return None

    def pack(self) -> int:
        """Return the 32-bit trace word."""
        return int.from_bytes(bytes((self.seq, self.mod, self.id, self.det)), "little")

    @classmethod
    def unpack(cls, word: int) -> TraceEntry:
        """Split a 32-bit trace word into its fields."""
        if not 0 <= word <= 0xFFFFFFFF:
            raise ValueError(f"trace word out of range: {word}")
        seq, mod, ident, det = word.to_bytes(4, "little")
        return cls(seq, mod, ident, det)


@dataclass(frozen=True)
class EepromRecord:
    """The manufacturing record kept in EEPROM."""

    IDENT: ClassVar[str] = "IoTaWatt"
    _FORMAT: ClassVar[struct.Struct] = struct.Struct("<8sBBBBHHII")
    SIZE: ClassVar[int] = _FORMAT.size

    ident: str = IDENT
    ee_version: int = 0
    device_major_version: int = 0
    device_minor_version: int = 0
    mfg_burden: int = 0
    mfg_ref_volts: int = 0
    reserved: int = 0
    mfg_date: int = 0
    mfg_lot: int = 0

    @property
    def valid(self) -> bool:
        """True when the record carries the expected identifier."""
        return self.ident == self.IDENT

    @property
    def device_version(self) -> str:
        """Board version such as "4.8"."""
        return f"{self.device_major_version}.{self.device_minor_version}"

    @classmethod
    def from_bytes(cls, data: bytes) -> EepromRecord:
        """Decode a record from the start of an EEPROM image."""
        if len(data) < cls.SIZE:
            raise ValueError(f"EEPROM record needs {cls.SIZE} bytes, got {len(data)}")
        raw_id, *fields = cls._FORMAT.unpack_from(data)
        ident = raw_id.split(b"\0", 1)[0].decode("latin-1")
        return cls(ident, *fields)

    def to_bytes(self) -> bytes:
        """Encode the record in its EEPROM layout."""
        raw_id = self.ident.encode("latin-1")
        if len(raw_id) > 8:
            raise ValueError("identifier longer than 8 bytes")
        try:
            return self._FORMAT.pack(
                raw_id,
                self.ee_version,
                self.device_major_version,
                self.device_minor_version,
                self.mfg_burden,
                self.mfg_ref_volts,
                self.reserved,
                self.mfg_date,
                self.mfg_lot,
            )
        except struct.error as exc:
            raise ValueError(str(exc)) from exc