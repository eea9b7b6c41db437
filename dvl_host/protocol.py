"""
Nortek DVL command interface protocol definitions.

Line-oriented ASCII protocol: requests are terminated by CR LF and successful
replies end with "OK" CR LF. Login prompts and the break token are fixed strings.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum, IntEnum
from typing import Optional, Tuple, Union

# Wire constants
LINE_TERMINATOR = "\r\n"
ACK = "OK\r\n"
BREAK = "K1W%!Q"
USERNAME_PROMPT = "Username: "
PASSWORD_PROMPT = "Password: "
LOGIN_BANNER = "Command Interface\r\r\n"
DEFAULT_CREDENTIAL = "nortek"

# Reply buffer capacity in bytes
REPLY_BUFFER_SIZE = 256

# Accepted device parameter ranges (inclusive)
SAMPLING_RATE_RANGE = (1.0, 8.0)  # Hz
SALINITY_RANGE = (0.0, 50.0)  # ppt

DEFAULT_SAMPLING_RATE = 5.0
DEFAULT_SALINITY = 35.0


class SessionState(Enum):
    """Session state as tracked by the host."""

    DISCONNECTED = "disconnected"
    LOGGING_IN = "logging_in"
    CONFIGURATION = "configuration"
    STREAMING = "streaming"


class PowerLevel(IntEnum):
    """
    Bottom-track transmit power levels.

    Values are the SETBT power level in dB relative to maximum.
    """

    MIN = -20
    MED = -10
    MAX = 0


@dataclass(frozen=True)
class Command:
    """
    Single command/reply exchange.

    Attributes:
        payload: Command text, without line terminator.
        expected: Sequence the reply must end with.
        timeout: Reply timeout in seconds.
        skip_mode_entry: Do not force command mode before sending.
        diagnostic: Query issued best-effort if this command fails.
    """

    payload: str
    expected: str = ACK
    timeout: float = 1.0
    skip_mode_entry: bool = False
    diagnostic: Optional[str] = None

    def to_bytes(self) -> bytes:
        """Encode command as a terminated line."""
        return (self.payload + LINE_TERMINATOR).encode("utf-8")


class DvlError(Exception):
    """Base exception for DVL host errors."""

    pass


class TransportError(DvlError):
    """Poll, read or write on the transport failed."""

    pass


class ReplyTimeoutError(DvlError):
    """Deadline elapsed before the expected sequence was received."""

    def __init__(self, sequence: str, timeout: float):
        self.sequence = sequence
        self.timeout = timeout
        super().__init__(f"Timeout after {timeout:.2f}s waiting for '{sanitize(sequence)}'")


class ProtocolError(DvlError):
    """Reply buffer exhausted before the expected sequence was received."""

    pass


class ValidationError(DvlError, ValueError):
    """Device parameter outside its accepted range."""

    def __init__(self, name: str, value: float, limits: Tuple[float, float]):
        self.name = name
        self.value = value
        self.limits = limits
        super().__init__(f"{name}={value} outside accepted range [{limits[0]}, {limits[1]}]")


def format_float(value: float) -> str:
    """Format a number the way the device expects (six decimals)."""
    return "%f" % value


def sanitize(data: Union[bytes, str]) -> str:
    """
    Render wire data as a printable single line.

    Invalid encodings never raise; CR and LF are shown escaped.
    """
    if isinstance(data, bytes):
        data = data.decode("ascii", errors="backslashreplace")
    return data.replace("\r", "\\r").replace("\n", "\\n")


def _validate_range(name: str, value: float, limits: Tuple[float, float]) -> float:
    value = float(value)
    if not limits[0] <= value <= limits[1]:
        raise ValidationError(name, value, limits)
    return value


def validate_sampling_rate(value: float) -> float:
    """
    Validate sampling rate.

    Raises:
        ValidationError: If outside SAMPLING_RATE_RANGE.
    """
    return _validate_range("sampling_rate", value, SAMPLING_RATE_RANGE)


def validate_salinity(value: float) -> float:
    """
    Validate salinity.

    Raises:
        ValidationError: If outside SALINITY_RANGE.
    """
    return _validate_range("salinity", value, SALINITY_RANGE)


def parse_power_level(level: Union[PowerLevel, str, int]) -> PowerLevel:
    """
    Convert name, value or enum to PowerLevel.

    Raises:
        ValueError: If level is unknown.
    """
    if isinstance(level, PowerLevel):
        return level
    if isinstance(level, str):
        try:
            return PowerLevel[level.upper()]
        except KeyError:
            raise ValueError(f"Unknown power level: {level}") from None
    return PowerLevel(level)


# Command builders

def make_set_default() -> Command:
    return Command("SETDEFAULT,ALL")


def make_led_off() -> Command:
    return Command('SETINST,LED="OFF"')


def make_set_clock(now: datetime) -> Command:
    """Build SETCLOCK from a broken-down UTC time."""
    return Command(
        f"SETCLOCK,YEAR={now.year:d},MONTH={now.month:d},DAY={now.day:d},"
        f"HOUR={now.hour:d},MINUTE={now.minute:d},SECOND={now.second:d}"
    )


def make_set_dvl(sampling_rate: float, salinity: float) -> Command:
    return Command(f"SETDVL,SR={format_float(sampling_rate)},SA={format_float(salinity)}")


def make_set_power_level(level: PowerLevel) -> Command:
    return Command(f"SETBT,PL={format_float(float(level.value))}")


def make_save() -> Command:
    """SAVE,ALL queries GETERROR on failure to surface the device error."""
    return Command("SAVE,ALL", diagnostic="GETERROR")


def make_start() -> Command:
    return Command("START")


def make_power_down() -> Command:
    return Command("POWERDOWN")
