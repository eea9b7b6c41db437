"""
Bounded reply reader.

Accumulates transport input into a fixed-capacity buffer until the data ends
with a given sequence, the deadline elapses, or the buffer is full. Data after
the sequence in the same read is not expected and makes the match fail.
"""

from dataclasses import dataclass
from typing import Optional, Union

from dvl_host.clock import Clock, SystemClock
from dvl_host.protocol import (
    REPLY_BUFFER_SIZE,
    DvlError,
    ProtocolError,
    ReplyTimeoutError,
    TransportError,
    sanitize,
)
from dvl_host.transport import Transport


class ReplyBuffer:
    """
    Fixed-capacity byte accumulator for a single read operation.

    The write offset never exceeds capacity: an append that does not fit is
    rejected as a whole and nothing is written.
    """

    def __init__(self, capacity: int = REPLY_BUFFER_SIZE) -> None:
        if capacity <= 0:
            raise ValueError("Buffer capacity must be positive")
        self.capacity = capacity
        self._data = bytearray()

    def __len__(self) -> int:
        return len(self._data)

    @property
    def free(self) -> int:
        """Number of bytes that can still be appended."""
        return self.capacity - len(self._data)

    @property
    def is_full(self) -> bool:
        return len(self._data) >= self.capacity

    def append(self, chunk: bytes) -> bool:
        """
        Append chunk if it fits.

        Returns:
            True if appended, False if it would overflow capacity.
        """
        if len(chunk) > self.free:
            return False
        self._data.extend(chunk)
        return True

    def endswith(self, sequence: bytes) -> bool:
        return bool(sequence) and self._data.endswith(sequence)

    def getvalue(self) -> bytes:
        return bytes(self._data)


@dataclass
class ReadResult:
    """
    Outcome of a read_until call.

    Attributes:
        matched: True if the received data ended with the sequence.
        data: Bytes received, possibly partial.
        elapsed: Seconds spent waiting.
        error: Failure cause when not matched.
    """

    matched: bool
    data: bytes
    elapsed: float
    error: Optional[DvlError] = None

    @property
    def text(self) -> str:
        """Printable rendering of the received bytes."""
        return sanitize(self.data)

    def __bool__(self) -> bool:
        return self.matched


def read_until(
    transport: Transport,
    sequence: Union[str, bytes],
    timeout: float,
    clock: Optional[Clock] = None,
    capacity: int = REPLY_BUFFER_SIZE,
) -> ReadResult:
    """
    Read input until it ends with sequence.

    Each step polls with the remaining time budget, then reads at most the free
    tail of the buffer. A zero-byte read is treated as transient.

    Args:
        transport: Channel to read from.
        sequence: Terminator the accumulated data must end with.
        timeout: Deadline in seconds.
        clock: Time source (defaults to system clock).
        capacity: Reply buffer capacity in bytes.

    Returns:
        ReadResult; error is ReplyTimeoutError, ProtocolError or TransportError
        when not matched.
    """
    if clock is None:
        clock = SystemClock()
    if isinstance(sequence, str):
        sequence = sequence.encode("utf-8")

    buffer = ReplyBuffer(capacity)
    start = clock.monotonic()
    deadline = start + timeout

    def _result(matched: bool, error: Optional[DvlError] = None) -> ReadResult:
        return ReadResult(matched, buffer.getvalue(), clock.monotonic() - start, error)

    try:
        while True:
            remaining = deadline - clock.monotonic()
            if remaining <= 0:
                break

            if not transport.poll(remaining):
                break

            chunk = transport.read(buffer.free)
            if not chunk:
                continue

            if not buffer.append(chunk):
                return _result(
                    False,
                    ProtocolError(
                        f"Reply exceeds {capacity} byte buffer before '{sanitize(sequence)}'"
                    ),
                )

            if buffer.endswith(sequence):
                return _result(True)

            if buffer.is_full:
                return _result(
                    False,
                    ProtocolError(
                        f"Reply filled {capacity} byte buffer without '{sanitize(sequence)}'"
                    ),
                )
    except TransportError as e:
        return _result(False, e)

    return _result(False, ReplyTimeoutError(sequence.decode("utf-8", errors="replace"), timeout))
