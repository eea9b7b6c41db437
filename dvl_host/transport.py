"""
Byte-stream transports for the DVL command interface.

Provides the Transport protocol consumed by the session plus TCP (Ethernet
telnet port) and serial (pyserial) implementations.
"""

import logging
import select
import socket
import time
from typing import Protocol

import serial

from dvl_host.protocol import TransportError

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """
    Bidirectional byte stream with poll-with-timeout.

    Implementations raise TransportError on I/O failure.
    """

    def poll(self, timeout: float) -> bool:
        """Wait up to timeout seconds for input. Returns True if readable."""
        ...

    def read(self, size: int) -> bytes:
        """Read at most size bytes. May return fewer, including none."""
        ...

    def write(self, data: bytes) -> int:
        """Write data. Returns number of bytes written."""
        ...

    def close(self) -> None:
        """Release the underlying channel."""
        ...


class TcpTransport:
    """
    TCP connection to the DVL command port.

    The socket stays blocking for writes; reads only happen after select()
    reports the socket readable.
    """

    def __init__(self, host: str, port: int = 9000, connect_timeout: float = 5.0):
        """
        Connect to the device.

        Args:
            host: Device IPv4 address or hostname.
            port: TCP port (default 9000, command interface).
            connect_timeout: Connection and write timeout in seconds.

        Raises:
            TransportError: If the connection cannot be established.
        """
        self.host = host
        self.port = port

        try:
            self.sock = socket.create_connection((host, port), timeout=connect_timeout)
        except OSError as e:
            raise TransportError(f"Failed to connect to {host}:{port}: {e}") from e

        self.sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        logger.info(f"TCP link opened: {host}:{port}")

    def poll(self, timeout: float) -> bool:
        try:
            readable, _, _ = select.select([self.sock], [], [], max(timeout, 0.0))
        except (OSError, ValueError) as e:
            raise TransportError(f"Poll failed: {e}") from e
        return bool(readable)

    def read(self, size: int) -> bytes:
        try:
            data = self.sock.recv(size)
        except (BlockingIOError, socket.timeout):
            return b""
        except OSError as e:
            raise TransportError(f"Read failed: {e}") from e

        if not data:
            raise TransportError(f"Connection closed by {self.host}:{self.port}")
        return data

    def write(self, data: bytes) -> int:
        try:
            self.sock.sendall(data)
        except OSError as e:
            raise TransportError(f"Write failed: {e}") from e
        return len(data)

    def close(self) -> None:
        """Close the socket."""
        try:
            self.sock.close()
        finally:
            logger.info(f"TCP link closed: {self.host}:{self.port}")

    def __enter__(self) -> "TcpTransport":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class SerialTransport:
    """
    Serial link to the DVL (RS-232/RS-422).
    """

    def __init__(self, port: str, baud: int = 115200, write_timeout: float = 1.0):
        """
        Open serial port.

        Args:
            port: Serial port device (e.g., '/dev/ttyUSB0').
            baud: Baud rate (default 115200).
            write_timeout: Write timeout in seconds.

        Raises:
            TransportError: If the port cannot be opened.
        """
        self.port = port
        self.baud = baud

        try:
            self.serial = serial.Serial(
                port=port,
                baudrate=baud,
                timeout=0,
                write_timeout=write_timeout,
                bytesize=8,
                parity="N",
                stopbits=1,
            )
        except serial.SerialException as e:
            raise TransportError(f"Failed to open {port}: {e}") from e

        logger.info(f"Serial link opened: {port} @ {baud} baud")

    def poll(self, timeout: float) -> bool:
        deadline = time.monotonic() + max(timeout, 0.0)
        try:
            while True:
                if self.serial.in_waiting > 0:
                    return True
                if time.monotonic() >= deadline:
                    return False
                # Small sleep to avoid busy-waiting
                time.sleep(0.001)
        except (serial.SerialException, OSError) as e:
            raise TransportError(f"Poll failed: {e}") from e

    def read(self, size: int) -> bytes:
        try:
            return self.serial.read(size)
        except (serial.SerialException, OSError) as e:
            raise TransportError(f"Read failed: {e}") from e

    def write(self, data: bytes) -> int:
        try:
            n = self.serial.write(data)
            self.serial.flush()
        except (serial.SerialException, OSError) as e:
            raise TransportError(f"Write failed: {e}") from e
        return n if n is not None else len(data)

    def close(self) -> None:
        """Close serial port."""
        if self.serial.is_open:
            self.serial.close()

        logger.info("Serial link closed")

    def __enter__(self) -> "SerialTransport":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
