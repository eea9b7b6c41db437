"""
In-process DVL command interface simulator.

SimulatedDvl implements the Transport protocol: it prompts for login, checks
credentials, acknowledges commands, tracks command/measurement mode and can be
told to fail or ignore selected commands. Replies are produced synchronously
when a full line is written, so a single-threaded session can drive it.
"""

import logging
from typing import Dict, List, Optional, Set

from dvl_host.clock import Clock, SystemClock
from dvl_host.protocol import (
    ACK,
    BREAK,
    DEFAULT_CREDENTIAL,
    LINE_TERMINATOR,
    LOGIN_BANNER,
    PASSWORD_PROMPT,
    USERNAME_PROMPT,
    TransportError,
)

logger = logging.getLogger(__name__)


class SimulatedDvl:
    """
    Simulated DVL reachable through the Transport interface.

    Attributes:
        lines: Every line received from the host, in order.
        command_mode: True while the simulated device is in command mode.
        logged_in: True once valid credentials were received.
        fail: Command names answered with an error instead of OK.
        silent: Command names that get no reply at all.
        responses: Full reply text overrides keyed by command line.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        username: str = DEFAULT_CREDENTIAL,
        password: str = DEFAULT_CREDENTIAL,
        chunk_size: Optional[int] = None,
        require_login: bool = True,
    ) -> None:
        """
        Initialize simulator.

        Args:
            clock: Time source; poll() sleeps on it when no data is pending.
            username: Accepted username.
            password: Accepted password.
            chunk_size: Maximum bytes returned per read (None: unlimited).
            require_login: Start with the username prompt pending.
        """
        self.clock = clock if clock is not None else SystemClock()
        self.username = username
        self.password = password
        self.chunk_size = chunk_size

        self.lines: List[str] = []
        self.fail: Set[str] = set()
        self.silent: Set[str] = set()
        self.responses: Dict[str, str] = {}
        self.error_message = 'ERROR,"No error"'
        self.zero_reads = 0
        self.broken = False
        self.closed = False

        self.command_mode = False
        self.logged_in = not require_login
        self._login_lines = 0
        self._received_username = ""
        self._login_step = "username" if require_login else "done"
        self._output = bytearray()
        self._input = bytearray()

        if require_login:
            self._queue(USERNAME_PROMPT)

    @property
    def commands(self) -> List[str]:
        """Lines received after login (credentials excluded)."""
        if not self.logged_in:
            return []
        return self.lines[self._login_lines:]

    def _queue(self, text: str) -> None:
        self._output.extend(text.encode("utf-8"))

    # Transport interface

    def poll(self, timeout: float) -> bool:
        if self.broken:
            raise TransportError("Simulated link failure")
        if self._output or self.zero_reads:
            return True
        self.clock.sleep(timeout)
        return False

    def read(self, size: int) -> bytes:
        if self.broken:
            raise TransportError("Simulated link failure")
        if self.zero_reads:
            self.zero_reads -= 1
            return b""

        n = size if self.chunk_size is None else min(size, self.chunk_size)
        data = bytes(self._output[:n])
        del self._output[:n]
        return data

    def write(self, data: bytes) -> int:
        if self.broken:
            raise TransportError("Simulated link failure")

        self._input.extend(data)
        terminator = LINE_TERMINATOR.encode("ascii")
        while terminator in self._input:
            line, _, rest = bytes(self._input).partition(terminator)
            self._input = bytearray(rest)
            self._handle_line(line.decode("utf-8", errors="replace"))
        return len(data)

    def close(self) -> None:
        self.closed = True

    def inject(self, data: bytes) -> None:
        """Queue unsolicited bytes (e.g., measurement output or line noise)."""
        self._output.extend(data)

    # Device behavior

    def _handle_line(self, line: str) -> None:
        self.lines.append(line)
        logger.debug(f"Simulator received: {line!r}")

        if self._login_step == "username":
            self._login_step = "password"
            self._received_username = line
            self._queue(PASSWORD_PROMPT)
            return

        if self._login_step == "password":
            if self._received_username == self.username and line == self.password:
                self._login_step = "done"
                self.logged_in = True
                self._login_lines = len(self.lines)
                self._queue("\r\nNortek " + LOGIN_BANNER)
            else:
                # Back to the first prompt, as a telnet login would
                self._login_step = "username"
                self._queue("\r\nLogin incorrect\r\n" + USERNAME_PROMPT)
            return

        name = line.split(",", 1)[0]

        if line in self.silent or name in self.silent:
            return

        if line in self.responses:
            self._queue(self.responses[line])
            return

        if line in self.fail or name in self.fail:
            self._queue("ERROR" + LINE_TERMINATOR)
            return

        if line == BREAK:
            self.command_mode = True
            self._queue(LINE_TERMINATOR + "Nortek DVL" + LINE_TERMINATOR + ACK)
        elif name == "MC":
            self.command_mode = True
            self._queue(ACK)
        elif name == "START":
            self.command_mode = False
            self._queue(ACK)
        elif name == "GETERROR":
            self._queue(self.error_message + LINE_TERMINATOR + ACK)
        elif not self.command_mode:
            # Measurement mode ignores commands
            return
        else:
            self._queue(ACK)
