"""
High-level command API for DVL Host.

Provides the Session class: login, command/streaming mode tracking, command
execution with reply matching, and the device setup sequence.
"""

import logging
from dataclasses import replace
from typing import Optional, Union

from dvl_host.clock import Clock, SystemClock
from dvl_host.config import Config, TimeoutConfig
from dvl_host.protocol import (
    BREAK,
    DEFAULT_CREDENTIAL,
    DEFAULT_SALINITY,
    DEFAULT_SAMPLING_RATE,
    LOGIN_BANNER,
    PASSWORD_PROMPT,
    USERNAME_PROMPT,
    Command,
    PowerLevel,
    ProtocolError,
    ReplyTimeoutError,
    SessionState,
    TransportError,
    ValidationError,
    make_led_off,
    make_power_down,
    make_save,
    make_set_clock,
    make_set_default,
    make_set_dvl,
    make_set_power_level,
    make_start,
    parse_power_level,
    sanitize,
    validate_salinity,
    validate_sampling_rate,
)
from dvl_host.reader import ReadResult, read_until
from dvl_host.sequence import SetupSequence, SetupStep
from dvl_host.transport import SerialTransport, TcpTransport, Transport

logger = logging.getLogger(__name__)


class Session:
    """
    Command session with a Nortek DVL.

    Owns the mode flag for one device: every configuration command first makes
    sure the device is in command mode, breaking out of measurement mode if
    needed. Only one command is outstanding at a time.
    """

    def __init__(
        self,
        transport: Transport,
        clock: Optional[Clock] = None,
        sampling_rate: float = DEFAULT_SAMPLING_RATE,
        salinity: float = DEFAULT_SALINITY,
        username: str = DEFAULT_CREDENTIAL,
        password: str = DEFAULT_CREDENTIAL,
        timeouts: Optional[TimeoutConfig] = None,
        wire_dump: bool = True,
        owns_transport: bool = False,
    ):
        """
        Initialize session on a connected transport.

        Args:
            transport: Connected byte stream to the device.
            clock: Time source (default: system clock).
            sampling_rate: Sampling rate in Hz; out-of-range values keep the default.
            salinity: Salinity in ppt; out-of-range values keep the default.
            username: Login username.
            password: Login password.
            timeouts: Protocol timeouts.
            wire_dump: Log sent and received data at DEBUG level.
            owns_transport: Close the transport in close().
        """
        self.transport = transport
        self.clock = clock if clock is not None else SystemClock()
        self.username = username
        self.password = password
        self.timeouts = timeouts if timeouts is not None else TimeoutConfig()
        self.wire_dump = wire_dump
        self.owns_transport = owns_transport

        self.state = SessionState.DISCONNECTED
        self.configured = False
        self.sampling_rate = DEFAULT_SAMPLING_RATE
        self.salinity = DEFAULT_SALINITY

        # Statistics
        self.stats = {
            "commands_tx": 0,
            "replies_ok": 0,
            "timeouts": 0,
            "protocol_errors": 0,
            "transport_errors": 0,
            "breaks": 0,
        }

        self.set_sampling_rate(sampling_rate)
        self.set_salinity(salinity)

    @classmethod
    def from_config(
        cls,
        transport: Transport,
        config: Config,
        clock: Optional[Clock] = None,
        owns_transport: bool = False,
    ) -> "Session":
        """
        Create a session on an existing transport using configuration values.
        """
        return cls(
            transport,
            clock=clock,
            sampling_rate=config.device.sampling_rate,
            salinity=config.device.salinity,
            username=config.credentials.username,
            password=config.credentials.password,
            timeouts=config.timeouts,
            wire_dump=config.logging.wire_dump,
            owns_transport=owns_transport,
        )

    @classmethod
    def open(cls, config: Optional[Config] = None, clock: Optional[Clock] = None) -> "Session":
        """
        Open a TCP or serial link and create a session that owns it.

        Args:
            config: Configuration (default: built-in defaults).
            clock: Time source.

        Returns:
            New session (not yet logged in).

        Raises:
            TransportError: If the link cannot be opened.
        """
        if config is None:
            config = Config()

        conn = config.connection
        if conn.transport == "serial":
            transport = SerialTransport(conn.serial_port, conn.baud)
        else:
            transport = TcpTransport(conn.host, conn.port, conn.connect_timeout_s)

        return cls.from_config(transport, config, clock=clock, owns_transport=True)

    def close(self) -> None:
        """
        Power down the device (best-effort) and release the session.
        """
        if self.state is not SessionState.DISCONNECTED:
            if not self.execute(make_power_down()):
                logger.warning("POWERDOWN not acknowledged")

        self.state = SessionState.DISCONNECTED
        self.configured = False

        if self.owns_transport:
            self.transport.close()

    # Wire access

    def _write(self, data: bytes) -> None:
        """
        Write raw data to the transport.

        Raises:
            TransportError: On write failure.
        """
        self.transport.write(data)
        if self.wire_dump:
            logger.debug(f"TX: '{sanitize(data)}'")

    def _read_until(self, sequence: str, timeout: float) -> ReadResult:
        """Wait for input ending with sequence and update statistics."""
        result = read_until(self.transport, sequence, timeout, self.clock)

        if self.wire_dump:
            if result.matched:
                logger.debug(f"RX: '{result.text}'")
            else:
                logger.debug(
                    f"RX: '{result.text}' (does not end with: '{sanitize(sequence)}')"
                )

        if isinstance(result.error, ReplyTimeoutError):
            self.stats["timeouts"] += 1
        elif isinstance(result.error, ProtocolError):
            self.stats["protocol_errors"] += 1
        elif isinstance(result.error, TransportError):
            self.stats["transport_errors"] += 1
            logger.error(f"Transport failure while reading: {result.error}")

        return result

    def _transact(self, command: Command) -> ReadResult:
        """Send command and wait for its reply, without mode handling."""
        try:
            self._write(command.to_bytes())
        except TransportError as e:
            self.stats["transport_errors"] += 1
            logger.error(f"Failed to send '{sanitize(command.payload)}': {e}")
            return ReadResult(False, b"", 0.0, e)

        self.stats["commands_tx"] += 1
        result = self._read_until(command.expected, command.timeout)
        if result.matched:
            self.stats["replies_ok"] += 1
        return result

    # Command execution

    def execute(self, command: Command) -> bool:
        """
        Send command and wait for the expected reply.

        Unless the command skips mode entry, the device is put in command mode
        first. On failure, the command's diagnostic query (if any) is issued and
        its reply logged; it never changes the result.

        Args:
            command: Command to execute.

        Returns:
            True if the reply ended with command.expected before the timeout.
        """
        if not command.skip_mode_entry and not self.enter_configuration_mode():
            return False

        result = self._transact(command)
        if result.matched:
            return True

        logger.warning(
            f"Command '{sanitize(command.payload)}' failed: {result.error} "
            f"(received '{result.text}')"
        )

        if command.diagnostic:
            self._query_diagnostic(command.diagnostic)

        return False

    def _query_diagnostic(self, payload: str) -> None:
        """Issue a query whose reply is only logged."""
        result = self._transact(
            Command(payload, timeout=self.timeouts.reply_s, skip_mode_entry=True)
        )
        if result.matched:
            logger.warning(f"{payload}: '{result.text}'")
        else:
            logger.debug(f"{payload} unanswered: {result.error}")

    def _send(self, command: Command) -> bool:
        """Execute a configuration command with the configured reply timeout."""
        return self.execute(replace(command, timeout=self.timeouts.reply_s))

    # Session state machine

    def login(self) -> bool:
        """
        Answer the username and password prompts and wait for the banner.

        Returns:
            True if logged in, False if any prompt or the banner is missing.
        """
        self.state = SessionState.LOGGING_IN
        logger.info("Logging in")

        if not (
            self._reply_login(USERNAME_PROMPT, self.username)
            and self._reply_login(PASSWORD_PROMPT, self.password)
        ):
            self.state = SessionState.DISCONNECTED
            return False

        result = self._read_until(LOGIN_BANNER, self.timeouts.banner_s)
        if not result.matched:
            logger.warning(f"Login banner not received: {result.error}")
            self.state = SessionState.DISCONNECTED
            return False

        self.clock.sleep(self.timeouts.settle_s)

        # Mode is unknown after login; assume measurement so the next
        # configuration command breaks into command mode first.
        self.state = SessionState.STREAMING
        logger.info("Logged in")
        return True

    def _reply_login(self, prompt: str, credential: str) -> bool:
        result = self._read_until(prompt, self.timeouts.prompt_s)
        if not result.matched:
            logger.warning(f"Login prompt '{sanitize(prompt)}' not received: {result.error}")
            return False

        try:
            self._write(Command(credential).to_bytes())
        except TransportError as e:
            self.stats["transport_errors"] += 1
            logger.error(f"Failed to send credentials: {e}")
            return False

        return True

    def send_break(self) -> bool:
        """
        Wake up the device with the break sequence.

        The break is resent once, immediately, if unanswered.

        Returns:
            True if the break was acknowledged.
        """
        command = Command(BREAK, timeout=self.timeouts.break_s, skip_mode_entry=True)

        self.stats["breaks"] += 1
        if self.execute(command):
            return True

        logger.info("Break not acknowledged, retrying once")
        self.stats["breaks"] += 1
        return self.execute(command)

    def enter_configuration_mode(self) -> bool:
        """
        Stop measuring and enter command mode.

        No-op if already in command mode.

        Returns:
            True if in command mode.
        """
        if self.state is SessionState.CONFIGURATION:
            return True

        if not self.send_break():
            return False

        self.clock.sleep(self.timeouts.settle_s)
        if not self.execute(
            Command("MC", timeout=self.timeouts.mode_switch_s, skip_mode_entry=True)
        ):
            return False

        self.state = SessionState.CONFIGURATION
        logger.info("Entered command mode")
        return True

    def start_streaming(self) -> bool:
        """
        Start measuring.

        Returns:
            True if the device acknowledged START.
        """
        if not self._send(make_start()):
            return False

        self.state = SessionState.STREAMING
        logger.info("Entered measurement mode")
        return True

    # Setup sequence

    def set_time(self) -> bool:
        """Set device clock from UTC wall time."""
        return self._send(make_set_clock(self.clock.now()))

    def set_dvl(self) -> bool:
        """Send cached sampling rate and salinity."""
        return self._send(make_set_dvl(self.sampling_rate, self.salinity))

    def save(self) -> bool:
        """Save configuration to the device (GETERROR is queried on failure)."""
        return self._send(make_save())

    def setup(self) -> bool:
        """
        Configure the device and start measuring.

        Runs login, command mode entry, defaults restore, LED off, clock,
        DVL parameters, save and start. Stops at the first failing step.

        Returns:
            True if the device is configured and streaming.
        """
        sequence = SetupSequence(
            [
                SetupStep("login", self.login),
                SetupStep("enter command mode", self.enter_configuration_mode),
                SetupStep("restore defaults", lambda: self._send(make_set_default())),
                SetupStep("disable LED", lambda: self._send(make_led_off())),
                SetupStep("set clock", self.set_time),
                SetupStep("set DVL parameters", self.set_dvl),
                SetupStep("save configuration", self.save),
                SetupStep("start measuring", self.start_streaming),
            ]
        )

        self.configured = sequence.run()
        if self.configured:
            logger.info(
                f"Setup complete (SR={self.sampling_rate} Hz, SA={self.salinity} ppt)"
            )
        return self.configured

    # Device parameters

    def set_sampling_rate(self, rate: float) -> bool:
        """
        Update sampling rate.

        Out-of-range values are rejected without sending anything. Once setup
        has completed the new value is pushed to the device.

        Args:
            rate: Sampling rate in Hz (1.0 to 8.0).

        Returns:
            True if accepted (and applied, when configured).
        """
        try:
            self.sampling_rate = validate_sampling_rate(rate)
        except ValidationError as e:
            logger.warning(f"Rejected {e}")
            return False

        return self._apply_parameters()

    def set_salinity(self, value: float) -> bool:
        """
        Update salinity.

        Args:
            value: Salinity in ppt (0.0 to 50.0).

        Returns:
            True if accepted (and applied, when configured).
        """
        try:
            self.salinity = validate_salinity(value)
        except ValidationError as e:
            logger.warning(f"Rejected {e}")
            return False

        return self._apply_parameters()

    def _apply_parameters(self) -> bool:
        if not self.configured:
            return True

        was_streaming = self.state is SessionState.STREAMING
        result = self.set_dvl()
        if was_streaming:
            result = self.start_streaming() and result
        return result

    def set_power_level(self, level: Union[PowerLevel, str, int]) -> bool:
        """
        Set bottom-track power level and resume measuring.

        Measuring is restarted whether or not SETBT succeeded.

        Args:
            level: PowerLevel, or its name ('MIN', 'MED', 'MAX').

        Returns:
            True if SETBT was acknowledged.
        """
        try:
            level = parse_power_level(level)
        except ValueError as e:
            logger.warning(f"Rejected power level: {e}")
            return False

        result = self._send(make_set_power_level(level))
        self.start_streaming()
        logger.info(f"Power level {level.name}: {'OK' if result else 'FAILED'}")
        return result

    def __enter__(self) -> "Session":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
