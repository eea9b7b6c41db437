"""
Main TUI application using Textual.

Dashboard with session status, wire monitor and command input for driving a
DVL through setup and measurement.
"""

import argparse
import logging
from datetime import datetime
from pathlib import Path

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Vertical
from textual.widgets import Footer, Header, Input

from dvl_host.commands import Session
from dvl_host.config import Config, load_config
from dvl_host.protocol import Command, TransportError, sanitize
from dvl_host.simulator import SimulatedDvl
from dvl_host.tui.widgets import StatusPanel, WireMonitor

logger = logging.getLogger(__name__)


class SessionWithWireCapture(Session):
    """
    Session subclass that captures TX/RX lines for display.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.wire_callback = None

    def _write(self, data):
        """Override to capture TX lines."""
        super()._write(data)
        if self.wire_callback:
            self.wire_callback("TX", sanitize(data), True, datetime.now())

    def _read_until(self, sequence, timeout):
        """Override to capture RX lines."""
        result = super()._read_until(sequence, timeout)
        if self.wire_callback:
            self.wire_callback("RX", result.text or "<nothing>", result.matched, datetime.now())
        return result


HELP_TEXT = (
    "Commands: connect | disconnect | setup | start | stop | power <min|med|max> | "
    "rate <hz> | salinity <ppt> | send <raw command>"
)


class DvlHostApp(App):
    """
    DVL Host TUI application.
    """

    CSS = """
    Screen {
        layout: vertical;
    }

    #top_row {
        height: 1fr;
        layout: horizontal;
    }

    #left_panel {
        width: 40;
    }

    #wire_monitor {
        width: 1fr;
        border: solid magenta;
    }

    #command_input {
        dock: bottom;
        height: 3;
        border: solid $accent;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit", priority=True),
        Binding("c", "connect", "Connect", priority=True),
        Binding("d", "disconnect", "Disconnect", priority=True),
        Binding("s", "setup", "Setup", priority=True),
        Binding("g", "start", "Start", priority=True),
        Binding("m", "stop", "Command mode", priority=True),
        Binding("slash", "focus_input", "Input", priority=True),
        Binding("escape", "unfocus_input", "Unfocus", show=False, priority=True),
    ]

    def __init__(self, config: Config, simulate: bool = False) -> None:
        super().__init__()
        self.config = config
        self.simulate = simulate
        self.session: SessionWithWireCapture | None = None
        self.power_level = config.device.power_level or "-"

        self.status_panel = None
        self.wire_monitor = None

    @property
    def connected(self) -> bool:
        return self.session is not None

    def compose(self) -> ComposeResult:
        """Create child widgets."""
        yield Header()

        with Container(id="top_row"):
            with Vertical(id="left_panel"):
                self.status_panel = StatusPanel()
                yield self.status_panel

            with Container(id="wire_monitor"):
                self.wire_monitor = WireMonitor(max_lines=20)
                yield self.wire_monitor

        self.command_input = Input(
            placeholder="Press / to type, or use shortcuts: c d s g m q", id="command_input"
        )
        yield self.command_input

        yield Footer()

    def on_mount(self) -> None:
        """Called when app starts."""
        self.title = "DVL Host - Nortek DVL Command Interface"
        link = "simulator" if self.simulate else self._link_description()
        self.sub_title = f"{link} | Disconnected"

    def _link_description(self) -> str:
        conn = self.config.connection
        if conn.transport == "serial":
            return f"{conn.serial_port} @ {conn.baud}"
        return f"{conn.host}:{conn.port}"

    def _refresh_status(self) -> None:
        if self.session is None:
            self.status_panel.update_status(connected=False, state="DISCONNECTED")
            return

        self.status_panel.update_status(
            connected=True,
            state=self.session.state.name,
            sampling_rate=self.session.sampling_rate,
            salinity=self.session.salinity,
            power_level=self.power_level,
            stats=self.session.stats,
        )

    def _require_session(self) -> bool:
        if self.session is None:
            self.notify("Not connected", severity="error")
            return False
        return True

    def on_input_submitted(self, event: Input.Submitted) -> None:
        """Handle command input."""
        command = event.value.strip()
        self.command_input.value = ""
        if command:
            self._execute_command(command)

    def action_connect(self) -> None:
        """Open link to device."""
        if self.connected:
            self.notify("Already connected", severity="warning")
            return

        try:
            if self.simulate:
                transport = SimulatedDvl(
                    username=self.config.credentials.username,
                    password=self.config.credentials.password,
                )
                session = SessionWithWireCapture.from_config(
                    transport, self.config, owns_transport=True
                )
            else:
                session = SessionWithWireCapture.open(self.config)
        except TransportError as e:
            logger.error(f"action_connect: Connection failed - {e}")
            self.notify(f"Connection failed: {e}", severity="error")
            return

        session.wire_callback = self.wire_monitor.add_line
        self.session = session
        self.sub_title = f"{self.sub_title.split(' | ')[0]} | Connected"
        logger.info("action_connect: Connected")
        self.notify("Connected, press s to run setup", severity="information")
        self._refresh_status()

    def action_disconnect(self) -> None:
        """Power down device and close link."""
        if not self._require_session():
            return

        self.session.close()
        self.session = None
        self.sub_title = f"{self.sub_title.split(' | ')[0]} | Disconnected"
        self.notify("Disconnected", severity="information")
        self._refresh_status()

    def action_setup(self) -> None:
        """Run full setup sequence."""
        if not self._require_session():
            return

        if self.session.setup():
            self.notify("Setup complete, measuring", severity="information")
            if self.config.device.power_level:
                self._set_power(self.config.device.power_level)
        else:
            self.notify("Setup failed, see log", severity="error")
        self._refresh_status()

    def action_start(self) -> None:
        """Enter measurement mode."""
        if not self._require_session():
            return

        if not self.session.start_streaming():
            self.notify("START failed", severity="error")
        self._refresh_status()

    def action_stop(self) -> None:
        """Break into command mode."""
        if not self._require_session():
            return

        if not self.session.enter_configuration_mode():
            self.notify("Could not enter command mode", severity="error")
        self._refresh_status()

    def action_focus_input(self) -> None:
        """Focus the command input."""
        self.command_input.focus()

    def action_unfocus_input(self) -> None:
        """Unfocus the command input."""
        self.set_focus(None)

    def _set_power(self, level: str) -> None:
        if self.session.set_power_level(level):
            self.power_level = level.upper()
            self.notify(f"Power level {self.power_level}", severity="information")
        else:
            self.notify(f"Power level {level} failed", severity="error")

    def _execute_command(self, command: str) -> None:
        """Execute a command string."""
        verb, _, arg = command.strip().partition(" ")
        verb = verb.lower()
        arg = arg.strip()

        if verb == "connect":
            self.action_connect()
        elif verb == "disconnect":
            self.action_disconnect()
        elif verb == "setup":
            self.action_setup()
        elif verb == "start":
            self.action_start()
        elif verb == "stop":
            self.action_stop()
        elif verb == "help":
            self.notify(HELP_TEXT, timeout=10)
        elif not self._require_session():
            return
        elif verb == "power":
            self._set_power(arg)
        elif verb in ("rate", "salinity"):
            try:
                value = float(arg)
            except ValueError:
                self.notify(f"Usage: {verb} <number>", severity="error")
                return
            setter = self.session.set_sampling_rate if verb == "rate" else self.session.set_salinity
            if not setter(value):
                self.notify(f"{verb} {value} rejected or not acknowledged", severity="error")
        elif verb == "send" and arg:
            ok = self.session.execute(Command(arg, timeout=self.config.timeouts.reply_s))
            self.notify(f"{arg}: {'OK' if ok else 'FAILED'}",
                        severity="information" if ok else "error")
        else:
            self.notify(f"Unknown command: {command}. Type 'help' for commands.",
                        severity="warning")

        self._refresh_status()


def main() -> None:
    """
    Launch TUI application.

    Entry point for dvl-tui command.
    """
    parser = argparse.ArgumentParser(description="DVL Host terminal UI")
    parser.add_argument("--config", type=str, default=None, help="Configuration TOML file")
    parser.add_argument("--simulate", action="store_true", help="Use the built-in simulator")
    args = parser.parse_args()

    config = load_config(Path(args.config) if args.config else None)

    log_dir = Path(config.logging.log_dir).expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_filename = log_dir / f"dvl_host_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    # Log to file only; console output would corrupt the TUI
    logging.basicConfig(
        level=getattr(logging, config.logging.level.upper(), logging.INFO),
        format="%(asctime)s.%(msecs)03d [%(levelname)-8s] %(name)-20s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.FileHandler(log_filename)],
    )

    logger.info("=" * 80)
    logger.info("DVL Host TUI Starting")
    logger.info(f"Log file: {log_filename}")
    logger.info("=" * 80)

    app = DvlHostApp(config, simulate=args.simulate)
    try:
        app.run()
    except Exception as e:
        logger.critical(f"TUI crashed: {e}", exc_info=True)
        raise
    finally:
        if app.session is not None:
            app.session.wire_callback = None
            app.session.close()
        logger.info("DVL Host TUI Exiting")


if __name__ == "__main__":
    main()
