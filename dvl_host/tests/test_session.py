"""
Session tests against the simulated device.

Covers login, break handling, command mode tracking, command execution,
device parameters and the setup sequence.
"""

import pytest

from dvl_host.commands import Session
from dvl_host.protocol import BREAK, Command, PowerLevel, SessionState
from dvl_host.simulator import SimulatedDvl

SETUP_COMMANDS = [
    "SETDEFAULT,ALL",
    'SETINST,LED="OFF"',
    "SETCLOCK,YEAR=2024,MONTH=3,DAY=5,HOUR=14,MINUTE=7,SECOND=9",
    "SETDVL,SR=5.000000,SA=35.000000",
    "SAVE,ALL",
    "START",
]


def config_commands(dvl):
    """Commands sent after login, without break and mode switch."""
    return [c for c in dvl.commands if c not in (BREAK, "MC")]


class DropFirstBreakDvl(SimulatedDvl):
    """Device that ignores the first break it receives."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.dropped = False

    def _handle_line(self, line):
        if line == BREAK and not self.dropped:
            self.dropped = True
            self.lines.append(line)
            return
        super()._handle_line(line)


class TestLogin:
    """Test credential exchange."""

    def test_login_success(self, session, dvl, clock):
        assert session.login() is True

        assert session.state is SessionState.STREAMING
        assert dvl.logged_in
        assert dvl.lines == ["nortek", "nortek"]
        assert clock.sleeps == [1.0]

    def test_custom_credentials(self, clock):
        dvl = SimulatedDvl(clock=clock, username="admin", password="secret")
        session = Session(dvl, clock=clock, username="admin", password="secret")

        assert session.login() is True
        assert dvl.lines == ["admin", "secret"]

    def test_missing_username_prompt(self, open_session, open_dvl):
        assert open_session.login() is False

        assert open_session.state is SessionState.DISCONNECTED
        assert open_dvl.lines == []

    def test_wrong_password(self, dvl, clock):
        session = Session(dvl, clock=clock, password="wrong")

        assert session.login() is False
        assert session.state is SessionState.DISCONNECTED
        assert not dvl.logged_in

    def test_login_byte_by_byte(self, dvl, session):
        dvl.chunk_size = 1

        assert session.login() is True


class TestModeEntry:
    """Test command mode tracking and break handling."""

    def test_enter_configuration_mode(self, session, dvl, clock):
        session.login()
        assert session.enter_configuration_mode() is True

        assert session.state is SessionState.CONFIGURATION
        assert dvl.commands == [BREAK, "MC"]
        assert dvl.command_mode

    def test_enter_configuration_mode_idempotent(self, open_session, open_dvl):
        assert open_session.enter_configuration_mode() is True
        assert open_session.enter_configuration_mode() is True

        assert open_dvl.commands.count("MC") == 1
        assert open_dvl.commands.count(BREAK) == 1

    def test_break_retried_once(self, open_session, open_dvl):
        open_dvl.silent.add(BREAK)

        assert open_session.enter_configuration_mode() is False

        assert open_dvl.commands == [BREAK, BREAK]
        assert open_session.stats["breaks"] == 2
        assert open_session.state is not SessionState.CONFIGURATION

    def test_break_retry_succeeds(self, clock):
        dvl = DropFirstBreakDvl(clock=clock, require_login=False)
        session = Session(dvl, clock=clock)

        assert session.enter_configuration_mode() is True
        assert dvl.commands == [BREAK, BREAK, "MC"]

    def test_mode_switch_failure(self, open_session, open_dvl):
        open_dvl.silent.add("MC")

        assert open_session.enter_configuration_mode() is False
        assert open_session.state is not SessionState.CONFIGURATION

        # Not marked as command mode, so the next attempt breaks again
        open_dvl.silent.clear()
        assert open_session.enter_configuration_mode() is True
        assert open_dvl.commands.count(BREAK) == 2

    def test_start_streaming(self, open_session, open_dvl):
        assert open_session.start_streaming() is True

        assert open_session.state is SessionState.STREAMING
        assert not open_dvl.command_mode

    def test_command_after_start_breaks_again(self, open_session, open_dvl):
        open_session.start_streaming()
        open_session.execute(Command("GETDVL"))

        assert open_dvl.commands == [BREAK, "MC", "START", BREAK, "MC", "GETDVL"]


class TestExecute:
    """Test single command execution."""

    def test_success(self, open_session, open_dvl):
        assert open_session.execute(Command("GETDVL")) is True
        assert open_session.stats["replies_ok"] == 3

    def test_skip_mode_entry(self, open_session, open_dvl):
        open_dvl.command_mode = True

        assert open_session.execute(Command("GETDVL", skip_mode_entry=True)) is True
        assert open_dvl.commands == ["GETDVL"]

    def test_timeout_after_declared_timeout(self, open_session, open_dvl, clock):
        open_session.enter_configuration_mode()
        open_dvl.silent.add("GETDVL")

        start = clock.monotonic()
        assert open_session.execute(Command("GETDVL", timeout=1.5)) is False

        assert clock.monotonic() - start == pytest.approx(1.5)
        assert open_session.stats["timeouts"] == 1

    def test_error_reply(self, open_session, open_dvl):
        open_dvl.fail.add("SETDVL")

        assert open_session.execute(Command("SETDVL,SR=9.000000")) is False

    def test_ordered_replies_in_small_chunks(self, open_session, open_dvl):
        open_dvl.chunk_size = 1
        open_dvl.responses = {
            "C1": "R1\r\nOK\r\n",
            "C2": "R2\r\nOK\r\n",
            "C3": "R3\r\nOK\r\n",
        }

        assert open_session.execute(Command("C1", expected="R1\r\nOK\r\n"))
        assert open_session.execute(Command("C2", expected="R2\r\nOK\r\n"))
        assert open_session.execute(Command("C3", expected="R3\r\nOK\r\n"))

        assert open_dvl.commands[-3:] == ["C1", "C2", "C3"]

    def test_unexpected_reply_fails(self, open_session, open_dvl):
        open_dvl.responses = {"C2": "R2\r\nOK\r\n"}

        assert open_session.execute(Command("C2", expected="R1\r\nOK\r\n")) is False

    def test_diagnostic_query_on_failure(self, open_session, open_dvl):
        open_dvl.fail.add("SAVE")
        open_dvl.error_message = 'ERROR,"Flash write failed"'

        assert open_session.save() is False
        assert open_dvl.commands[-2:] == ["SAVE,ALL", "GETERROR"]

    def test_diagnostic_query_unanswered(self, open_session, open_dvl):
        open_dvl.fail.add("SAVE")
        open_dvl.silent.add("GETERROR")

        assert open_session.save() is False
        assert open_dvl.commands[-1] == "GETERROR"

    def test_no_diagnostic_on_success(self, open_session, open_dvl):
        assert open_session.save() is True
        assert "GETERROR" not in open_dvl.commands

    def test_write_failure(self, open_session, open_dvl):
        open_session.enter_configuration_mode()
        open_dvl.broken = True

        assert open_session.execute(Command("GETDVL")) is False
        assert open_session.stats["transport_errors"] == 1


class TestDeviceParameters:
    """Test parameter validation and application."""

    def test_defaults(self, session):
        assert session.sampling_rate == 5.0
        assert session.salinity == 35.0

    def test_invalid_constructor_values_keep_defaults(self, dvl, clock):
        session = Session(dvl, clock=clock, sampling_rate=20.0, salinity=-1.0)

        assert session.sampling_rate == 5.0
        assert session.salinity == 35.0

    @pytest.mark.parametrize("value", [-5, 999])
    def test_salinity_rejected_without_command(self, session, dvl, value):
        assert session.set_salinity(value) is False

        assert session.salinity == 35.0
        assert dvl.lines == []

    def test_salinity_used_in_next_setup(self, session, dvl):
        assert session.set_salinity(30) is True
        assert dvl.lines == []

        assert session.setup() is True
        assert "SETDVL,SR=5.000000,SA=30.000000" in dvl.commands

    def test_sampling_rate_rejected(self, session, dvl):
        assert session.set_sampling_rate(0.5) is False
        assert session.sampling_rate == 5.0
        assert dvl.lines == []

    def test_parameters_applied_after_setup(self, session, dvl):
        session.setup()
        sent = len(dvl.commands)

        assert session.set_salinity(20) is True

        assert dvl.commands[sent:] == [BREAK, "MC", "SETDVL,SR=5.000000,SA=20.000000", "START"]
        assert session.state is SessionState.STREAMING

    def test_power_level(self, session, dvl):
        session.setup()
        sent = len(dvl.commands)

        assert session.set_power_level(PowerLevel.MIN) is True

        assert dvl.commands[sent:] == [BREAK, "MC", "SETBT,PL=-20.000000", "START"]
        assert session.state is SessionState.STREAMING

    def test_power_level_by_name(self, session, dvl):
        session.setup()

        assert session.set_power_level("med") is True
        assert "SETBT,PL=-10.000000" in dvl.commands

    def test_power_level_failure_still_restarts(self, session, dvl):
        session.setup()
        dvl.fail.add("SETBT")
        sent = len(dvl.commands)

        assert session.set_power_level(PowerLevel.MAX) is False

        assert dvl.commands[-1] == "START"
        assert "SETBT,PL=0.000000" in dvl.commands[sent:]
        assert session.state is SessionState.STREAMING

    def test_unknown_power_level(self, session, dvl):
        assert session.set_power_level("loud") is False
        assert dvl.lines == []


class TestSetup:
    """Test the full setup sequence."""

    def test_setup_command_order(self, session, dvl):
        assert session.setup() is True

        assert dvl.lines[:2] == ["nortek", "nortek"]
        assert dvl.commands == [BREAK, "MC"] + SETUP_COMMANDS
        assert config_commands(dvl) == SETUP_COMMANDS
        assert session.state is SessionState.STREAMING
        assert session.configured

    def test_setup_in_small_chunks(self, session, dvl):
        dvl.chunk_size = 3

        assert session.setup() is True
        assert config_commands(dvl) == SETUP_COMMANDS

    def test_setup_stops_at_clock_failure(self, session, dvl):
        dvl.fail.add("SETCLOCK")

        assert session.setup() is False

        assert config_commands(dvl) == SETUP_COMMANDS[:3]
        assert not any(c.startswith(("SETDVL", "SAVE", "START")) for c in dvl.commands)
        assert not session.configured

    def test_setup_stops_at_login_failure(self, open_session, open_dvl):
        assert open_session.setup() is False
        assert open_dvl.lines == []

    def test_setup_save_failure_queries_error(self, session, dvl):
        dvl.fail.add("SAVE")

        assert session.setup() is False
        assert dvl.commands[-2:] == ["SAVE,ALL", "GETERROR"]
        assert "START" not in dvl.commands


class TestClose:
    """Test session teardown."""

    def test_close_powers_down(self, session, dvl):
        session.setup()
        session.close()

        assert dvl.commands[-1] == "POWERDOWN"
        assert session.state is SessionState.DISCONNECTED
        assert not dvl.closed

    def test_close_owned_transport(self, dvl, clock):
        session = Session(dvl, clock=clock, owns_transport=True)
        session.close()

        assert dvl.closed
        assert dvl.lines == []

    def test_close_ignores_power_down_failure(self, session, dvl):
        session.login()
        dvl.silent.add("POWERDOWN")

        session.close()
        assert session.state is SessionState.DISCONNECTED

    def test_context_manager(self, dvl, clock):
        with Session(dvl, clock=clock) as session:
            session.setup()

        assert dvl.commands[-1] == "POWERDOWN"
