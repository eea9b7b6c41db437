"""
TUI widgets for the DVL session dashboard.
"""

from datetime import datetime

from textual.widgets import Static


class StatusPanel(Static):
    """
    Session status: connection, mode, device parameters and link statistics.
    """

    DEFAULT_CSS = """
    StatusPanel {
        border: solid yellow;
        height: auto;
        padding: 1;
    }
    """

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.connected = False
        self.state = "DISCONNECTED"
        self.sampling_rate = 0.0
        self.salinity = 0.0
        self.power_level = "-"
        self.stats = {
            "commands_tx": 0,
            "replies_ok": 0,
            "timeouts": 0,
            "protocol_errors": 0,
            "transport_errors": 0,
            "breaks": 0,
        }

    def update_status(self, connected: bool = None, state: str = None,
                      sampling_rate: float = None, salinity: float = None,
                      power_level: str = None, stats: dict = None) -> None:
        """Update status display."""
        if connected is not None:
            self.connected = connected
        if state is not None:
            self.state = state
        if sampling_rate is not None:
            self.sampling_rate = sampling_rate
        if salinity is not None:
            self.salinity = salinity
        if power_level is not None:
            self.power_level = power_level
        if stats is not None:
            self.stats.update(stats)

        conn_str = "[green]CONNECTED[/green]" if self.connected else "[red]DISCONNECTED[/red]"
        state_str = (
            f"[cyan]{self.state}[/cyan]" if self.state == "STREAMING" else self.state
        )

        content = f"""[bold]SESSION[/bold]

Connection:  {conn_str}
Mode:        {state_str}

[bold]DEVICE[/bold]

Sampling:    {self.sampling_rate:>8.2f} Hz
Salinity:    {self.salinity:>8.2f} ppt
Power:       {self.power_level:>8}

[bold]LINK STATISTICS[/bold]

Commands:    {self.stats['commands_tx']:>6}
Replies OK:  {self.stats['replies_ok']:>6}
Timeouts:    {self.stats['timeouts']:>6}
Overflows:   {self.stats['protocol_errors']:>6}
Link errors: {self.stats['transport_errors']:>6}
Breaks:      {self.stats['breaks']:>6}"""

        self.update(content)
        self.refresh()

    def on_mount(self) -> None:
        """Initialize display."""
        self.update_status()


class WireMonitor(Static):
    """
    Scrolling view of the last lines sent to and received from the device.
    """

    DEFAULT_CSS = """
    WireMonitor {
        height: 100%;
        padding: 0 1;
    }
    """

    def __init__(self, max_lines: int = 20, **kwargs):
        super().__init__(**kwargs)
        self.max_lines = max_lines
        self.entries = []

    def render(self) -> str:
        """Render the widget content."""
        title = f"[bold]WIRE MONITOR[/bold] (Last {self.max_lines} Lines)\n"
        if not self.entries:
            return title + "\n[dim]No traffic yet...[/dim]"

        lines = [title]
        for entry in reversed(self.entries):  # Newest first
            time_str = entry["time"].strftime("%H:%M:%S.%f")[:-3]
            text = entry["text"]
            if len(text) > 70:
                text = text[:67] + "..."

            if entry["dir"] == "TX":
                indicator = "[cyan]→[/cyan]"
            elif entry["ok"]:
                indicator = "[green]←[/green]"
            else:
                indicator = "[red]←[/red]"
            lines.append(f"{time_str} {indicator} {entry['dir']:2} {text}")

        return "\n".join(lines)

    def add_line(self, direction: str, text: str, ok: bool = True,
                 timestamp: datetime = None) -> None:
        """Add a TX/RX entry."""
        if timestamp is None:
            timestamp = datetime.now()

        self.entries.append({"time": timestamp, "dir": direction, "text": text, "ok": ok})

        if len(self.entries) > self.max_lines:
            self.entries = self.entries[-self.max_lines:]

        self.refresh()

    def clear(self) -> None:
        """Clear all entries."""
        self.entries = []
        self.refresh()
