"""
Terminal UI (TUI) for DVL Host.

Launch with: python -m dvl_host.tui.tui
"""

__all__ = ["main"]


def main():
    """Launch TUI (requires textual)."""
    from dvl_host.tui.tui import main as _main
    _main()
