#!/usr/bin/env python3
"""
Raw command sender tool.

Logs in, sends one command line and prints the reply. Useful for querying
settings (e.g. GETDVL) while debugging.
"""

import argparse
import sys
from pathlib import Path

from dvl_host.commands import Session
from dvl_host.config import load_config
from dvl_host.protocol import ACK, Command, TransportError


def main() -> int:
    """Main entry point for dvl-send tool."""
    parser = argparse.ArgumentParser(description="Send a raw command to a Nortek DVL")
    parser.add_argument("--config", default=None, help="Configuration TOML file")
    parser.add_argument("--host", default=None, help="Device address (overrides config)")
    parser.add_argument("--command", required=True, help="Command line, e.g. GETDVL")
    parser.add_argument("--expect", default="OK", help="Reply terminator (CR LF appended)")
    parser.add_argument("--timeout", type=float, default=1.0, help="Reply timeout in seconds")
    parser.add_argument(
        "--raw", action="store_true", help="Do not break into command mode first"
    )

    args = parser.parse_args()

    config = load_config(Path(args.config) if args.config else None)
    if args.host:
        config.connection.transport = "tcp"
        config.connection.host = args.host

    expected = ACK if args.expect == "OK" else args.expect + "\r\n"

    try:
        session = Session.open(config)
    except TransportError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        if not session.login():
            print("Error: login failed", file=sys.stderr)
            return 1

        if not args.raw and not session.enter_configuration_mode():
            print("Error: could not enter command mode", file=sys.stderr)
            return 1

        result = session._transact(Command(args.command, expected=expected, timeout=args.timeout))
        print(f"Reply: {result.text}")
        print("OK" if result.matched else f"FAILED ({result.error})")
        return 0 if result.matched else 1
    finally:
        session.transport.close()


if __name__ == "__main__":
    sys.exit(main())
