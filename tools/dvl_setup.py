#!/usr/bin/env python3
"""
DVL setup tool.

Logs into the device, runs the setup sequence and leaves it measuring.
"""

import argparse
import logging
import sys
from pathlib import Path

from dvl_host.commands import Session
from dvl_host.config import load_config
from dvl_host.protocol import TransportError
from dvl_host.simulator import SimulatedDvl


def main() -> int:
    """Main entry point for dvl-setup tool."""
    parser = argparse.ArgumentParser(description="Configure a Nortek DVL and start measuring")
    parser.add_argument("--config", default=None, help="Configuration TOML file")
    parser.add_argument("--host", default=None, help="Device address (overrides config)")
    parser.add_argument("--port", type=int, default=None, help="TCP port (overrides config)")
    parser.add_argument("--serial", default=None, help="Serial port (selects serial link)")
    parser.add_argument("--rate", type=float, default=None, help="Sampling rate in Hz")
    parser.add_argument("--salinity", type=float, default=None, help="Salinity in ppt")
    parser.add_argument(
        "--power", choices=["min", "med", "max"], default=None, help="Bottom-track power level"
    )
    parser.add_argument("--simulate", action="store_true", help="Use the built-in simulator")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log wire traffic")

    args = parser.parse_args()

    config = load_config(Path(args.config) if args.config else None)
    if args.host:
        config.connection.transport = "tcp"
        config.connection.host = args.host
    if args.port:
        config.connection.port = args.port
    if args.serial:
        config.connection.transport = "serial"
        config.connection.serial_port = args.serial

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, config.logging.level.upper(), logging.INFO),
        format="%(asctime)s.%(msecs)03d [%(levelname)-8s] %(name)-20s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        if args.simulate:
            transport = SimulatedDvl(
                username=config.credentials.username, password=config.credentials.password
            )
            session = Session.from_config(transport, config, owns_transport=True)
        else:
            session = Session.open(config)
    except TransportError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    # Validation failures are reported before anything is sent
    if args.rate is not None and not session.set_sampling_rate(args.rate):
        print(f"Error: invalid sampling rate {args.rate}", file=sys.stderr)
        session.transport.close()
        return 1
    if args.salinity is not None and not session.set_salinity(args.salinity):
        print(f"Error: invalid salinity {args.salinity}", file=sys.stderr)
        session.transport.close()
        return 1

    if not session.setup():
        print("Setup failed", file=sys.stderr)
        print(f"Stats: {session.stats}")
        session.close()
        return 1

    print(f"Setup complete: SR={session.sampling_rate} Hz, SA={session.salinity} ppt")

    power = args.power or config.device.power_level
    if power and not session.set_power_level(power):
        print(f"Warning: power level {power} not acknowledged", file=sys.stderr)

    print(f"Stats: {session.stats}")

    # Leave the device measuring; only the link is released
    session.transport.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
