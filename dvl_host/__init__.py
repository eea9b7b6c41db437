"""
DVL Host - Nortek DVL command interface driver

Python host driver that logs into a Nortek DVL over TCP or serial, configures it
through the textual command interface and arms it for measurement.
"""

__version__ = "0.1.0"
__author__ = "DVL Host Contributors"

from dvl_host.commands import Session
from dvl_host.protocol import PowerLevel, SessionState

__all__ = ["Session", "PowerLevel", "SessionState", "__version__"]
