"""
Ordered setup sequence with abort on first failure.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class SequenceState(Enum):
    """Setup sequence execution state."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class SetupStep:
    """
    Single setup step.

    Attributes:
        name: Step name, used for logging.
        action: Callable returning True on success.
    """

    name: str
    action: Callable[[], bool]


class SetupSequence:
    """
    Runs steps in order, stopping at the first one that fails.

    A sequence is transient: build it, run it once, discard it.
    """

    def __init__(self, steps: List[SetupStep]) -> None:
        self.steps = list(steps)
        self.state = SequenceState.IDLE
        self.failed_step: Optional[str] = None
        self.completed: List[str] = []

    def run(self) -> bool:
        """
        Execute all steps.

        Returns:
            True if every step succeeded, False at the first failure.
        """
        self.state = SequenceState.RUNNING

        for index, step in enumerate(self.steps, start=1):
            logger.debug(f"Setup step {index}/{len(self.steps)}: {step.name}")

            if not step.action():
                self.failed_step = step.name
                self.state = SequenceState.FAILED
                logger.warning(
                    f"Setup aborted at step {index}/{len(self.steps)} ({step.name})"
                )
                return False

            self.completed.append(step.name)

        self.state = SequenceState.COMPLETED
        return True
