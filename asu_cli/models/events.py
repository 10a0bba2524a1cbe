"""
Task state and the events a build task reports to the orchestrator.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Union


class TaskState(IntEnum):
    """Lifecycle of a build task. Values only ever increase."""

    PENDING = 0
    SUBMITTED = 1
    POLLING = 2
    DOWNLOADING = 3
    DONE = 4
    FAILED = 5
    CANCELED = 6

    @property
    def is_terminal(self) -> bool:
        return self >= TaskState.DONE


@dataclass
class BuildTask:
    """One device build: what to request and where it currently stands."""

    target: str
    profile: str
    version: str
    packages: list[str] = field(default_factory=list)
    status: str = "waiting"
    state: TaskState = TaskState.PENDING

    def advance(self, state: TaskState) -> None:
        """
        Moves the task forward to `state`.

        Re-entering the current state is a no-op; going back or leaving a
        terminal state raises ValueError.
        """
        if state == self.state:
            return
        if state < self.state or self.state.is_terminal:
            raise ValueError(
                f"Invalid transition for {self.target} {self.profile}: "
                f"{self.state.name} -> {state.name}"
            )
        self.state = state


@dataclass(frozen=True)
class Progress:
    """A non-terminal status line."""

    text: str

    def display(self) -> str:
        return self.text


@dataclass(frozen=True)
class Success:
    """Terminal success; names the image prefix that was written."""

    image_prefix: str
    image_count: int = 0
    bytes_written: int = 0

    def display(self) -> str:
        return f"done: {self.image_prefix}"


@dataclass(frozen=True)
class Failure:
    """Terminal failure carrying the error that ended the task."""

    error: Exception

    def display(self) -> str:
        return f"error: {self.error}"


ProgressEvent = Union[Progress, Success, Failure]


def is_terminal(event: ProgressEvent) -> bool:
    return isinstance(event, (Success, Failure))
