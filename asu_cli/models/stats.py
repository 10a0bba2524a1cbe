"""
Dataclass for tracking build session statistics.
"""

import time
from dataclasses import dataclass, field


@dataclass
class BuildStats:
    """Tracks outcomes and transfer totals for one build session."""

    tasks_total: int = 0
    tasks_succeeded: int = 0
    tasks_failed: int = 0
    tasks_canceled: int = 0
    images_downloaded: int = 0
    bytes_downloaded: int = 0
    failures: list[str] = field(default_factory=list)
    _started_at: float = field(default_factory=time.monotonic, repr=False)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self._started_at

    @property
    def all_succeeded(self) -> bool:
        return self.tasks_total > 0 and self.tasks_succeeded == self.tasks_total
