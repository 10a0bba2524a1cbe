"""
Manages a Rich Live display showing the latest status of every build task.
"""

import asyncio
import logging
from typing import Optional

from rich.console import Console
from rich.live import Live
from rich.table import Table
from rich.text import Text

log = logging.getLogger("asu_cli")


class StatusBoard:
    """
    One row per device (target, profile, status), redrawn as a whole from an
    ordered list of status strings on every update.
    """

    def __init__(self, console: Console, devices: list[tuple[str, str]]):
        self.console = console
        self.devices = devices
        self._statuses = ["waiting"] * len(devices)
        self._live: Optional[Live] = None

    @staticmethod
    def _styled(status: str) -> Text:
        if status.startswith("error:"):
            return Text(status, style="red")
        if status.startswith("done:"):
            return Text(status, style="green")
        if status.startswith("downloading"):
            return Text(status, style="cyan")
        return Text(status)

    def build_table(self) -> Table:
        table = Table.grid(padding=(0, 2))
        table.add_column(style="bold", no_wrap=True)
        table.add_column(style="magenta", no_wrap=True)
        table.add_column(overflow="ellipsis", no_wrap=True)
        for (target, profile), status in zip(self.devices, self._statuses):
            table.add_row(target, profile, self._styled(status))
        return table

    def render(self, statuses: list[str]) -> None:
        """Replaces every row's status and redraws the table."""
        if len(statuses) != len(self.devices):
            raise ValueError(
                f"Expected {len(self.devices)} statuses, got {len(statuses)}."
            )
        self._statuses = list(statuses)
        if self._live:
            self._live.update(self.build_table(), refresh=True)

    @property
    def statuses(self) -> list[str]:
        return list(self._statuses)

    async def __aenter__(self):
        self._live = Live(
            self.build_table(),
            console=self.console,
            auto_refresh=False,
            transient=False,
            redirect_stderr=False,
        )
        self._live.start(refresh=True)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._live:
            await asyncio.sleep(0)
            self._live.stop()
            self._live = None
