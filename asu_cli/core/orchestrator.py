"""
The main orchestrator: runs one build task per device concurrently, merges
their event streams into a single status view and stops everything once any
task fails or the user interrupts.
"""

import asyncio
import logging
import signal
from pathlib import Path
from typing import Optional

from rich.markup import escape

from asu_cli.artifacts import ChecksumDownloader
from asu_cli.cli.progress_manager import StatusBoard
from asu_cli.exceptions import TaskCancelledError
from asu_cli.models.config import BuildConfig
from asu_cli.models.events import BuildTask, Failure, ProgressEvent, Success
from asu_cli.models.stats import BuildStats
from asu_cli.utils.structured_logger import TaskLogger

from .channel import STREAM_CLOSED, open_streams
from .task_worker import ArtifactSource, BuildTaskWorker

log = logging.getLogger(__name__)


class BuildOrchestrator:
    """Orchestrates the entire build session."""

    def __init__(
        self,
        config: BuildConfig,
        client: ArtifactSource,
        downloader: ChecksumDownloader,
        board: Optional[StatusBoard] = None,
        task_logger: Optional[TaskLogger] = None,
        handle_interrupt: bool = True,
    ):
        self.config = config
        self.tasks: list[BuildTask] = config.build_tasks()
        self.worker = BuildTaskWorker(
            client,
            downloader,
            Path(config.output_dir),
            poll_interval=config.poll_interval,
            task_logger=task_logger,
        )
        self.board = board
        self.task_logger = task_logger
        self.handle_interrupt = handle_interrupt

        # Root cancellation token, shared by every worker.
        self.cancel = asyncio.Event()
        self.interrupted = False
        self.statuses: list[str] = [task.status for task in self.tasks]
        self.errors: dict[int, Exception] = {}
        self.stats = BuildStats(tasks_total=len(self.tasks))
        self._signal_loop: Optional[asyncio.AbstractEventLoop] = None

    def request_cancel(self, reason: str) -> None:
        """Signals every task to stop. Only the first call has an effect."""
        if self.cancel.is_set():
            return
        log.debug(f"Canceling all tasks: {reason}")
        self.cancel.set()

    def _on_interrupt(self) -> None:
        # Only the first interrupt is ours; later ones get default handling.
        self._remove_signal_handler()
        self.interrupted = True
        log.warning("[yellow]⚠️  Interrupted, canceling all builds...[/yellow]")
        self.request_cancel("interrupt")

    def _install_signal_handler(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, self._on_interrupt)
        except (NotImplementedError, RuntimeError, ValueError) as e:
            log.debug(f"SIGINT handler not installed: {e}")
            return
        self._signal_loop = loop

    def _remove_signal_handler(self) -> None:
        if self._signal_loop is not None:
            self._signal_loop.remove_signal_handler(signal.SIGINT)
            self._signal_loop = None

    def _label(self, index: int) -> str:
        task = self.tasks[index]
        return f"{task.target} {task.profile}"

    def _handle_event(self, index: int, event: ProgressEvent) -> None:
        self.statuses[index] = event.display()

        if isinstance(event, Success):
            self.stats.tasks_succeeded += 1
            self.stats.images_downloaded += event.image_count
            self.stats.bytes_downloaded += event.bytes_written
            if self.task_logger:
                self.task_logger.task_completed(self.tasks[index], event.image_prefix)
            return

        if not isinstance(event, Failure):
            return

        self.errors[index] = event.error
        canceled = isinstance(event.error, TaskCancelledError)
        if self.task_logger:
            self.task_logger.task_failed(self.tasks[index], event.error, canceled)

        if canceled:
            # A consequence of an earlier failure or interrupt, not a new cause.
            self.stats.tasks_canceled += 1
            return

        self.stats.tasks_failed += 1
        self.stats.failures.append(f"{self._label(index)}: {event.error}")
        log.error(f"[red]✗ {escape(self._label(index))}: {escape(str(event.error))}[/red]")
        self.request_cancel(f"{self._label(index)} failed")

    def _render(self) -> None:
        if self.board:
            self.board.render(self.statuses)

    async def run(self) -> int:
        """
        Runs every task to its terminal event.

        Returns:
            0 if every task succeeded, 1 if any failed or was canceled.
        """
        if self.task_logger:
            self.task_logger.session_started(
                self.config.server, len(self.tasks), self.config.output_dir
            )
        if self.handle_interrupt:
            self._install_signal_handler()

        queue, senders = open_streams(len(self.tasks))
        workers = [
            asyncio.create_task(
                self.worker.run(task, sender, self.cancel),
                name=f"build {task.target} {task.profile}",
            )
            for task, sender in zip(self.tasks, senders)
        ]

        open_streams_left = len(senders)
        try:
            self._render()
            while open_streams_left:
                index, event = await queue.get()
                if event is STREAM_CLOSED:
                    open_streams_left -= 1
                    continue
                self._handle_event(index, event)
                self._render()
        except BaseException:
            for w in workers:
                w.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise
        finally:
            self._remove_signal_handler()

        await asyncio.gather(*workers)

        if self.task_logger:
            self.task_logger.session_completed(
                self.stats.elapsed,
                self.stats.tasks_succeeded,
                self.stats.tasks_failed,
                self.stats.tasks_canceled,
            )
        return 1 if self.errors else 0
