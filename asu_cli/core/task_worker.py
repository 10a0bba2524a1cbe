"""
Handles one device build from submission to verified images on disk.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Protocol

import aiofiles

from asu_cli.artifacts import ChecksumDownloader
from asu_cli.artifacts.integrity import apply_mtime
from asu_cli.exceptions import (
    AsuCliError,
    MetadataWriteError,
    OutputExistsError,
    TaskCancelledError,
)
from asu_cli.models.build import BuildResult
from asu_cli.models.events import BuildTask, Failure, Progress, Success, TaskState
from asu_cli.utils.formatting import download_progress_text, download_started_text
from asu_cli.utils.structured_logger import TaskLogger

from .channel import EventSender
from .poller import BuildPoller, BuildService

log = logging.getLogger(__name__)


class ArtifactSource(BuildService, Protocol):
    def store_url(self, bin_dir: str, image_name: str) -> str: ...


class BuildTaskWorker:
    """
    Runs one task: the poll state machine, then the metadata file, then every
    image in order.

    Everything the task has to say goes through its `EventSender` as one
    forward-only stream that ends in exactly one terminal event, after which
    the stream is closed. Failures are not retried here.
    """

    def __init__(
        self,
        service: ArtifactSource,
        downloader: ChecksumDownloader,
        output_dir: Path,
        poll_interval: float = BuildPoller.DEFAULT_INTERVAL,
        task_logger: Optional[TaskLogger] = None,
    ):
        self.service = service
        self.downloader = downloader
        self.output_dir = output_dir
        self.poll_interval = poll_interval
        self.task_logger = task_logger

    async def run(
        self, task: BuildTask, sender: EventSender, cancel: asyncio.Event
    ) -> None:
        """
        Drives `task` to completion and reports its outcome on `sender`.

        Never raises for task-level errors; they become the terminal event.
        """
        try:
            success = await self._process(task, sender, cancel)
        except TaskCancelledError as e:
            self._finish(task, TaskState.CANCELED, Failure(e), sender)
        except AsuCliError as e:
            self._finish(task, TaskState.FAILED, Failure(e), sender)
        except Exception as e:
            log.debug(
                f"Unexpected error in task {task.target} {task.profile}",
                exc_info=True,
            )
            self._finish(task, TaskState.FAILED, Failure(e), sender)
        else:
            self._finish(task, TaskState.DONE, success, sender)
        finally:
            sender.close()

    def _finish(self, task, state, event, sender: EventSender) -> None:
        task.advance(state)
        task.status = event.display()
        sender.send(event)

    def _emit(self, task: BuildTask, sender: EventSender, text: str) -> None:
        task.status = text
        sender.send(Progress(text))

    async def _process(
        self, task: BuildTask, sender: EventSender, cancel: asyncio.Event
    ) -> Success:
        logged_state = None

        def emit(text: str) -> None:
            nonlocal logged_state
            if self.task_logger and task.state != logged_state:
                logged_state = task.state
                self.task_logger.task_progress(task, text)
            self._emit(task, sender, text)

        if self.task_logger:
            self.task_logger.task_started(task)

        poller = BuildPoller(self.service, task, cancel, self.poll_interval)
        result = await poller.run(emit)

        if cancel.is_set():
            raise TaskCancelledError()
        await self._save_metadata(result)
        task.advance(TaskState.DOWNLOADING)

        total_bytes = 0
        count = len(result.images)
        for index, image in enumerate(result.images, 1):
            if cancel.is_set():
                raise TaskCancelledError()

            emit(download_started_text(index, count, image.name))

            def on_progress(done: int, total: Optional[int], index=index, name=image.name):
                emit(download_progress_text(index, count, name, done, total))

            size = await self.downloader.download(
                self.service.store_url(result.bin_dir, image.name),
                image.sha256,
                self.output_dir / image.name,
                on_progress=on_progress,
                cancel=cancel,
            )
            total_bytes += size
            if self.task_logger:
                self.task_logger.image_downloaded(task, image.name, size)

        return Success(result.image_prefix, image_count=count, bytes_written=total_bytes)

    async def _save_metadata(self, result: BuildResult) -> Path:
        """
        Writes the build result next to the images as `<image_prefix>.json`.

        The file is created exclusively so a previous run's record is never
        replaced.
        """
        path = self.output_dir / f"{result.image_prefix}.json"
        payload = result.raw or result.model_dump_json().encode()
        try:
            async with aiofiles.open(path, "xb") as f:
                await f.write(payload)
        except FileExistsError as e:
            raise OutputExistsError(str(path)) from e
        except OSError as e:
            raise MetadataWriteError(str(path), str(e)) from e
        apply_mtime(path, result.build_at)
        return path
