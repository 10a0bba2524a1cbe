"""
Drives the submit/poll protocol for one build until the service reports a
finished build or a failure.
"""

import asyncio
import logging
from typing import Callable, Optional, Protocol

from asu_cli.exceptions import TaskCancelledError
from asu_cli.models.build import BuildRequest, BuildResponse, BuildResult, BuildStatus
from asu_cli.models.events import BuildTask, TaskState

log = logging.getLogger(__name__)


class BuildService(Protocol):
    """The two build service calls the poller needs."""

    async def submit_build(self, request: BuildRequest) -> BuildResponse: ...

    async def fetch_build_status(self, request_hash: str) -> BuildResponse: ...


class BuildPoller:
    """
    Per-task state machine:

        NeedSubmit -> Submitted/Polling <-> Polling -> Completed | Failed | Canceled

    Until the service hands out a request hash every step submits the build;
    once a hash is known every step polls it instead. A status code of 200 or
    202 inside a status object means the build is still running: its detail
    text is reported and the poller waits a fixed interval before the next
    step. Any other code ends the task with `BuildFailedError`.
    """

    DEFAULT_INTERVAL = 1.0

    def __init__(
        self,
        service: BuildService,
        task: BuildTask,
        cancel: asyncio.Event,
        poll_interval: float = DEFAULT_INTERVAL,
    ):
        self.service = service
        self.task = task
        self.cancel = cancel
        self.poll_interval = poll_interval
        self.request_hash: Optional[str] = None
        self.result: Optional[BuildResult] = None

    def _request(self) -> BuildRequest:
        return BuildRequest(
            version=self.task.version,
            profile=self.task.profile,
            target=self.task.target,
            packages=self.task.packages,
        )

    def _check_cancelled(self) -> None:
        if self.cancel.is_set():
            raise TaskCancelledError()

    async def _pause(self) -> None:
        """Waits one poll interval, waking up early if the task is canceled."""
        try:
            await asyncio.wait_for(self.cancel.wait(), timeout=self.poll_interval)
        except asyncio.TimeoutError:
            return
        raise TaskCancelledError()

    async def step(self, emit: Callable[[str], None]) -> Optional[BuildResult]:
        """
        Runs one submit or poll round trip.

        Returns the finished build, or None if the build is still running
        (after having reported its progress and waited one interval).

        Raises:
            TaskCancelledError: If cancellation was signalled before the call
                or while it was in flight.
            BuildFailedError: If the service reports a failed build.
            BuildRequestError: On transport or decoding failures.
        """
        self._check_cancelled()

        if self.request_hash is None:
            emit("submitting request")
            response = await self.service.submit_build(self._request())
            self.task.advance(TaskState.SUBMITTED)
        else:
            response = await self.service.fetch_build_status(self.request_hash)

        # A response that arrives after cancellation is dropped.
        self._check_cancelled()

        if isinstance(response, BuildResult):
            self.result = response
            return response

        if not isinstance(response, BuildStatus):
            raise TypeError(f"Unexpected build service response: {response!r}")

        if response.request_hash:
            if self.request_hash is None:
                log.debug(
                    f"{self.task.target} {self.task.profile}: "
                    f"request hash {response.request_hash}"
                )
            self.request_hash = response.request_hash
            self.task.advance(TaskState.POLLING)

        if not response.in_progress:
            raise response.to_error()

        emit(response.detail)
        await self._pause()
        return None

    async def run(self, emit: Callable[[str], None]) -> BuildResult:
        """Steps until the build finishes. Errors from `step` propagate."""
        result = None
        while result is None:
            result = await self.step(emit)
        return result
