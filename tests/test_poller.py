import asyncio

import pytest

from asu_cli.core.poller import BuildPoller
from asu_cli.exceptions import BuildFailedError, TaskCancelledError
from asu_cli.models.build import BuildStatus
from asu_cli.models.events import BuildTask, TaskState
from conftest import make_result


class _ScriptedService:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    async def submit_build(self, request):
        self.calls.append(("submit", request.profile))
        return self.responses.pop(0)

    async def fetch_build_status(self, request_hash):
        self.calls.append(("poll", request_hash))
        return self.responses.pop(0)


def _task() -> BuildTask:
    return BuildTask(
        target="ath79/generic",
        profile="tplink_archer-c7-v5",
        version="23.05.2",
        packages=["luci"],
    )


def test_polls_by_hash_once_the_service_hands_one_out():
    result = make_result("openwrt-ath79")
    service = _ScriptedService(
        [
            BuildStatus(status=202, detail="queued", request_hash="h1"),
            BuildStatus(status=202, detail="building", request_hash="h1"),
            result,
        ]
    )
    task = _task()
    emitted = []

    async def _run():
        poller = BuildPoller(service, task, asyncio.Event(), poll_interval=0.01)
        return await poller.run(emitted.append)

    assert asyncio.run(_run()) is result
    assert service.calls == [
        ("submit", "tplink_archer-c7-v5"),
        ("poll", "h1"),
        ("poll", "h1"),
    ]
    assert emitted == ["submitting request", "queued", "building"]
    assert task.state == TaskState.POLLING


def test_resubmits_while_no_hash_is_known():
    result = make_result("openwrt-ath79")
    service = _ScriptedService([BuildStatus(status=202, detail="queued"), result])

    async def _run():
        poller = BuildPoller(service, _task(), asyncio.Event(), poll_interval=0.01)
        return await poller.run(lambda _: None)

    assert asyncio.run(_run()) is result
    assert [call[0] for call in service.calls] == ["submit", "submit"]


def test_finished_on_submit_skips_polling():
    result = make_result("openwrt-ath79")
    service = _ScriptedService([result])
    task = _task()

    async def _run():
        poller = BuildPoller(service, task, asyncio.Event(), poll_interval=0.01)
        return await poller.step(lambda _: None)

    assert asyncio.run(_run()) is result
    assert task.state == TaskState.SUBMITTED


def test_error_status_ends_the_task():
    service = _ScriptedService(
        [BuildStatus(status=500, detail="unsupported target", request_hash="h1")]
    )

    async def _run():
        poller = BuildPoller(service, _task(), asyncio.Event(), poll_interval=0.01)
        await poller.run(lambda _: None)

    with pytest.raises(BuildFailedError) as excinfo:
        asyncio.run(_run())
    assert str(excinfo.value) == "build failed: unsupported target (status 500)"
    assert excinfo.value.status == 500


def test_canceled_before_the_step_makes_no_call():
    service = _ScriptedService([])

    async def _run():
        cancel = asyncio.Event()
        cancel.set()
        poller = BuildPoller(service, _task(), cancel, poll_interval=0.01)
        await poller.step(lambda _: None)

    with pytest.raises(TaskCancelledError):
        asyncio.run(_run())
    assert service.calls == []


def test_pause_wakes_up_on_cancel():
    service = _ScriptedService(
        [BuildStatus(status=202, detail="queued", request_hash="h1")]
    )

    async def _run():
        cancel = asyncio.Event()
        poller = BuildPoller(service, _task(), cancel, poll_interval=30)
        loop = asyncio.get_running_loop()
        loop.call_later(0.05, cancel.set)
        started = loop.time()
        with pytest.raises(TaskCancelledError):
            await asyncio.wait_for(poller.run(lambda _: None), timeout=5)
        return loop.time() - started

    assert asyncio.run(_run()) < 1
    assert service.calls == [("submit", "tplink_archer-c7-v5")]


def test_status_received_after_cancel_is_not_reported():
    cancel = asyncio.Event()

    class _CancelingService(_ScriptedService):
        async def submit_build(self, request):
            cancel.set()
            return await super().submit_build(request)

    service = _CancelingService(
        [BuildStatus(status=202, detail="building", request_hash="h1")]
    )
    emitted = []

    async def _run():
        poller = BuildPoller(service, _task(), cancel, poll_interval=0.01)
        await poller.step(emitted.append)

    with pytest.raises(TaskCancelledError):
        asyncio.run(_run())
    assert emitted == ["submitting request"]
