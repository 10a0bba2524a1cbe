import asyncio
import json

from asu_cli.core.orchestrator import BuildOrchestrator
from asu_cli.exceptions import BuildFailedError, TaskCancelledError
from asu_cli.models.build import BuildStatus
from asu_cli.utils.structured_logger import create_task_logger
from conftest import make_result


class _FakeClient:
    """Answers each submission from a per-profile table; polls stay queued."""

    def __init__(self, answers):
        self.answers = answers
        self.calls = []

    async def submit_build(self, request):
        self.calls.append(("submit", request.profile))
        return self.answers[request.profile]

    async def fetch_build_status(self, request_hash):
        self.calls.append(("poll", request_hash))
        return BuildStatus(status=202, detail="building", request_hash=request_hash)

    def store_url(self, bin_dir, image_name):
        return f"https://asu.example.org/store/{bin_dir}/{image_name}"


class _FakeDownloader:
    async def download(
        self, url, expected_sha256, destination, on_progress=None, cancel=None
    ):
        destination.write_bytes(b"firmware")
        return 8


def _queued(profile):
    return BuildStatus(status=202, detail="queued", request_hash=f"hash-{profile}")


def _run(orchestrator, timeout=5):
    return asyncio.run(asyncio.wait_for(orchestrator.run(), timeout=timeout))


def test_all_devices_succeed(build_config):
    client = _FakeClient(
        {
            d.profile: make_result(f"openwrt-{d.profile}", {f"{d.profile}.bin": b"firmware"})
            for d in build_config.devices
        }
    )
    orchestrator = BuildOrchestrator(
        build_config, client, _FakeDownloader(), handle_interrupt=False
    )

    assert _run(orchestrator) == 0
    assert orchestrator.statuses == [
        f"done: openwrt-{d.profile}" for d in build_config.devices
    ]
    assert orchestrator.stats.tasks_succeeded == 3
    assert orchestrator.stats.images_downloaded == 3
    assert orchestrator.stats.bytes_downloaded == 24
    assert orchestrator.stats.all_succeeded


def test_first_failure_cancels_siblings_mid_poll(build_config):
    build_config.poll_interval = 30
    failing, *others = [d.profile for d in build_config.devices]
    answers = {p: _queued(p) for p in others}
    answers[failing] = BuildStatus(status=500, detail="unsupported target")
    client = _FakeClient(answers)
    orchestrator = BuildOrchestrator(
        build_config, client, _FakeDownloader(), handle_interrupt=False
    )

    assert _run(orchestrator, timeout=5) == 1
    assert orchestrator.statuses == [
        "error: build failed: unsupported target (status 500)",
        "error: canceled",
        "error: canceled",
    ]
    assert isinstance(orchestrator.errors[0], BuildFailedError)
    assert all(isinstance(orchestrator.errors[i], TaskCancelledError) for i in (1, 2))
    assert orchestrator.stats.tasks_failed == 1
    assert orchestrator.stats.tasks_canceled == 2
    assert orchestrator.stats.failures == [
        "ath79/generic tplink_archer-c7-v5: build failed: unsupported target (status 500)"
    ]
    assert not any(call[0] == "poll" for call in client.calls)


def test_tasks_started_after_cancel_make_no_calls(build_config):
    client = _FakeClient({})
    orchestrator = BuildOrchestrator(
        build_config, client, _FakeDownloader(), handle_interrupt=False
    )
    orchestrator.request_cancel("test")

    assert _run(orchestrator) == 1
    assert client.calls == []
    assert orchestrator.statuses == ["error: canceled"] * 3
    assert orchestrator.stats.tasks_failed == 0
    assert orchestrator.stats.tasks_canceled == 3


def test_interrupt_cancels_every_task(build_config):
    build_config.poll_interval = 30
    client = _FakeClient({d.profile: _queued(d.profile) for d in build_config.devices})
    orchestrator = BuildOrchestrator(
        build_config, client, _FakeDownloader(), handle_interrupt=False
    )

    async def _main():
        asyncio.get_running_loop().call_later(0.05, orchestrator._on_interrupt)
        return await asyncio.wait_for(orchestrator.run(), timeout=5)

    assert asyncio.run(_main()) == 1
    assert orchestrator.interrupted
    assert orchestrator.statuses == ["error: canceled"] * 3
    assert orchestrator.stats.tasks_failed == 0


def test_session_events_are_written_to_the_json_log(build_config, tmp_path):
    failing = build_config.devices[0].profile
    answers = {d.profile: make_result(f"openwrt-{d.profile}") for d in build_config.devices}
    answers[failing] = BuildStatus(status=500, detail="unsupported target")
    task_logger = create_task_logger(tmp_path / "logs")
    orchestrator = BuildOrchestrator(
        build_config,
        _FakeClient(answers),
        _FakeDownloader(),
        task_logger=task_logger,
        handle_interrupt=False,
    )

    try:
        assert _run(orchestrator) == 1
    finally:
        task_logger.close()

    log_path = task_logger.logger.json_log_path
    events = [json.loads(line) for line in log_path.read_text().splitlines()]
    names = [e["event"] for e in events]
    assert names[0] == "session_started"
    assert names[-1] == "session_completed"
    failed = [e for e in events if e["event"] == "task_failed"]
    assert failed[0]["profile"] == failing
    assert failed[0]["error_type"] == "BuildFailedError"
    assert all(e["server"] == "https://asu.example.org" for e in events)
