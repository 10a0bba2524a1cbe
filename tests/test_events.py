import asyncio

import pytest

from asu_cli.core.channel import STREAM_CLOSED, open_streams
from asu_cli.exceptions import TaskCancelledError
from asu_cli.models.events import (
    BuildTask,
    Failure,
    Progress,
    Success,
    TaskState,
    is_terminal,
)


def _task() -> BuildTask:
    return BuildTask(target="ath79/generic", profile="a", version="23.05.2")


def test_task_state_only_moves_forward():
    task = _task()
    task.advance(TaskState.SUBMITTED)
    task.advance(TaskState.POLLING)
    task.advance(TaskState.POLLING)

    with pytest.raises(ValueError):
        task.advance(TaskState.SUBMITTED)

    task.advance(TaskState.DONE)
    with pytest.raises(ValueError):
        task.advance(TaskState.FAILED)


def test_event_display_strings():
    assert Progress("queued").display() == "queued"
    assert Success("openwrt-x").display() == "done: openwrt-x"
    assert Failure(TaskCancelledError()).display() == "error: canceled"
    assert is_terminal(Success("p"))
    assert not is_terminal(Progress("building"))


def test_sender_allows_one_terminal_event_then_close():
    queue, (first, second) = open_streams(2)

    first.send(Progress("queued"))
    second.send(Progress("building"))
    first.send(Success("p"))
    with pytest.raises(RuntimeError):
        first.send(Progress("late"))

    first.close()
    first.close()
    with pytest.raises(RuntimeError):
        first.send(Success("p"))

    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    assert items == [
        (0, Progress("queued")),
        (1, Progress("building")),
        (0, Success("p")),
        (0, STREAM_CLOSED),
    ]
    assert first.closed and not second.closed


def test_streams_preserve_per_sender_order():
    async def _run():
        queue, senders = open_streams(3)

        async def produce(sender):
            for i in range(5):
                sender.send(Progress(str(i)))
                await asyncio.sleep(0)
            sender.close()

        await asyncio.gather(*(produce(s) for s in senders))
        seen = {0: [], 1: [], 2: []}
        while not queue.empty():
            index, event = queue.get_nowait()
            if event is not STREAM_CLOSED:
                seen[index].append(event.text)
        return seen

    for texts in asyncio.run(_run()).values():
        assert texts == ["0", "1", "2", "3", "4"]
