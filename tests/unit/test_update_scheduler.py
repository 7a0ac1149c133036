import asyncio

import pytest

from boardthreads.core.cancellation import CancellationToken
from boardthreads.core.exceptions import SchedulerClosedError
from boardthreads.models.schemas import BuildWindow
from boardthreads.services.scheduler.update_scheduler import (
    RebuildRequest,
    UpdateScheduler,
)

WINDOW = BuildWindow()


class _GatedRunner:
    """Runner that blocks per board until its gate opens or it is cancelled."""

    def __init__(self) -> None:
        self.started: list[str] = []
        self.finished: list[str] = []
        self.requests: list[RebuildRequest] = []
        self.gates: dict[str, asyncio.Event] = {}

    def gate(self, collection_id: str) -> asyncio.Event:
        return self.gates.setdefault(collection_id, asyncio.Event())

    async def __call__(self, request: RebuildRequest, token: CancellationToken) -> None:
        self.started.append(request.collection_id)
        self.requests.append(request)
        opened = asyncio.ensure_future(self.gate(request.collection_id).wait())
        cancelled = asyncio.ensure_future(token.wait_cancelled())
        _, pending = await asyncio.wait(
            {opened, cancelled}, return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
        token.raise_if_cancelled("test")
        self.finished.append(request.collection_id)


class _CountingMetrics:
    def __init__(self) -> None:
        self.supersessions = 0
        self.activity: list[bool] = []

    def observe_build(self, *args):
        pass

    def inc_build_outcome(self, board, outcome):
        pass

    def inc_merge(self, board, placement):
        pass

    def inc_supersession(self):
        self.supersessions += 1

    def set_activity(self, active):
        self.activity.append(active)

    def inc_store_error(self, board, operation):
        pass


@pytest.mark.asyncio
async def test_idle_request_starts_immediately():
    runner = _GatedRunner()
    runner.gate("A").set()
    scheduler = UpdateScheduler(runner)

    assert scheduler.request("A", WINDOW, "sel") is True
    assert scheduler.running.collection_id == "A"
    await scheduler.wait_idle()

    assert runner.finished == ["A"]
    assert runner.requests[0].prior_selection_id == "sel"
    assert scheduler.running is None
    assert scheduler.is_loading is False


@pytest.mark.asyncio
async def test_request_for_running_board_is_ignored():
    runner = _GatedRunner()
    scheduler = UpdateScheduler(runner)

    assert scheduler.request("A", WINDOW) is True
    await asyncio.sleep(0)
    assert scheduler.request("A", WINDOW) is False
    assert scheduler.queued is None

    runner.gate("A").set()
    await scheduler.wait_idle()
    assert runner.started == ["A"]


@pytest.mark.asyncio
async def test_request_for_other_board_supersedes_running_build():
    runner = _GatedRunner()
    runner.gate("B").set()
    metrics = _CountingMetrics()
    scheduler = UpdateScheduler(runner, metrics)

    scheduler.request("A", WINDOW)
    await asyncio.sleep(0)
    scheduler.request("B", WINDOW)
    assert scheduler.queued.collection_id == "B"

    await scheduler.wait_idle()

    assert runner.started == ["A", "B"]
    assert runner.finished == ["B"]
    assert metrics.supersessions == 1
    assert metrics.activity[-1] is False


@pytest.mark.asyncio
async def test_newer_request_overwrites_queued_one():
    runner = _GatedRunner()
    runner.gate("C").set()
    scheduler = UpdateScheduler(runner)

    scheduler.request("A", WINDOW)
    scheduler.request("B", WINDOW)
    scheduler.request("C", WINDOW)

    await scheduler.wait_idle()
    assert runner.started == ["A", "C"]
    assert runner.finished == ["C"]


@pytest.mark.asyncio
async def test_request_for_superseded_board_is_queued_again():
    runner = _GatedRunner()
    runner.gate("A").set()
    scheduler = UpdateScheduler(runner)

    scheduler.request("A", WINDOW)
    scheduler.request("B", WINDOW)
    # A's token is cancelled, so A is not "already in progress"
    assert scheduler.request("A", WINDOW) is True
    assert scheduler.queued.collection_id == "A"

    await scheduler.wait_idle()
    assert runner.started == ["A", "A"]
    assert runner.finished == ["A"]


@pytest.mark.asyncio
async def test_build_ids_follow_request_order():
    runner = _GatedRunner()
    for board in ("A", "B"):
        runner.gate(board).set()
    scheduler = UpdateScheduler(runner)

    scheduler.request("A", WINDOW)
    await scheduler.wait_idle()
    scheduler.request("B", WINDOW)
    await scheduler.wait_idle()

    ids = [r.build_id for r in runner.requests]
    assert ids == sorted(ids)
    assert len(set(ids)) == 2


@pytest.mark.asyncio
async def test_is_busy_tracks_running_and_queued_boards():
    runner = _GatedRunner()
    runner.gate("B").set()
    scheduler = UpdateScheduler(runner)

    scheduler.request("A", WINDOW)
    assert scheduler.is_busy("A")
    assert not scheduler.is_busy("B")

    scheduler.request("B", WINDOW)
    # A's run is cancelled and only waits to unwind
    assert not scheduler.is_busy("A")
    assert scheduler.is_busy("B")

    await scheduler.wait_idle()
    assert not scheduler.is_busy("B")


@pytest.mark.asyncio
async def test_is_loading_waits_for_render_acknowledgement():
    runner = _GatedRunner()
    runner.gate("A").set()
    scheduler = UpdateScheduler(runner)

    scheduler.request("A", WINDOW)
    assert scheduler.is_loading
    await scheduler.wait_idle()
    assert not scheduler.is_loading

    scheduler.mark_delivered("A")
    assert scheduler.is_loading
    scheduler.acknowledge_rendered("A")
    assert not scheduler.is_loading


@pytest.mark.asyncio
async def test_failing_run_does_not_stop_scheduler(caplog):
    calls: list[str] = []

    async def runner(request, token):
        calls.append(request.collection_id)
        await asyncio.sleep(0)
        if request.collection_id == "A":
            raise RuntimeError("boom")

    scheduler = UpdateScheduler(runner)
    scheduler.request("A", WINDOW)
    await scheduler.wait_idle()
    scheduler.request("B", WINDOW)
    await scheduler.wait_idle()

    assert calls == ["A", "B"]
    assert "Rebuild failed" in caplog.text


@pytest.mark.asyncio
async def test_close_cancels_running_and_rejects_new_requests():
    runner = _GatedRunner()
    scheduler = UpdateScheduler(runner)

    scheduler.request("A", WINDOW)
    scheduler.request("B", WINDOW)
    await scheduler.close()

    assert runner.started == ["A"]
    assert runner.finished == []
    assert scheduler.running is None
    with pytest.raises(SchedulerClosedError):
        scheduler.request("C", WINDOW)
