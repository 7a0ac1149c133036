from datetime import datetime, timezone

import pytest

from boardthreads.models.schemas import BuildWindow, ShowMode, window_start
from boardthreads.repositories.memory_repository import InMemoryRecordStore

OLD = 30 * 24 * 60  # minutes


def test_window_start_is_midnight_utc():
    now = datetime(2025, 11, 16, 15, 30, tzinfo=timezone.utc)
    assert window_start(15, now) == datetime(2025, 11, 1, tzinfo=timezone.utc)


def test_add_rejects_duplicate_ids(make_record):
    store = InMemoryRecordStore()
    assert store.add(make_record("m1")) is True
    assert store.add(make_record("m1")) is False


async def _collect(store, window, board="board", stop_after=None):
    seen = []

    def callback(record):
        seen.append(record.id)
        return stop_after is not None and len(seen) >= stop_after

    await store.stream_window(board, window, callback)
    return seen


@pytest.mark.asyncio
async def test_stream_window_filters_by_age_and_sorts(make_record):
    store = InMemoryRecordStore(
        [
            make_record("new", minutes_ago=1),
            make_record("old", minutes_ago=OLD),
            make_record("mid", minutes_ago=60),
            make_record("other", collection_id="elsewhere"),
        ]
    )

    assert await _collect(store, BuildWindow()) == ["mid", "new"]


@pytest.mark.asyncio
async def test_stream_window_stops_when_callback_returns_true(make_record):
    store = InMemoryRecordStore([make_record("a"), make_record("b"), make_record("c")])

    assert await _collect(store, BuildWindow(), stop_after=2) == ["a", "b"]


@pytest.mark.asyncio
async def test_stream_window_show_modes_and_deleted(make_record):
    store = InMemoryRecordStore(
        [
            make_record("unread", is_new=True),
            make_record("flagged", flagged=True),
            make_record("starred", starred=True),
            make_record("deleted", deleted=True),
        ]
    )

    assert await _collect(store, BuildWindow(show=ShowMode.UNREAD_ONLY)) == ["unread"]
    assert await _collect(store, BuildWindow(show=ShowMode.FLAGGED_ONLY)) == ["flagged"]
    assert await _collect(store, BuildWindow(show=ShowMode.STARRED_ONLY)) == ["starred"]
    assert "deleted" not in await _collect(store, BuildWindow())
    assert "deleted" in await _collect(store, BuildWindow(include_deleted=True))


@pytest.mark.asyncio
async def test_fetch_by_id_returns_copies_and_hides_deleted(make_record):
    store = InMemoryRecordStore([make_record("m1"), make_record("gone", deleted=True)])

    fetched = await store.fetch_by_id("board", "m1")
    fetched.is_new = True

    assert store.get("board", "m1").is_new is False
    assert await store.fetch_by_id("board", "gone") is None
    assert await store.fetch_by_id("board", "gone", include_deleted=True) is not None
    assert await store.fetch_by_id("board", "missing") is None


@pytest.mark.asyncio
async def test_read_state_and_counters(make_record):
    store = InMemoryRecordStore(
        [
            make_record("a", is_new=True),
            make_record("b", is_new=True, flagged=True),
            make_record("c", is_new=True, deleted=True),
        ]
    )

    assert await store.count_unread("board") == 2
    assert await store.has_flagged("board") is True
    assert await store.has_starred("board") is False

    await store.clear_read("board", ["a", "missing"])
    assert await store.count_unread("board") == 1

    await store.mark_all_read("board")
    assert await store.count_unread("board") == 0
