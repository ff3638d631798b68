"""Tests for the generation result store."""

from datetime import timedelta

import pytest

from genpipe.errors.exceptions import ConflictError
from genpipe.models.enums import ResultStatus


async def _pending(store, result_id="gen_1", object_id="w1", object_key="desc"):
    return await store.create_pending(result_id, "gen-x", "widget", object_id, object_key)


@pytest.mark.asyncio
async def test_create_pending_and_get(store):
    created = await _pending(store)
    assert created.status == ResultStatus.PENDING
    assert created.result is None
    assert created.error is None

    fetched = await store.get("gen_1")
    assert fetched.id == "gen_1"
    assert fetched.event_name == "gen-x"
    assert (fetched.object_type, fetched.object_id, fetched.object_key) == ("widget", "w1", "desc")


@pytest.mark.asyncio
async def test_create_pending_duplicate_id(store):
    await _pending(store)
    with pytest.raises(ConflictError):
        await _pending(store, object_id="w2")


@pytest.mark.asyncio
async def test_second_pending_row_for_same_target_rejected(store):
    """The partial unique index allows only one pending row per target."""
    await _pending(store, "gen_1")
    with pytest.raises(ConflictError):
        await _pending(store, "gen_2")

    # Once the first job is terminal, a new pending row is allowed
    await store.complete("gen_1", {"summary": "ok"})
    second = await _pending(store, "gen_2")
    assert second.status == ResultStatus.PENDING


@pytest.mark.asyncio
async def test_get_unknown_returns_none(store):
    assert await store.get("gen_missing") is None


@pytest.mark.asyncio
async def test_update_progress_keeps_pending(store):
    await _pending(store)
    updated = await store.update_progress("gen_1", {"partial": 1}, step="fetch", message="Fetched")
    assert updated.status == ResultStatus.PENDING
    assert updated.step == "fetch"
    assert updated.message == "Fetched"
    assert updated.result == {"partial": 1}


@pytest.mark.asyncio
async def test_update_progress_missing_returns_none(store):
    assert await store.update_progress("gen_missing", {"x": 1}) is None


@pytest.mark.asyncio
async def test_complete_sets_result_and_clears_error(store):
    await _pending(store)
    done = await store.complete("gen_1", {"summary": "ok"}, message="done")
    assert done.status == ResultStatus.COMPLETED
    assert done.result == {"summary": "ok"}
    assert done.error is None
    assert done.step == "completed"
    assert done.message == "done"


@pytest.mark.asyncio
async def test_fail_sets_error_and_clears_result(store):
    await _pending(store)
    await store.update_progress("gen_1", {"partial": True})
    failed = await store.fail("gen_1", "boom", step="generate")
    assert failed.status == ResultStatus.ERROR
    assert failed.error == "boom"
    assert failed.result is None
    assert failed.step == "generate"


@pytest.mark.asyncio
async def test_terminal_rows_are_immutable(store):
    await _pending(store)
    await store.complete("gen_1", {"summary": "ok"})

    assert await store.fail("gen_1", "late failure") is None
    assert await store.update_progress("gen_1", {"late": True}, step="late") is None
    assert await store.complete("gen_1", {"summary": "other"}) is None
    assert await store.request_cancel("gen_1") is None

    final = await store.get("gen_1")
    assert final.status == ResultStatus.COMPLETED
    assert final.result == {"summary": "ok"}
    assert final.error is None


@pytest.mark.asyncio
async def test_error_row_cannot_complete(store):
    await _pending(store)
    await store.fail("gen_1", "boom")
    assert await store.complete("gen_1", {"summary": "ok"}) is None
    assert (await store.get("gen_1")).status == ResultStatus.ERROR


@pytest.mark.asyncio
async def test_set_event_id_and_request_cancel(store):
    await _pending(store)
    assert (await store.set_event_id("gen_1", "evt_1")).event_id == "evt_1"
    cancelled = await store.request_cancel("gen_1")
    assert cancelled.cancel_requested is True
    assert cancelled.status == ResultStatus.PENDING


@pytest.mark.asyncio
async def test_find_by_target_filters_status(store):
    await _pending(store)
    assert (await store.find_by_target("widget", "w1", "desc", ResultStatus.PENDING)).id == "gen_1"
    assert await store.find_by_target("widget", "w1", "desc", ResultStatus.COMPLETED) is None
    assert await store.find_by_target("widget", "w1", "other", ResultStatus.PENDING) is None


@pytest.mark.asyncio
async def test_list_by_object_newest_first(store, backdate):
    await _pending(store, "gen_old", object_key="desc")
    await _pending(store, "gen_new", object_key="image")
    await _pending(store, "gen_elsewhere", object_id="w2")
    await backdate("gen_old", timedelta(minutes=5))

    results = await store.list_by_object("widget", "w1")
    assert [r.id for r in results] == ["gen_new", "gen_old"]


@pytest.mark.asyncio
async def test_sweep_expired_removes_old_rows_regardless_of_status(store, backdate):
    await _pending(store, "gen_pending", object_key="a")
    await _pending(store, "gen_done", object_key="b")
    await store.complete("gen_done", {"ok": True})
    await _pending(store, "gen_fresh", object_key="c")
    await store.record_step("gen_done", "fetch", {"x": 1}, 1)

    await backdate("gen_pending", timedelta(hours=2))
    await backdate("gen_done", timedelta(hours=2))

    deleted = await store.sweep_expired(timedelta(hours=1))
    assert deleted == 2
    assert await store.get("gen_pending") is None
    assert await store.get("gen_done") is None
    assert await store.get("gen_fresh") is not None
    assert await store.list_steps("gen_done") == []


@pytest.mark.asyncio
async def test_sweep_with_nothing_expired(store):
    await _pending(store)
    assert await store.sweep_expired(timedelta(hours=1)) == 0
    assert await store.get("gen_1") is not None


@pytest.mark.asyncio
async def test_step_ledger_round_trip(store):
    await _pending(store)
    assert await store.get_step_output("gen_1", "fetch") == (False, None)
    await store.record_step("gen_1", "fetch", {"name": "Ada"}, 2)
    assert await store.get_step_output("gen_1", "fetch") == (True, {"name": "Ada"})
    assert await store.list_steps("gen_1") == ["fetch"]
