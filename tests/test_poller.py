"""Tests for the client result poller."""

import asyncio

import pytest
from httpx import ASGITransport, AsyncClient

from genpipe.client.api_client import GenerationAPIClient
from genpipe.client.poller import ResultPoller, StoreResultSource
from genpipe.errors.exceptions import (
    JobFailedError,
    PollAbortedError,
    PollTimeoutError,
    ResultNotFoundError,
)
from genpipe.models.enums import EventName
from genpipe.models.payloads import SpeechSynthesisResult


async def _pending(store, result_id="gen_1", event_name="gen-x"):
    return await store.create_pending(result_id, event_name, "widget", "w1", result_id)


async def _complete_later(store, result_id, delay, payload):
    await asyncio.sleep(delay)
    await store.update_progress(result_id, {"partial": True}, step="generate", message="Generating")
    await asyncio.sleep(delay)
    await store.complete(result_id, payload)


@pytest.fixture
def poller(store):
    return ResultPoller(StoreResultSource(store), interval_ms=10, timeout_ms=2000)


@pytest.mark.asyncio
async def test_returns_payload_of_completed_result(store, poller):
    await _pending(store)
    await store.complete("gen_1", {"summary": "ok"})
    assert await poller.await_result("gen_1") == {"summary": "ok"}


@pytest.mark.asyncio
async def test_reports_progress_until_completed(store, poller):
    await _pending(store)
    progress = []
    job = asyncio.create_task(_complete_later(store, "gen_1", 0.05, {"summary": "done"}))

    result = await poller.await_result("gen_1", on_progress=lambda *args: progress.append(args))
    await job

    assert result == {"summary": "done"}
    assert progress
    assert progress[0] == (None, None, None)
    assert ("generate", "Generating", {"partial": True}) in progress


@pytest.mark.asyncio
async def test_async_progress_callback(store, poller):
    await _pending(store)
    seen = []

    async def on_progress(step, message, result):
        seen.append(step)
        await store.complete("gen_1", {"summary": "ok"})

    assert await poller.await_result("gen_1", on_progress=on_progress) == {"summary": "ok"}
    assert seen == [None]


@pytest.mark.asyncio
async def test_error_result_raises_job_failed(store, poller):
    await _pending(store)
    await store.fail("gen_1", "Step 'generate' failed after 3 attempt(s): boom")
    with pytest.raises(JobFailedError) as exc_info:
        await poller.await_result("gen_1")
    assert exc_info.value.error == "Step 'generate' failed after 3 attempt(s): boom"
    assert exc_info.value.result_id == "gen_1"


@pytest.mark.asyncio
async def test_unknown_id_raises_not_found(poller):
    with pytest.raises(ResultNotFoundError):
        await poller.await_result("gen_missing")


@pytest.mark.asyncio
async def test_timeout_leaves_job_running(store, poller):
    await _pending(store)
    job = asyncio.create_task(_complete_later(store, "gen_1", 0.25, {"summary": "late"}))

    with pytest.raises(PollTimeoutError) as exc_info:
        await poller.await_result("gen_1", timeout_ms=50)
    assert exc_info.value.timeout_ms == 50

    await job
    assert await poller.await_result("gen_1") == {"summary": "late"}


@pytest.mark.asyncio
async def test_deadline_uses_injected_clock(store):
    await _pending(store)
    now = [0.0]
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)
        now[0] += seconds

    poller = ResultPoller(
        StoreResultSource(store), interval_ms=250, timeout_ms=1000,
        clock=lambda: now[0], sleep=fake_sleep,
    )
    with pytest.raises(PollTimeoutError):
        await poller.await_result("gen_1")
    assert sleeps == [0.25, 0.25, 0.25, 0.25]


@pytest.mark.asyncio
async def test_invalid_interval(poller):
    with pytest.raises(ValueError):
        await poller.await_result("gen_1", interval_ms=-1)


@pytest.mark.asyncio
async def test_abort_stops_callbacks_and_raises_aborted(store, poller):
    await _pending(store)
    calls = []
    handle = poller.start("gen_1", on_progress=lambda *args: calls.append(args))

    await asyncio.sleep(0.05)
    handle.abort()
    seen = len(calls)
    await store.complete("gen_1", {"summary": "ok"})
    await asyncio.sleep(0.05)

    with pytest.raises(PollAbortedError):
        await handle
    assert handle.aborted
    assert handle.done()
    assert len(calls) == seen


@pytest.mark.asyncio
async def test_handle_resolves_when_not_aborted(store, poller):
    await _pending(store)
    handle = poller.start("gen_1")
    await store.complete("gen_1", {"summary": "ok"})
    assert await handle == {"summary": "ok"}


@pytest.mark.asyncio
async def test_concurrent_polls_are_independent(store, poller):
    await _pending(store, "gen_a")
    await _pending(store, "gen_b")
    await store.complete("gen_a", {"n": 1})
    job = asyncio.create_task(_complete_later(store, "gen_b", 0.03, {"n": 2}))

    a, b = await asyncio.gather(poller.await_result("gen_a"), poller.await_result("gen_b"))
    await job
    assert (a, b) == ({"n": 1}, {"n": 2})


@pytest.mark.asyncio
async def test_registered_payload_is_decoded(store, poller):
    await _pending(store, event_name=EventName.SPEECH_SYNTHESIS)
    await store.complete("gen_1", {"audio_url": "/media/a.mp3", "duration": 2.0, "parts": 1})

    result = await poller.await_result("gen_1")
    assert isinstance(result, SpeechSynthesisResult)
    assert result.audio_url == "/media/a.mp3"


@pytest.mark.asyncio
async def test_polls_over_http(app, store):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        api = GenerationAPIClient(base_url="http://test/api/v1", client=http)
        started = await api.start_generation("gen-x", "widget", "w1", "desc", {"prompt": "hi"})
        assert started.status == "pending"

        await store.complete(started.id, {"summary": "over http"})
        poller = ResultPoller(api, interval_ms=10, timeout_ms=2000)
        assert await poller.await_result(started.id) == {"summary": "over http"}

        assert await api.get("gen_missing") is None
        with pytest.raises(ResultNotFoundError):
            await poller.await_result("gen_missing")
        assert await api.request_cancel("gen_missing") is None


@pytest.mark.asyncio
async def test_abort_after_poll_finished_does_not_resolve(store, poller):
    await _pending(store)
    await store.complete("gen_1", {"summary": "ok"})
    handle = poller.start("gen_1")
    for _ in range(100):
        if handle.done():
            break
        await asyncio.sleep(0.01)
    assert handle.done()

    handle.abort()
    with pytest.raises(PollAbortedError):
        await handle


@pytest.mark.asyncio
async def test_zero_interval_or_timeout_rejected(store, poller):
    await _pending(store)
    with pytest.raises(ValueError):
        await poller.await_result("gen_1", interval_ms=0)
    with pytest.raises(ValueError):
        await poller.await_result("gen_1", timeout_ms=0)
    with pytest.raises(ValueError):
        await ResultPoller(StoreResultSource(store), interval_ms=0).await_result("gen_1")
