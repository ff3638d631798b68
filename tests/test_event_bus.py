"""Tests for the job-start event buses."""

import pytest

from genpipe.models.generation import JobStartEvent
from genpipe.workers.queue import InProcessEventBus, RedisEventBus


class FakeRedis:
    """Minimal in-memory stand-in for the Redis list commands used by the bus."""

    def __init__(self):
        self.lists = {}

    async def rpush(self, key, value):
        self.lists.setdefault(key, []).append(value)
        return len(self.lists[key])

    async def blpop(self, keys, timeout=0):
        for key in keys:
            if self.lists.get(key):
                return key, self.lists[key].pop(0)
        return None


def _event(result_id="gen_1", **kwargs):
    return JobStartEvent(id=result_id, event_name="gen-x", object_type="widget", object_id="w1",
                         object_key="desc", data={"prompt": "hi"}, **kwargs)


@pytest.mark.asyncio
async def test_in_process_bus_assigns_event_ids():
    bus = InProcessEventBus()
    event_id = await bus.publish(_event())
    assert event_id.startswith("evt_")

    received = await bus.receive(timeout=0.1)
    assert received.id == "gen_1"
    assert received.event_id == event_id
    assert await bus.receive(timeout=0.01) is None


@pytest.mark.asyncio
async def test_in_process_bus_keeps_existing_event_id():
    bus = InProcessEventBus()
    assert await bus.publish(_event(event_id="evt_fixed")) == "evt_fixed"


@pytest.mark.asyncio
async def test_redis_bus_is_fifo():
    redis = FakeRedis()
    bus = RedisEventBus(redis, key="test:jobs")
    await bus.publish(_event("gen_1"))
    await bus.publish(_event("gen_2"))

    assert len(redis.lists["test:jobs"]) == 2
    first = await bus.receive(timeout=1)
    second = await bus.receive(timeout=1)
    assert [first.id, second.id] == ["gen_1", "gen_2"]
    assert first.data == {"prompt": "hi"}
    assert first.event_id.startswith("evt_")
    assert await bus.receive(timeout=1) is None


@pytest.mark.asyncio
async def test_redis_bus_decodes_bytes_and_drops_malformed():
    redis = FakeRedis()
    bus = RedisEventBus(redis, key="test:jobs")
    await redis.rpush("test:jobs", b"not json")
    await redis.rpush("test:jobs", _event().model_dump_json().encode())

    assert await bus.receive(timeout=1) is None
    assert (await bus.receive(timeout=1)).id == "gen_1"
