import asyncio
import pytest

from orderflow.tools.fanout import NotificationFanout

class SlowRedis:
    def __init__(self, delay):
        self.delay = delay
        self.published = []

    async def publish(self, channel, message):
        await asyncio.sleep(self.delay)
        self.published.append((channel, message))
        return 1

@pytest.mark.asyncio
async def test_publish_serializes_event(fake_redis):
    fanout = NotificationFanout(fake_redis, channel="orders-updates")

    fanout.publish("ORD-250101-AB12", "sent", "executor:send_order_details")
    await fanout.drain()

    channel, event = fake_redis.published[0]
    assert channel == "orders-updates"
    assert event["entity_id"] == "ORD-250101-AB12"
    assert event["new_state"] == "sent"
    assert event["source"] == "executor:send_order_details"
    assert "timestamp" in event

@pytest.mark.asyncio
async def test_publish_does_not_block_the_caller():
    redis = SlowRedis(delay=0.2)
    fanout = NotificationFanout(redis, timeout=1.0)

    task = fanout.publish("ORD-1", "paid", "executor:attach_receipt")

    assert not task.done()
    assert redis.published == []
    await fanout.drain()
    assert len(redis.published) == 1

@pytest.mark.asyncio
async def test_slow_publish_times_out_quietly():
    redis = SlowRedis(delay=0.5)
    fanout = NotificationFanout(redis, timeout=0.05)

    task = fanout.publish("ORD-1", "paid", "executor:attach_receipt")
    await fanout.drain()

    assert task.done()
    assert task.exception() is None
    assert redis.published == []

@pytest.mark.asyncio
async def test_broker_errors_are_swallowed(fake_redis):
    fake_redis.fail = True
    fanout = NotificationFanout(fake_redis)

    task = fanout.publish("ORD-1", "cancelled", "executor:cancel_order")
    await fanout.drain()

    assert task.exception() is None
