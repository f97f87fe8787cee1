import asyncio

import pytest
import pytest_asyncio

from wiki.core.bus.channel import Channel
from wiki.core.bus.proxy import ServiceProxy
from wiki.core.bus.worker import ServiceWorker
from wiki.core.errors import (
    ChannelError,
    ChannelTimeout,
    InternalError,
    StorageError,
    ValidationError,
)
from wiki.core.schemas import ReplyMessage

ADDRESS = "test.queue"


class EchoService:
    def __init__(self):
        self.started = asyncio.Event()
        self.cancelled = asyncio.Event()

    async def echo(self, value, delay=0):
        await asyncio.sleep(delay)
        return value

    async def fail(self):
        raise StorageError("disk on fire")

    async def crash(self):
        raise KeyError("not a wiki error")

    async def block(self):
        self.started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled.set()
            raise

    async def hidden(self):
        return "should not be callable"


@pytest_asyncio.fixture(scope="function")
async def bus():
    channel = Channel()
    service = EchoService()
    worker = ServiceWorker(channel, ADDRESS, service, ["echo", "fail", "crash", "block"])
    proxy = ServiceProxy(channel, ADDRESS, timeout=1.0)
    await worker.start()
    await proxy.start()
    yield channel, service, worker, proxy
    await proxy.stop()
    await worker.stop()


@pytest.mark.asyncio
async def test_call_returns_result(bus):
    _, _, _, proxy = bus
    assert await proxy.invoke("echo", {"a": [1, 2]}) == {"a": [1, 2]}
    assert proxy.pending_count == 0


@pytest.mark.asyncio
async def test_replies_out_of_order_reach_their_callers(bus):
    _, _, _, proxy = bus
    slow = asyncio.create_task(proxy.invoke("echo", "slow", 0.1))
    fast = asyncio.create_task(proxy.invoke("echo", "fast", 0))

    done, _ = await asyncio.wait({slow, fast}, return_when=asyncio.FIRST_COMPLETED)
    assert done == {fast}
    assert await fast == "fast"
    assert await slow == "slow"
    assert proxy.pending_count == 0


@pytest.mark.asyncio
async def test_remote_error_keeps_its_type(bus):
    _, _, _, proxy = bus
    with pytest.raises(StorageError) as error:
        await proxy.invoke("fail")
    assert error.value.message == "disk on fire"


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_internal_error(bus):
    _, _, _, proxy = bus
    with pytest.raises(InternalError):
        await proxy.invoke("crash")


@pytest.mark.asyncio
async def test_method_not_exposed_is_rejected(bus):
    _, _, _, proxy = bus
    with pytest.raises(InternalError):
        await proxy.invoke("hidden")


@pytest.mark.asyncio
async def test_wrong_arguments_are_rejected(bus):
    _, _, _, proxy = bus
    with pytest.raises(ValidationError):
        await proxy.invoke("echo", 1, 2, 3, 4)


@pytest.mark.asyncio
async def test_missing_reply_times_out_and_cancels_the_call(bus):
    channel, service, worker, _ = bus
    impatient = ServiceProxy(channel, ADDRESS, timeout=0.1)
    await impatient.start()

    with pytest.raises(ChannelTimeout):
        await impatient.invoke("block")

    assert impatient.pending_count == 0
    await asyncio.wait_for(service.cancelled.wait(), 1)
    await asyncio.sleep(0.05)
    assert worker.inflight_count == 0
    await impatient.stop()


@pytest.mark.asyncio
async def test_caller_cancellation_cancels_the_call(bus):
    _, service, worker, proxy = bus
    call = asyncio.create_task(proxy.invoke("block"))
    await asyncio.wait_for(service.started.wait(), 1)

    call.cancel()
    with pytest.raises(asyncio.CancelledError):
        await call

    assert proxy.pending_count == 0
    await asyncio.wait_for(service.cancelled.wait(), 1)


@pytest.mark.asyncio
async def test_unknown_reply_is_dropped(bus):
    channel, _, _, proxy = bus
    channel.send(
        proxy.reply_address, ReplyMessage(correlation_id="nobody", result="stray")
    )
    channel.send(
        proxy.reply_address, ReplyMessage(correlation_id="nobody", result="stray")
    )

    assert await proxy.invoke("echo", "still fine") == "still fine"


@pytest.mark.asyncio
async def test_no_consumer_is_a_channel_error():
    channel = Channel()
    proxy = ServiceProxy(channel, "nobody.listens", timeout=1.0)
    await proxy.start()

    with pytest.raises(ChannelError):
        await proxy.invoke("echo", "hello")
    assert proxy.pending_count == 0
    await proxy.stop()


@pytest.mark.asyncio
async def test_stopping_the_proxy_fails_pending_calls(bus):
    _, service, _, proxy = bus
    call = asyncio.create_task(proxy.invoke("block"))
    await asyncio.wait_for(service.started.wait(), 1)

    await proxy.stop()
    with pytest.raises(ChannelError):
        await call


def test_address_has_a_single_consumer():
    channel = Channel()
    channel.consumer(ADDRESS)
    with pytest.raises(ChannelError):
        channel.consumer(ADDRESS)
