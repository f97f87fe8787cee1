import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from wiki.core.bus.channel import Channel
from wiki.core.errors import ChannelError, ChannelTimeout, from_remote
from wiki.core.schemas import CallMessage, ReplyMessage

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# SERVICE PROXY
# Purpose: Turn a method call into a message and the reply back into a result
# Pending calls are keyed by correlation id, replies may come in any order
# -----------------------------------------------------------------------------


@dataclass
class PendingCall:
    method: str
    args: Tuple[Any, ...]
    future: asyncio.Future


class ServiceProxy:
    """
    Client side of a service worker.

    ``invoke`` waits at most ``timeout`` seconds for a reply. When the wait
    runs out, or the calling task is cancelled, the pending call is dropped
    and the worker is told to cancel the call.
    """

    def __init__(self, channel: Channel, address: str, timeout: float):
        self.channel = channel
        self.address = address
        self.timeout = timeout
        self.reply_address = f"{address}.reply.{uuid.uuid4().hex}"
        self._pending: Dict[str, PendingCall] = {}
        self._listener: Optional[asyncio.Task] = None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def start(self) -> None:
        queue = self.channel.consumer(self.reply_address)
        self._listener = asyncio.create_task(self._listen(queue))

    async def stop(self) -> None:
        self.channel.unregister(self.reply_address)
        if self._listener is not None:
            self._listener.cancel()
            await asyncio.gather(self._listener, return_exceptions=True)
            self._listener = None
        for call in self._pending.values():
            if not call.future.done():
                call.future.set_exception(ChannelError("Service proxy closed"))
        self._pending.clear()

    async def invoke(self, method: str, *args: Any) -> Any:
        correlation_id = uuid.uuid4().hex
        future = asyncio.get_running_loop().create_future()
        self._pending[correlation_id] = PendingCall(method, args, future)

        try:
            self.channel.send(
                self.address,
                CallMessage(
                    correlation_id=correlation_id,
                    method=method,
                    args=list(args),
                    reply_to=self.reply_address,
                ),
            )
            return await asyncio.wait_for(future, self.timeout)
        except asyncio.TimeoutError:
            self._cancel_remote(correlation_id)
            raise ChannelTimeout(
                f"No reply for {method} within {self.timeout} seconds"
            )
        except asyncio.CancelledError:
            self._cancel_remote(correlation_id)
            raise
        finally:
            self._pending.pop(correlation_id, None)

    def _cancel_remote(self, correlation_id: str) -> None:
        try:
            self.channel.send(
                self.address,
                CallMessage(kind="cancel", correlation_id=correlation_id),
            )
        except ChannelError as error:
            logger.warning(f"Could not cancel call {correlation_id}: {error}")

    async def _listen(self, queue: asyncio.Queue) -> None:
        while True:
            payload = await queue.get()
            try:
                reply = ReplyMessage.model_validate_json(payload)
            except PydanticValidationError as error:
                logger.warning(f"Dropping malformed reply: {error}")
                continue

            call = self._pending.pop(reply.correlation_id, None)
            if call is None or call.future.done():
                # Late or duplicate reply
                logger.debug(f"No pending call for reply {reply.correlation_id}")
                continue

            if reply.error is not None:
                call.future.set_exception(
                    from_remote(reply.error.kind, reply.error.message)
                )
            else:
                call.future.set_result(reply.result)
