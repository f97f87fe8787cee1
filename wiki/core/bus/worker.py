import asyncio
import inspect
import logging
from typing import Any, Dict, Iterable, Optional

from pydantic import ValidationError as PydanticValidationError
from pydantic_core import to_jsonable_python

from wiki.core.bus.channel import Channel
from wiki.core.errors import (
    ChannelError,
    InternalError,
    ValidationError,
    WikiError,
)
from wiki.core.schemas import CallMessage, RemoteError, ReplyMessage

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# SERVICE WORKER
# Purpose: Serve one address on the channel by calling methods of a service
# Each call runs as its own task, so calls interleave on the event loop
# -----------------------------------------------------------------------------


class ServiceWorker:
    """
    Binds a service object to a channel address.

    Only the method names in ``exposed`` can be called. A ``cancel`` message
    cancels the matching in-flight task, which unwinds any connection lease
    it holds. A call id already in flight is ignored, since the channel may
    deliver a message more than once.
    """

    def __init__(
        self,
        channel: Channel,
        address: str,
        service: Any,
        exposed: Iterable[str],
    ):
        self.channel = channel
        self.address = address
        self.service = service
        self.exposed = frozenset(exposed)
        self._consumer: Optional[asyncio.Task] = None
        self._inflight: Dict[str, asyncio.Task] = {}

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    async def start(self) -> None:
        queue = self.channel.consumer(self.address)
        self._consumer = asyncio.create_task(self._consume(queue))
        logger.info(f"Service worker listening on {self.address}")

    async def stop(self) -> None:
        self.channel.unregister(self.address)
        tasks = list(self._inflight.values())
        if self._consumer is not None:
            tasks.append(self._consumer)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._consumer = None
        logger.info(f"Service worker on {self.address} stopped")

    async def _consume(self, queue: asyncio.Queue) -> None:
        while True:
            payload = await queue.get()
            try:
                message = CallMessage.model_validate_json(payload)
            except PydanticValidationError as error:
                logger.warning(f"Dropping malformed message on {self.address}: {error}")
                continue

            if message.kind == "cancel":
                task = self._inflight.get(message.correlation_id)
                if task is not None:
                    logger.info(f"Cancelling call {message.correlation_id}")
                    task.cancel()
                continue

            if message.correlation_id in self._inflight:
                continue

            task = asyncio.create_task(self._handle(message))
            self._inflight[message.correlation_id] = task
            task.add_done_callback(
                lambda _, cid=message.correlation_id: self._inflight.pop(cid, None)
            )

    async def _handle(self, message: CallMessage) -> None:
        try:
            result = await self._dispatch(message)
            reply = ReplyMessage(
                correlation_id=message.correlation_id,
                result=to_jsonable_python(result),
            )
        except WikiError as error:
            reply = ReplyMessage(
                correlation_id=message.correlation_id,
                error=RemoteError(**error.to_remote()),
            )
        except asyncio.CancelledError:
            # The caller gave up on this call, nobody waits for a reply
            raise
        except Exception as error:
            logger.exception(f"Unexpected failure in {message.method}: {error}")
            reply = ReplyMessage(
                correlation_id=message.correlation_id,
                error=RemoteError(**InternalError("Internal service error").to_remote()),
            )

        try:
            self.channel.send(message.reply_to, reply)
        except ChannelError as error:
            logger.warning(f"Reply for {message.correlation_id} dropped: {error}")

    async def _dispatch(self, message: CallMessage) -> Any:
        if message.method not in self.exposed:
            raise InternalError(f"Unknown service method: {message.method}")

        method = getattr(self.service, message.method)
        try:
            inspect.signature(method).bind(*message.args)
        except TypeError:
            raise ValidationError(f"Bad arguments for {message.method}")

        return await method(*message.args)
