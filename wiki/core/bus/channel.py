import asyncio
import logging
from typing import Dict

from pydantic import BaseModel

from wiki.core.errors import ChannelError

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# CHANNEL
# Purpose: Address-based request/reply transport between components
# Messages travel as JSON bytes, so sender and receiver never share objects
# -----------------------------------------------------------------------------


class Channel:
    """In-process message bus. One consumer queue per destination address."""

    def __init__(self):
        self._queues: Dict[str, asyncio.Queue] = {}

    def consumer(self, address: str) -> asyncio.Queue:
        """Register the single consumer of ``address`` and return its inbox."""
        if address in self._queues:
            raise ChannelError(f"Address {address} already has a consumer")
        queue: asyncio.Queue = asyncio.Queue()
        self._queues[address] = queue
        logger.debug(f"Consumer registered on {address}")
        return queue

    def unregister(self, address: str) -> None:
        self._queues.pop(address, None)

    def has_consumer(self, address: str) -> bool:
        return address in self._queues

    def send(self, address: str, message: BaseModel) -> None:
        """Serialize and enqueue a message. Never blocks."""
        queue = self._queues.get(address)
        if queue is None:
            raise ChannelError(f"No handlers for address {address}")
        queue.put_nowait(message.model_dump_json().encode("utf-8"))
