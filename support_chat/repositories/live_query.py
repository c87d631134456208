import asyncio
import logging
from contextlib import suppress
from typing import Awaitable, Callable, List, Optional

from support_chat.core.config import MESSAGES_CHANNEL
from support_chat.models.message import Message
from support_chat.repositories.ports import OnBatch, OnError
from support_chat.utils.realtime_bus import Bus


logger = logging.getLogger(__name__)


class LiveQuery:
    """
    Re-runs a query whenever the bus reports a change and hands the full
    result set to `on_update`. Batches are delivered one at a time, in the
    order the changes were published. A failed fetch reports to `on_error`
    and stops the query.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[List[Message]]],
        on_update: OnBatch,
        on_error: OnError,
        bus: Bus,
        channel: str = MESSAGES_CHANNEL,
    ) -> None:
        self._fetch = fetch
        self._on_update = on_update
        self._on_error = on_error
        self._bus = bus
        self._channel = channel
        self._subscription = None
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> "LiveQuery":
        # subscribe before the first fetch so no change between them is lost
        self._subscription = await self._bus.subscribe(self._channel, self._on_change)
        self._task = asyncio.create_task(self._run())
        return self

    async def _run(self) -> None:
        await self._refresh()
        if not self._closed:
            await self._subscription.run()

    async def _on_change(self, _payload: str) -> None:
        await self._refresh()

    async def _refresh(self) -> None:
        if self._closed:
            return
        try:
            batch = await self._fetch()
        except Exception as exc:
            logger.exception("Live query fetch failed")
            self._closed = True
            await self._subscription.cancel()
            await self._on_error(exc)
            return
        if self._closed:
            return
        await self._on_update(batch)

    async def close(self) -> None:
        if self._closed and (self._task is None or self._task.done()):
            return
        self._closed = True
        if self._subscription is not None:
            await self._subscription.cancel()
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
