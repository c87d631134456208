import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional

from support_chat.core.exceptions import StoreError
from support_chat.models.message import Message
from support_chat.repositories.ports import ListenHandle, MessageStorePort


logger = logging.getLogger(__name__)

INBOX_VIEW = "inbox"
TRANSCRIPT_VIEW = "transcript"


@dataclass(eq=False)
class SubscriptionHandle:
    view: str
    generation: int
    filter_spec: str
    listener: Optional[ListenHandle] = None
    closed: bool = False


OnViewBatch = Callable[[SubscriptionHandle, List[Message]], Awaitable[None]]
OnViewError = Callable[[SubscriptionHandle, Exception], Awaitable[None]]


class SubscriptionManager:
    """
    Owns the live queries of one messaging surface.

    Each logical view ("inbox", "transcript") has at most one open handle.
    Every open() takes a new generation number; batches and errors are only
    forwarded while their handle's generation is still the current one for
    its view, so results from a superseded or closed query are dropped.
    """

    def __init__(self, store: MessageStorePort) -> None:
        self._store = store
        self._generation = 0
        self._current: Dict[str, SubscriptionHandle] = {}

    @property
    def generation(self) -> int:
        return self._generation

    def active(self, view: str) -> Optional[SubscriptionHandle]:
        return self._current.get(view)

    def is_current(self, handle: Optional[SubscriptionHandle]) -> bool:
        if handle is None or handle.closed:
            return False
        current = self._current.get(handle.view)
        return current is not None and current.generation == handle.generation

    async def open(
        self,
        view: str,
        filter_spec: str,
        on_update: OnViewBatch,
        on_error: OnViewError,
    ) -> SubscriptionHandle:
        self._generation += 1
        handle = SubscriptionHandle(view=view, generation=self._generation, filter_spec=filter_spec)
        previous = self._current.get(view)
        # register before any suspension point so a concurrent open() supersedes this one
        self._current[view] = handle
        if previous is not None:
            await self.close(previous)

        async def deliver(batch: List[Message]) -> None:
            if not self.is_current(handle):
                logger.debug("Dropping stale batch", extra={"view": view, "generation": handle.generation})
                return
            await on_update(handle, batch)

        async def fail(exc: Exception) -> None:
            if not self.is_current(handle):
                logger.debug("Dropping stale error", extra={"view": view, "generation": handle.generation})
                return
            await on_error(handle, exc)

        try:
            listener = await self._store.listen(filter_spec, deliver, fail)
        except StoreError as exc:
            logger.exception("Failed to open subscription", extra={"view": view, "generation": handle.generation})
            await fail(exc)
            return handle

        handle.listener = listener
        if handle.closed:
            # superseded or torn down while the query was opening
            await listener.close()
        else:
            logger.debug("Subscription opened", extra={"view": view, "generation": handle.generation})
        return handle

    async def close(self, handle: Optional[SubscriptionHandle]) -> None:
        if handle is None or handle.closed:
            return
        handle.closed = True
        if self._current.get(handle.view) is handle:
            del self._current[handle.view]
        if handle.listener is not None:
            await handle.listener.close()
        logger.debug("Subscription closed", extra={"view": handle.view, "generation": handle.generation})

    async def close_all(self) -> None:
        self._generation += 1
        handles = list(self._current.values())
        self._current.clear()
        for handle in handles:
            # the dict entry is already gone; close() still stops the listener
            await self.close(handle)
