import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Set, Tuple, Union

from chanopen.ledger.requesthandlers import LedgerEvent, LedgerEventType

logger = logging.getLogger(__name__)

EventCallback = Callable[[LedgerEvent], Union[None, Awaitable[None]]]


class Subscription:
    """handle to one registered listener, cancelling it is idempotent"""

    def __init__(
            self,
            manager: "ChannelEventManager",
            event_type: LedgerEventType,
            channel_id: bytes,
            callback: EventCallback):
        self.manager = manager
        self.event_type = event_type
        self.channel_id = channel_id
        self.callback = callback
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self.active = False
            self.manager._remove(self)

    def __repr__(self):
        return (
            f'Subscription({self.event_type.value}, {self.channel_id.hex()[:16]}..., '
            f'active={self.active})'
        )


class ChannelEventManager:
    """
    Routes ledger events to the listeners registered for their type and
    channel id.

    Callbacks may be plain functions or coroutine functions; coroutines are
    run as tasks so a slow listener never blocks dispatching.
    """

    def __init__(self):
        self.subscriptions: Dict[Tuple[LedgerEventType, bytes], List[Subscription]] = {}
        self._tasks: Set[asyncio.Task] = set()

    def subscribe(
            self,
            event_type: LedgerEventType,
            channel_id: bytes,
            callback: EventCallback) -> Subscription:
        subscription = Subscription(self, event_type, channel_id, callback)
        self.subscriptions.setdefault((event_type, channel_id), []).append(subscription)
        logger.debug(f'registered {subscription}')
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        key = (subscription.event_type, subscription.channel_id)
        listeners = self.subscriptions.get(key, [])
        if subscription in listeners:
            listeners.remove(subscription)
            logger.debug(f'removed {subscription}')
        if not listeners:
            self.subscriptions.pop(key, None)

    def listener_count(self, event_type: LedgerEventType, channel_id: bytes) -> int:
        return len(self.subscriptions.get((event_type, channel_id), []))

    def dispatch(self, event: LedgerEvent) -> int:
        """
        Deliver an event to every active listener for it

        Returns:
            number of listeners the event was delivered to
        """
        listeners = list(self.subscriptions.get((event.event, event.channel_id), []))
        if not listeners:
            logger.debug(f'no listeners for {event.event.value} on {event.channel_id.hex()}')
            return 0

        for subscription in listeners:
            try:
                result = subscription.callback(event)
            except Exception as e:
                logger.error(f'listener {subscription} failed on {event.event.value}: {e}')
                continue
            if asyncio.iscoroutine(result):
                task = asyncio.create_task(result)
                self._tasks.add(task)
                task.add_done_callback(self._listener_done)
        return len(listeners)

    def _listener_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        e = task.exception()
        if e is not None:
            logger.error(f'ledger event listener failed: {e!r}')

    def cancel_all(self) -> None:
        for listeners in list(self.subscriptions.values()):
            for subscription in list(listeners):
                subscription.cancel()
        for task in list(self._tasks):
            task.cancel()
