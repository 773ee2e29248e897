import asyncio
import logging
import pytest

from chanopen.ledger.events import ChannelEventManager
from chanopen.ledger.requesthandlers import LedgerEvent, LedgerEventType


def opened(channel_id: bytes) -> LedgerEvent:
    return LedgerEvent(event=LedgerEventType.OPENED, channel_id=channel_id, balance=2, balance_a=1)


@pytest.mark.asyncio
async def test_dispatch_to_matching_listeners():
    manager = ChannelEventManager()
    seen = []

    async def on_async(event):
        seen.append(('async', event.channel_id))

    manager.subscribe(LedgerEventType.OPENED, b'a' * 32, lambda event: seen.append(('sync', event.channel_id)))
    manager.subscribe(LedgerEventType.OPENED, b'a' * 32, on_async)
    manager.subscribe(LedgerEventType.CLOSED, b'a' * 32, lambda event: seen.append('closed'))
    manager.subscribe(LedgerEventType.OPENED, b'b' * 32, lambda event: seen.append('other'))

    assert manager.dispatch(opened(b'a' * 32)) == 2
    await asyncio.sleep(0)

    assert sorted(seen) == [('async', b'a' * 32), ('sync', b'a' * 32)]


@pytest.mark.asyncio
async def test_cancel_is_idempotent():
    manager = ChannelEventManager()
    subscription = manager.subscribe(LedgerEventType.OPENED, b'a' * 32, lambda event: None)
    assert manager.listener_count(LedgerEventType.OPENED, b'a' * 32) == 1

    subscription.cancel()
    subscription.cancel()

    assert not subscription.active
    assert manager.listener_count(LedgerEventType.OPENED, b'a' * 32) == 0
    assert manager.dispatch(opened(b'a' * 32)) == 0


@pytest.mark.asyncio
async def test_cancel_all():
    manager = ChannelEventManager()
    first = manager.subscribe(LedgerEventType.OPENED, b'a' * 32, lambda event: None)
    second = manager.subscribe(LedgerEventType.CLOSED, b'b' * 32, lambda event: None)

    manager.cancel_all()

    assert not first.active and not second.active
    assert manager.subscriptions == {}


@pytest.mark.asyncio
async def test_failing_listeners_are_logged(caplog):
    manager = ChannelEventManager()
    seen = []

    def broken(event):
        raise RuntimeError('sync listener failed')

    async def broken_async(event):
        raise RuntimeError('async listener failed')

    manager.subscribe(LedgerEventType.OPENED, b'a' * 32, broken)
    manager.subscribe(LedgerEventType.OPENED, b'a' * 32, broken_async)
    manager.subscribe(LedgerEventType.OPENED, b'a' * 32, lambda event: seen.append(event.channel_id))

    with caplog.at_level(logging.ERROR, logger='chanopen.ledger.events'):
        assert manager.dispatch(opened(b'a' * 32)) == 3
        await asyncio.sleep(0.01)

    assert seen == [b'a' * 32]
    assert 'sync listener failed' in caplog.text
    assert 'async listener failed' in caplog.text
    assert not manager._tasks


def test_event_from_json():
    event = LedgerEvent.model_validate({
        'event': 'OPENED',
        'channel_id': '0x' + 'ab' * 32,
        'balance': 10,
        'balance_a': 4,
    })
    assert event.channel_id == bytes.fromhex('ab' * 32)
    assert event.model_dump(mode='json')['channel_id'] == 'ab' * 32
