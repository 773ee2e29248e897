import json
import pytest

from chanopen.channel.record import RecordState
from chanopen.store.base import MemoryStateStore
from chanopen.store.jsonfile import JsonFileStateStore

from conftest import FUND, countersigned


@pytest.mark.asyncio
async def test_memory_store_merges_fields(alice, channel_id):
    store = MemoryStateStore()
    await store.set(channel_id, {
        'state': RecordState.INITIALIZED,
        'counterparty': alice.pubkey,
        'initial_balance': FUND,
    })
    record = await store.set(channel_id, {'state': RecordState.OPENING})

    assert record.state == RecordState.OPENING
    assert record.initial_balance == FUND
    assert record.counterparty == alice.pubkey
    assert await store.get(channel_id) == record
    assert await store.get(b'\x00' * 32) is None


@pytest.mark.asyncio
async def test_json_store_persists_records(tmp_path, alice, bob, channel_id):
    path = tmp_path / 'state' / 'channels.json'
    restore_transaction = countersigned(alice, bob)

    await JsonFileStateStore(file_path=str(path)).set(channel_id, {
        'state': RecordState.OPENING,
        'counterparty': bob.pubkey,
        'restore_transaction': restore_transaction,
        'nonce': restore_transaction.nonce,
        'initial_balance': FUND,
    })

    raw = json.loads(path.read_text())
    assert raw['channels'][channel_id.hex()]['counterparty'] == bob.pubkey.hex()

    # a fresh store sees what the first one wrote
    reopened = JsonFileStateStore(file_path=str(path))
    record = await reopened.get(channel_id)
    assert record.state == RecordState.OPENING
    assert record.restore_transaction.counterparty_signer() == bob.pubkey
    assert record.nonce == restore_transaction.nonce

    await reopened.set(channel_id, {'state': RecordState.OPEN, 'current_index': 1})
    records = await reopened.all()
    assert len(records) == 1
    assert records[0].state == RecordState.OPEN
    assert records[0].restore_transaction == restore_transaction
