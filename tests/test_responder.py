import pytest
from eth_utils import to_wei

from chanopen.channel.record import RecordState
from chanopen.channel.transaction import FundingTransaction
from chanopen.channel.utils import get_channel_id
from chanopen.opening.responder import OpeningResponder
from chanopen.store.base import MemoryStateStore

from conftest import FUND, FakeStream


@pytest.fixture
def responder(bob) -> OpeningResponder:
    return OpeningResponder(identity=bob, store=MemoryStateStore(), max_accepted_fund=to_wei(1, 'ether'))


@pytest.mark.asyncio
async def test_countersigns_valid_request(responder, alice, bob):
    tx = FundingTransaction.create(value=FUND).sign(alice)
    stream = FakeStream(replies=[tx.to_bytes()])

    await responder.handle(stream)

    assert len(stream.sent) == 1
    reply = stream.sent[0]
    assert len(reply) == 65
    countersigned = tx.with_counterparty_signature(reply[:64], reply[64])
    assert countersigned.counterparty_signer() == bob.pubkey

    record = responder.store.records[get_channel_id(alice.address, bob.address)]
    assert record.pre_opened
    assert record.state == RecordState.INITIALIZED
    assert record.counterparty == alice.pubkey
    assert record.initial_balance == FUND


@pytest.mark.asyncio
async def test_drops_malformed_request(responder):
    stream = FakeStream(replies=[b'\x01' * 100])
    await responder.handle(stream)
    assert stream.sent == []
    assert responder.store.records == {}


@pytest.mark.asyncio
async def test_drops_oversized_frame(responder):
    stream = FakeStream(replies=[bytes(500)])
    await responder.handle(stream)
    assert stream.sent == []


@pytest.mark.asyncio
async def test_nothing_to_read(responder):
    stream = FakeStream()
    await responder.handle(stream)
    assert stream.sent == []


def test_validate_request(responder, alice):
    assert responder.validate_request(FundingTransaction.create(value=FUND).sign(alice)) == ''

    later_index = FundingTransaction.create(value=FUND, index=2).sign(alice)
    assert 'initial index' in responder.validate_request(later_index)

    too_much = FundingTransaction.create(value=to_wei(2, 'ether')).sign(alice)
    assert 'exceeds' in responder.validate_request(too_much)

    keyed = FundingTransaction(nonce=bytes(32), value=FUND, counterparty_key=alice.pubkey)
    assert 'neutral element' in responder.validate_request(keyed)
