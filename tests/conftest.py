import asyncio
import os
import pytest
from eth_utils import to_wei
from typing import Callable, Dict, List, Optional

from chanopen.channel.record import LedgerChannelState
from chanopen.channel.transaction import FundingTransaction
from chanopen.channel.utils import get_channel_id, pubkey_to_address, recover_public_key
from chanopen.errors import ConnectivityError, FrameTooLongError
from chanopen.ledger.base import LedgerBase
from chanopen.ledger.events import ChannelEventManager
from chanopen.ledger.requesthandlers import (
    ChannelStateResponse,
    LedgerEvent,
    LedgerEventType,
    PartyStateResponse,
    SubmitResponse,
    WithdrawResponse,
)
from chanopen.opening.context import OpeningContext
from chanopen.opening.opener import ChannelOpener
from chanopen.peer.framing import DEFAULT_MAX_LENGTH
from chanopen.peer.identity import LocalIdentity, PeerIdentity
from chanopen.settings import ChannelSettings
from chanopen.store.base import MemoryStateStore

os.environ["ENVIRONMENT"] = "dev"

ALICE_SECRET = bytes.fromhex('11' * 32)
BOB_SECRET = bytes.fromhex('22' * 32)
CAROL_SECRET = bytes.fromhex('33' * 32)

FUND = to_wei(1, 'shannon')


class FakeLedger(LedgerBase):
    """
    in-memory payment channel contract as seen by `owner`

    a submission recovers the counterparty from the signature the way the
    contract would, and emits OPENED for the resulting channel id
    """
    def __init__(self, owner: LocalIdentity):
        self.owner = owner
        self.events = ChannelEventManager()
        self.default_stake = to_wei(1, 'ether')
        self.stakes: Dict[bytes, int] = {}
        self.channels: Dict[bytes, ChannelStateResponse] = {}
        self.submitted: List[dict] = []
        self.withdrawn: List[bytes] = []
        self.calls: List[str] = []
        self.emit_opened = True
        self.submit_error: Optional[str] = None
        self.state_after_submit: Optional[ChannelStateResponse] = None

    async def query_party_state(self, address: bytes) -> PartyStateResponse:
        self.calls.append('query_party_state')
        return PartyStateResponse(staked_funds=self.stakes.get(address, self.default_stake))

    async def query_channel_state(self, channel_id: bytes) -> ChannelStateResponse:
        self.calls.append('query_channel_state')
        return self.channels.get(
            channel_id,
            ChannelStateResponse(state=LedgerChannelState.UNINITIALIZED))

    async def submit_funding_transaction(
            self,
            nonce: bytes,
            value: int,
            sig_r: bytes,
            sig_s: bytes,
            v: int) -> SubmitResponse:
        self.calls.append('submit_funding_transaction')
        tx = FundingTransaction(nonce=nonce, value=value)
        signer = recover_public_key(tx.hash, sig_r + sig_s, v - 27)
        channel_id = get_channel_id(pubkey_to_address(signer), self.owner.address)
        self.submitted.append({
            'channel_id': channel_id,
            'signer': signer,
            'value': value,
            'v': v,
        })

        if self.state_after_submit is not None:
            self.channels[channel_id] = self.state_after_submit
        if self.submit_error:
            return SubmitResponse(submitted=False, error_message=self.submit_error)

        if self.emit_opened:
            self.channels[channel_id] = ChannelStateResponse(
                state=LedgerChannelState.ACTIVE, balance=2 * value, balance_a=value)
            event = LedgerEvent(
                event=LedgerEventType.OPENED,
                channel_id=channel_id,
                balance=2 * value,
                balance_a=value)
            asyncio.get_running_loop().call_soon(self.events.dispatch, event)
        return SubmitResponse(submitted=True, tx_hash=f'0x{tx.hash.hex()}')

    async def withdraw(self, channel_id: bytes) -> WithdrawResponse:
        self.calls.append('withdraw')
        self.withdrawn.append(channel_id)
        return WithdrawResponse(withdrawn=True)


class FakeStream:
    """
    scripted stand-in for a PeerStream; with a `responder` every request
    is answered with that identity's signature over the transaction hash
    """
    def __init__(
            self,
            replies: Optional[List[bytes]] = None,
            responder: Optional[LocalIdentity] = None,
            error: Optional[Exception] = None):
        self.replies = list(replies or [])
        self.responder = responder
        self.error = error
        self.sent: List[bytes] = []
        self.receive_calls = 0
        self.closed = False

    async def send(self, payload: bytes) -> None:
        self.sent.append(payload)
        if self.responder is not None:
            tx = FundingTransaction.from_bytes(payload)
            signature, recovery = self.responder.sign(tx.hash)
            self.replies.insert(0, signature + bytes([recovery]))

    async def receive(self, max_length: int = DEFAULT_MAX_LENGTH) -> Optional[bytes]:
        self.receive_calls += 1
        if self.error is not None:
            raise self.error
        if not self.replies:
            return None
        reply = self.replies.pop(0)
        if len(reply) > max_length:
            raise FrameTooLongError(length=len(reply), max_length=max_length)
        return reply

    async def close(self) -> None:
        self.closed = True


class SilentStream(FakeStream):
    """accepts the request and never answers"""

    async def receive(self, max_length: int = DEFAULT_MAX_LENGTH) -> Optional[bytes]:
        self.receive_calls += 1
        await asyncio.Event().wait()


class FakeDialer:
    def __init__(self, stream_factory: Callable[[], FakeStream]):
        self.stream_factory = stream_factory
        self.dialed: List[PeerIdentity] = []
        self.streams: List[FakeStream] = []
        self.error: Optional[ConnectivityError] = None

    async def dial(self, peer: PeerIdentity, protocol: str) -> FakeStream:
        self.dialed.append(peer)
        if self.error is not None:
            raise self.error
        stream = self.stream_factory()
        self.streams.append(stream)
        return stream


@pytest.fixture
def alice() -> LocalIdentity:
    return LocalIdentity.from_secret(ALICE_SECRET)


@pytest.fixture
def bob() -> LocalIdentity:
    return LocalIdentity.from_secret(BOB_SECRET)


@pytest.fixture
def carol() -> LocalIdentity:
    return LocalIdentity.from_secret(CAROL_SECRET)


@pytest.fixture
def bob_peer(bob) -> PeerIdentity:
    return bob.as_peer('127.0.0.1', 9999)


@pytest.fixture
def channel_id(alice, bob) -> bytes:
    return get_channel_id(alice.address, bob.address)


@pytest.fixture
def ledger(alice) -> FakeLedger:
    return FakeLedger(owner=alice)


@pytest.fixture
def store() -> MemoryStateStore:
    return MemoryStateStore()


@pytest.fixture
def dialer(bob) -> FakeDialer:
    return FakeDialer(lambda: FakeStream(responder=bob))


@pytest.fixture
def channel_settings() -> ChannelSettings:
    return ChannelSettings(default_fund=FUND, opening_timeout_seconds=2)


@pytest.fixture
def opener(alice, ledger, store, dialer, channel_settings) -> ChannelOpener:
    return ChannelOpener(OpeningContext(
        identity=alice,
        ledger=ledger,
        store=store,
        dialer=dialer,
        settings=channel_settings,
    ))


def countersigned(initiator: LocalIdentity, counterparty: LocalIdentity, value: int = FUND):
    tx = FundingTransaction.create(value=value).sign(initiator)
    signature, recovery = counterparty.sign(tx.hash)
    return tx.with_counterparty_signature(signature, recovery)
