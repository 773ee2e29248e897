from abc import ABC, abstractmethod
from typing import Coroutine

from chanopen.ledger.events import ChannelEventManager, EventCallback, Subscription
from chanopen.ledger.requesthandlers import (
    ChannelStateResponse,
    LedgerEventType,
    PartyStateResponse,
    SubmitResponse,
    WithdrawResponse,
)


class LedgerBase(ABC):
    """
    narrow view of the payment channel contract: read party and channel
    state, submit the funding transaction, and listen for channel events
    """
    events: ChannelEventManager

    @abstractmethod
    def query_party_state(
            self,
            address: bytes) -> Coroutine[None, None, PartyStateResponse]:
        pass

    @abstractmethod
    def query_channel_state(
            self,
            channel_id: bytes) -> Coroutine[None, None, ChannelStateResponse]:
        pass

    @abstractmethod
    def submit_funding_transaction(
            self,
            nonce: bytes,
            value: int,
            sig_r: bytes,
            sig_s: bytes,
            v: int) -> Coroutine[None, None, SubmitResponse]:
        pass

    @abstractmethod
    def withdraw(self, channel_id: bytes) -> Coroutine[None, None, WithdrawResponse]:
        pass

    def subscribe(
            self,
            event_type: LedgerEventType,
            channel_id: bytes,
            callback: EventCallback) -> Subscription:
        return self.events.subscribe(event_type, channel_id, callback)

    def start(self) -> None:
        """begin delivering ledger events to subscriptions"""

    async def stop(self) -> None:
        self.events.cancel_all()
