from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional

from chanopen.channel.record import LedgerChannelState
from chanopen.channel.utils import HexBytes


class ErrorMessageMixin:
    error_message: Optional[str] = None


class PartyStateResponse(BaseModel):
    staked_funds: int


class ChannelStateResponse(BaseModel):
    state: LedgerChannelState
    balance: int = 0
    balance_a: int = 0


class SubmitResponse(BaseModel, ErrorMessageMixin):
    submitted: bool
    tx_hash: Optional[str] = Field(default=None)


class WithdrawResponse(BaseModel, ErrorMessageMixin):
    withdrawn: bool
    tx_hash: Optional[str] = Field(default=None)


class LedgerEventType(str, Enum):
    OPENED = 'OPENED'
    CLOSED = 'CLOSED'


class LedgerEvent(BaseModel):
    """
    an event emitted by the payment channel contract

    `balance` is the total amount locked in the channel, `balance_a` the
    share of the party with the lower address
    """
    event: LedgerEventType
    channel_id: HexBytes
    balance: int = 0
    balance_a: int = 0
