from enum import Enum, IntEnum
from pydantic import BaseModel, Field
from typing import Optional

from chanopen.channel.transaction import FundingTransaction
from chanopen.channel.utils import HexBytes


class RecordState(str, Enum):
    INITIALIZED = 'INITIALIZED'
    OPENING = 'OPENING'
    OPEN = 'OPEN'
    CLOSED = 'CLOSED'
    ERROR = 'ERROR'

    def __str__(self):
        return self.name


class LedgerChannelState(IntEnum):
    """lifecycle tag of a channel entry in the payment channel contract"""
    UNINITIALIZED = 0
    FUNDED = 1
    ACTIVE = 2
    PENDING_SETTLEMENT = 3


class ChannelRecord(BaseModel):
    """
    local view of a channel, keyed by channel id in the state store

    `pre_opened` marks records written by the answering side of the
    handshake, before the initiator has submitted anything on-chain
    """
    channel_id: HexBytes
    state: RecordState
    restore_transaction: Optional[FundingTransaction] = Field(default=None)
    initial_balance: int = 0
    counterparty: HexBytes
    nonce: Optional[HexBytes] = Field(default=None)
    pre_opened: bool = False
    current_index: Optional[int] = Field(default=None)
    current_offchain_balance: Optional[int] = Field(default=None)
    current_onchain_balance: Optional[int] = Field(default=None)
    total_balance: Optional[int] = Field(default=None)

    @property
    def is_open(self) -> bool:
        return self.state == RecordState.OPEN

    def __str__(self):
        indent = 28
        tx = self.restore_transaction
        return (
            f'{"Channel ID": <{indent}}{self.channel_id.hex()}\n'
            f'{"State": <{indent}}{self.state}\n'
            f'{"Counterparty": <{indent}}{self.counterparty.hex()}\n'
            f'{"Initial balance (wei)": <{indent}}{self.initial_balance}\n'
            f'{"Current index": <{indent}}{self.current_index}\n'
            f'{"Total balance (wei)": <{indent}}{self.total_balance}\n'
            f'{"Pre-opened": <{indent}}{self.pre_opened}\n'
            f'{"Fully signed": <{indent}}{bool(tx and tx.is_fully_signed)}\n'
        )
