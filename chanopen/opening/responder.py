import asyncio
import logging

from chanopen.channel.record import RecordState
from chanopen.channel.transaction import (
    FundingTransaction,
    INITIAL_CHANNEL_INDEX,
    NEUTRAL_ELEMENT,
    WIRE_LENGTH,
)
from chanopen.channel.utils import get_channel_id, pubkey_to_address
from chanopen.errors import FrameTooLongError
from chanopen.peer.identity import LocalIdentity
from chanopen.peer.transport import PeerStream
from chanopen.store.base import StateStoreBase

logger = logging.getLogger(name=__name__)


class OpeningResponder:
    """
    the answering side of the opening handshake: check the initiator's
    restore transaction, countersign it and keep a pre-opened record
    """
    def __init__(
            self,
            identity: LocalIdentity,
            store: StateStoreBase,
            max_accepted_fund: int):
        self.identity = identity
        self.store = store
        self.max_accepted_fund = max_accepted_fund

    def validate_request(self, restore_transaction: FundingTransaction) -> str:
        """reason to refuse the request, empty when it is acceptable"""
        if restore_transaction.index != INITIAL_CHANNEL_INDEX:
            return f'index {restore_transaction.index} is not the initial index'
        if restore_transaction.counterparty_key != NEUTRAL_ELEMENT:
            return 'counterparty key is not the neutral element'
        if restore_transaction.value > self.max_accepted_fund:
            return f'value {restore_transaction.value} exceeds {self.max_accepted_fund}'
        return ''

    async def handle(self, stream: PeerStream) -> None:
        try:
            data = await stream.receive(max_length=WIRE_LENGTH)
        except (FrameTooLongError, asyncio.IncompleteReadError, ValueError) as e:
            logger.warning(f'dropping opening request: {e}')
            return

        if data is None:
            return

        try:
            restore_transaction = FundingTransaction.from_bytes(data)
            initiator = restore_transaction.signer()
        except ValueError as e:
            logger.warning(f'dropping malformed opening request: {e}')
            return

        reason = self.validate_request(restore_transaction)
        if reason:
            logger.warning(f'refusing opening request from {initiator.hex()}: {reason}')
            return

        channel_id = get_channel_id(self.identity.address, pubkey_to_address(initiator))
        signature, recovery = self.identity.sign(restore_transaction.hash)
        countersigned = restore_transaction.with_counterparty_signature(signature, recovery)

        await self.store.set(channel_id, {
            'state': RecordState.INITIALIZED,
            'initial_balance': countersigned.value,
            'restore_transaction': countersigned,
            'counterparty': initiator,
            'nonce': countersigned.nonce,
            'pre_opened': True,
        })

        await stream.send(signature + bytes([recovery]))
        logger.info(f'countersigned channel {channel_id.hex()} for {initiator.hex()}')
