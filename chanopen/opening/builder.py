import logging

from chanopen.channel.record import RecordState
from chanopen.channel.transaction import FundingTransaction, INITIAL_CHANNEL_INDEX
from chanopen.peer.identity import LocalIdentity, PeerIdentity
from chanopen.store.base import StateStoreBase

logger = logging.getLogger(name=__name__)


class TransactionBuilder:
    def __init__(
            self,
            identity: LocalIdentity,
            store: StateStoreBase,
            default_fund: int):
        self.identity = identity
        self.store = store
        self.default_fund = default_fund

    async def prepare_opening(
            self,
            channel_id: bytes,
            counterparty: PeerIdentity) -> FundingTransaction:
        """
        Create the restore transaction, sign it and store it in a record at
        INITIALIZED.

        The counterparty key stays the neutral element, the field is filled
        in by the protocol later on and not by the peer.
        """
        restore_transaction = FundingTransaction.create(
            value=self.default_fund,
            index=INITIAL_CHANNEL_INDEX,
        ).sign(self.identity)

        await self.store.set(channel_id, {
            'state': RecordState.INITIALIZED,
            'initial_balance': restore_transaction.value,
            'restore_transaction': restore_transaction,
            'counterparty': counterparty.pubkey,
            'nonce': restore_transaction.nonce,
            'pre_opened': False,
        })
        logger.debug(f'prepared restore transaction for channel {channel_id.hex()}')

        return restore_transaction
