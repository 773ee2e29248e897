import asyncio
import contextlib
import logging
from typing import Dict, Optional, Set, Union

from chanopen.channel.record import ChannelRecord, LedgerChannelState, RecordState
from chanopen.channel.transaction import FundingTransaction, INITIAL_CHANNEL_INDEX
from chanopen.channel.utils import get_channel_id
from chanopen.errors import (
    ChannelOpenError,
    ConnectivityError,
    InvalidSignatureError,
    OpeningInProgressError,
    OpeningTimeoutError,
    PreconditionError,
    SubmissionError,
)
from chanopen.ledger.events import Subscription
from chanopen.ledger.requesthandlers import LedgerEvent, LedgerEventType
from chanopen.opening.builder import TransactionBuilder
from chanopen.opening.checker import PreconditionChecker
from chanopen.opening.context import OpeningContext
from chanopen.opening.exchange import CounterpartyExchange
from chanopen.peer.identity import PeerIdentity, resolve_counterparty

logger = logging.getLogger(name=__name__)


class ChannelOpener:
    """
    Drives a channel from request to confirmed open.

    INITIALIZED -> (both signatures) -> OPENING -> (ledger event) -> OPEN

    Nothing before OPENING touches the ledger. Once OPENING is committed the
    funding transaction is submitted in the background and the call only
    resolves through the opening event, a successful reconciliation, or the
    opening timeout.
    """
    def __init__(self, context: OpeningContext):
        self.context = context
        self.builder = TransactionBuilder(
            identity=context.identity,
            store=context.store,
            default_fund=context.settings.default_fund)
        self.checker = PreconditionChecker(
            identity=context.identity,
            ledger=context.ledger,
            min_fund=context.settings.min_fund)
        self.exchange = CounterpartyExchange(
            reply_timeout=context.settings.opening_timeout_seconds)
        self._in_flight: Set[bytes] = set()
        self._pending: Dict[bytes, asyncio.Future] = {}
        self._settlement_subscriptions: Dict[bytes, Subscription] = {}
        self._tasks: Set[asyncio.Task] = set()

    def channel_id_for(self, counterparty: PeerIdentity) -> bytes:
        return get_channel_id(counterparty.address, self.context.identity.address)

    async def open(
            self,
            to: Union[PeerIdentity, str],
            restore_transaction: Optional[FundingTransaction] = None) -> ChannelRecord:
        """
        Opens a payment channel with the given party.

        Args:
            to: identity or `pubkey@host:port` uri of the counterparty
            restore_transaction: a previously countersigned transaction to use
                instead of running the handshake

        Returns:
            the channel record at OPEN

        Raises:
            ChannelOpenError: one subclass per failure cause, with a message
                naming the channel and the counterparty
        """
        counterparty = resolve_counterparty(to, self.context.peer_book)
        if counterparty.pubkey == self.context.identity.pubkey:
            raise PreconditionError('Cannot open a payment channel to ourselves.')

        channel_id = self.channel_id_for(counterparty)
        if channel_id in self._in_flight:
            raise OpeningInProgressError(
                'Another opening attempt for this channel is in progress.'
            ).with_context(channel_id, counterparty.pubkey)

        self._in_flight.add(channel_id)
        logger.info(f'opening payment channel {channel_id.hex()} to {counterparty}')
        try:
            return await self._open(channel_id, counterparty, restore_transaction)
        except ChannelOpenError as e:
            if e.channel_id is not None:
                raise
            raise e.with_context(channel_id, counterparty.pubkey) from e
        finally:
            self._in_flight.discard(channel_id)

    async def _open(
            self,
            channel_id: bytes,
            counterparty: PeerIdentity,
            restore_transaction: Optional[FundingTransaction]) -> ChannelRecord:
        await self.checker.check_request(channel_id, counterparty)

        if restore_transaction is None:
            restore_transaction = await self._handshake(channel_id, counterparty)
        else:
            self._verify_restore_transaction(counterparty, restore_transaction)

        return await self._commit_and_await_opening(
            channel_id, counterparty, restore_transaction)

    async def _handshake(
            self,
            channel_id: bytes,
            counterparty: PeerIdentity) -> FundingTransaction:
        if self.context.dialer is None:
            raise ConnectivityError('No dialer configured to reach the counterparty.')

        stream = await self.context.dialer.dial(counterparty, self.context.protocol)

        try:
            restore_transaction = await self.builder.prepare_opening(channel_id, counterparty)
        except Exception as e:
            await stream.close()
            raise ChannelOpenError(f"Could not prepare restore transaction due to '{e}'.") from e

        return await self.exchange.exchange(counterparty, stream, restore_transaction)

    def _verify_restore_transaction(
            self,
            counterparty: PeerIdentity,
            restore_transaction: FundingTransaction) -> None:
        if not restore_transaction.is_fully_signed:
            raise InvalidSignatureError(
                'Restore transaction is missing a signature.')
        try:
            signer = restore_transaction.counterparty_signer()
        except ValueError:
            signer = None
        if signer != counterparty.pubkey:
            raise InvalidSignatureError(
                'Restore transaction is not signed by the counterparty.')

    async def _commit_and_await_opening(
            self,
            channel_id: bytes,
            counterparty: PeerIdentity,
            restore_transaction: FundingTransaction) -> ChannelRecord:
        loop = asyncio.get_running_loop()
        opened: asyncio.Future = loop.create_future()
        timeout = self.context.settings.opening_timeout_seconds

        def on_timeout() -> None:
            if opened.done():
                return
            opened.set_exception(OpeningTimeoutError(
                f'Counterparty {counterparty} is not answering with an appropriate '
                f'response, no opening confirmation within {timeout} seconds.'))

        async def on_opened(event: LedgerEvent) -> None:
            if opened.done():
                return
            timer.cancel()
            try:
                record = await self._commit_open(channel_id, event.balance, event.balance_a)
            except Exception as e:
                if not opened.done():
                    opened.set_exception(e)
                return
            if not opened.done():
                opened.set_result(record)

        timer = loop.call_later(timeout, on_timeout)

        # listeners go first so no event can slip in between submission and
        # registration
        settlement = self.context.ledger.subscribe(
            LedgerEventType.CLOSED, channel_id, self._on_closed)
        opening = self.context.ledger.subscribe(
            LedgerEventType.OPENED, channel_id, on_opened)
        self._pending[channel_id] = opened

        succeeded = False
        try:
            if not restore_transaction.is_fully_signed:
                raise InvalidSignatureError(
                    'Refusing to commit a restore transaction without both signatures.')

            await self.context.store.set(channel_id, {
                'restore_transaction': restore_transaction,
                'state': RecordState.OPENING,
                'counterparty': counterparty.pubkey,
                'initial_balance': restore_transaction.value,
                'nonce': restore_transaction.nonce,
                'pre_opened': False,
            })

            self._spawn(self._submit(channel_id, restore_transaction))

            record = await opened
            succeeded = True
            return record
        finally:
            timer.cancel()
            opening.cancel()
            self._pending.pop(channel_id, None)
            if succeeded:
                self._settlement_subscriptions[channel_id] = settlement
            else:
                settlement.cancel()

    async def _commit_open(
            self,
            channel_id: bytes,
            balance: int,
            balance_a: int) -> ChannelRecord:
        record = await self.context.store.set(channel_id, {
            'state': RecordState.OPEN,
            'current_index': INITIAL_CHANNEL_INDEX,
            'initial_balance': balance_a,
            'current_offchain_balance': balance_a,
            'current_onchain_balance': balance_a,
            'total_balance': balance,
        })
        logger.info(f'payment channel {channel_id.hex()} is open')
        return record

    def _watch_settlement(self, channel_id: bytes) -> None:
        # an open call in flight registers its own settlement listener
        if channel_id in self._pending:
            return
        if channel_id not in self._settlement_subscriptions:
            self._settlement_subscriptions[channel_id] = self.context.ledger.subscribe(
                LedgerEventType.CLOSED, channel_id, self._on_closed)

    async def _on_closed(self, event: LedgerEvent) -> None:
        await self.context.store.set(event.channel_id, {
            'state': RecordState.CLOSED,
            'current_onchain_balance': event.balance_a,
        })
        subscription = self._settlement_subscriptions.pop(event.channel_id, None)
        if subscription:
            subscription.cancel()
        logger.info(f'payment channel {event.channel_id.hex()} was settled')

    async def _submit(self, channel_id: bytes, restore_transaction: FundingTransaction) -> None:
        """
        submission never settles the open call, the ledger event does;
        failures are logged and optionally reconciled against the ledger
        """
        signature = restore_transaction.counterparty_signature
        try:
            response = await self.context.ledger.submit_funding_transaction(
                nonce=restore_transaction.nonce,
                value=restore_transaction.value,
                sig_r=signature[:32],
                sig_s=signature[32:64],
                v=restore_transaction.counterparty_recovery + 27,
            )
            error_message = None if response.submitted else response.error_message
        except Exception as e:
            error_message = str(e) or type(e).__name__

        if error_message is None:
            logger.info(f'submitted funding transaction for channel {channel_id.hex()}')
            return

        error = SubmissionError(
            f"Opening transaction for channel {channel_id.hex()} failed due to "
            f"'{error_message}'.")
        logger.error(str(error))

        if self.context.settings.reconcile_on_submit_failure:
            try:
                await self.reconcile(channel_id)
            except ChannelOpenError as e:
                logger.error(f'could not reconcile channel {channel_id.hex()}: {e}')

    async def reconcile(self, channel_id: bytes) -> Optional[ChannelRecord]:
        """
        Bring a record stuck at OPENING in line with the ledger.

        ACTIVE on-chain commits OPEN from the on-chain balances and resolves
        a pending open call; PENDING_SETTLEMENT withdraws; anything else
        leaves the record as it is.
        """
        record = await self.context.store.get(channel_id)
        if record is None:
            logger.warning(f'no local record for channel {channel_id.hex()}')
            return None

        network_state = await self.context.ledger.query_channel_state(channel_id)
        logger.info(
            f'On-chain state of channel {channel_id.hex()} is '
            f'{network_state.state.name}. Recovering state...')

        if network_state.state == LedgerChannelState.ACTIVE:
            if record.state == RecordState.OPEN:
                self._watch_settlement(channel_id)
                return record
            if not self._is_countersigned(record):
                raise InvalidSignatureError(
                    f'Channel {channel_id.hex()} is active on-chain but the local '
                    'restore transaction lacks a valid counterparty signature.')
            record = await self._commit_open(
                channel_id, network_state.balance, network_state.balance_a)
            pending = self._pending.get(channel_id)
            if pending is not None and not pending.done():
                pending.set_result(record)
            self._watch_settlement(channel_id)
            return record

        if network_state.state == LedgerChannelState.PENDING_SETTLEMENT:
            withdrawal = await self.context.ledger.withdraw(channel_id)
            if withdrawal.withdrawn:
                logger.info(f'withdrew from channel {channel_id.hex()}')
            else:
                logger.error(
                    f'could not withdraw from channel {channel_id.hex()}: '
                    f'{withdrawal.error_message}')
            return record

        logger.warning(
            f'channel {channel_id.hex()} stays at {record.state}, on-chain state is '
            f'{network_state.state.name}')
        return record

    @staticmethod
    def _is_countersigned(record: ChannelRecord) -> bool:
        """the other party's signature on the record recovers to its key"""
        tx = record.restore_transaction
        if tx is None or not tx.is_fully_signed:
            return False
        try:
            # on the answering side our own signature sits in the
            # counterparty fields and the initiator's in `signature`
            signer = tx.signer() if record.pre_opened else tx.counterparty_signer()
        except ValueError:
            return False
        return signer == record.counterparty

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def close(self) -> None:
        """cancel background submissions, pending opens and listeners"""
        for pending in list(self._pending.values()):
            pending.cancel()
        for subscription in list(self._settlement_subscriptions.values()):
            subscription.cancel()
        self._settlement_subscriptions.clear()
        for task in list(self._tasks):
            task.cancel()
        for task in list(self._tasks):
            with contextlib.suppress(asyncio.CancelledError):
                await task
