import asyncio
import logging

from chanopen.channel.transaction import (
    FundingTransaction,
    REPLY_LENGTH,
    SIGNATURE_LENGTH,
)
from chanopen.channel.utils import recover_public_key
from chanopen.errors import (
    ConnectivityError,
    FrameTooLongError,
    InvalidSignatureError,
    MalformedReplyError,
)
from chanopen.peer.identity import PeerIdentity
from chanopen.peer.transport import PeerStream
from chanopen.settings import ChannelSettings

logger = logging.getLogger(name=__name__)


class CounterpartyExchange:
    """
    Sends the signed restore transaction to the counterparty and waits for a
    signature from that party, at most `reply_timeout` seconds.
    """
    def __init__(self, reply_timeout: float = ChannelSettings().opening_timeout_seconds):
        self.reply_timeout = reply_timeout

    async def exchange(
            self,
            counterparty: PeerIdentity,
            stream: PeerStream,
            transaction: FundingTransaction) -> FundingTransaction:
        """
        One request frame out, one reply frame in. The stream is closed
        after the first reply whatever it contains, later frames are never
        read.

        Returns:
            a copy of `transaction` carrying the counterparty signature

        Raises:
            MalformedReplyError: reply is not signature || recovery byte
            InvalidSignatureError: reply does not recover to the counterparty key
            ConnectivityError: stream failed, ended or stayed silent without a reply
        """
        try:
            try:
                await stream.send(transaction.to_bytes())
                data = await asyncio.wait_for(
                    stream.receive(max_length=REPLY_LENGTH), self.reply_timeout)
            except asyncio.TimeoutError:
                raise ConnectivityError(
                    f'Counterparty {counterparty} did not answer within '
                    f'{self.reply_timeout} seconds.')
            except FrameTooLongError as e:
                raise MalformedReplyError(
                    f'Counterparty {counterparty} answered with an invalid message ({e}). '
                    'Dropping message.')
            except (OSError, asyncio.IncompleteReadError, ValueError) as e:
                raise ConnectivityError(
                    f"Stream to counterparty {counterparty} failed due to "
                    f"'{e or type(e).__name__}'.")
        finally:
            await stream.close()

        if data is None:
            raise ConnectivityError(
                f'Counterparty {counterparty} closed the stream without answering.')

        if len(data) != REPLY_LENGTH:
            raise MalformedReplyError(
                f'Counterparty {counterparty} answered with an invalid message '
                f'of {len(data)} bytes. Dropping message.',
                details={'length': len(data), 'expected': REPLY_LENGTH})

        signature = data[:SIGNATURE_LENGTH]
        recovery = data[SIGNATURE_LENGTH]
        try:
            recovered = recover_public_key(transaction.hash, signature, recovery)
        except ValueError:
            recovered = None

        if recovered != counterparty.pubkey:
            raise InvalidSignatureError(
                f'Counterparty {counterparty} answered with an invalid signature. '
                'Dropping message.')

        logger.debug(f'received valid signature from {counterparty}')
        return transaction.with_counterparty_signature(signature, recovery)
