import asyncio
import logging

from eth_utils import from_wei

from chanopen.channel.record import LedgerChannelState
from chanopen.errors import PreconditionError
from chanopen.ledger.base import LedgerBase
from chanopen.peer.identity import LocalIdentity, PeerIdentity

logger = logging.getLogger(name=__name__)


class PreconditionChecker:
    def __init__(
            self,
            identity: LocalIdentity,
            ledger: LedgerBase,
            min_fund: int):
        self.identity = identity
        self.ledger = ledger
        self.min_fund = min_fund

    async def check_request(self, channel_id: bytes, counterparty: PeerIdentity) -> None:
        """
        Check that there is no on-chain entry for the channel yet and that
        both parties have staked at least the minimum funding.

        The three ledger reads run concurrently; any failing read aborts the
        check.

        Raises:
            PreconditionError: for the first condition that does not hold
        """
        own_state, counterparty_state, channel_state = await asyncio.gather(
            self.ledger.query_party_state(self.identity.address),
            self.ledger.query_party_state(counterparty.address),
            self.ledger.query_channel_state(channel_id),
        )

        if channel_state.state != LedgerChannelState.UNINITIALIZED:
            raise PreconditionError(
                f'Found an on-chain entry for channel {channel_id.hex()} with '
                f"state '{channel_state.state.name}'. Entry should be empty.",
                details={'ledger_state': channel_state.state.name})

        if own_state.staked_funds < self.min_fund:
            raise PreconditionError(
                f'Own staked funds (currently {from_wei(own_state.staked_funds, "ether")} ETH) '
                f'is less than minimum funding {from_wei(self.min_fund, "ether")} ETH.',
                details={'staked_funds': own_state.staked_funds, 'min_fund': self.min_fund})

        if counterparty_state.staked_funds < self.min_fund:
            raise PreconditionError(
                "Counterparty's staked funds (currently "
                f'{from_wei(counterparty_state.staked_funds, "ether")} ETH) '
                f'is less than minimum funding {from_wei(self.min_fund, "ether")} ETH.',
                details={
                    'staked_funds': counterparty_state.staked_funds,
                    'min_fund': self.min_fund,
                })

        logger.debug(f'preconditions hold for channel {channel_id.hex()}')
