from dataclasses import dataclass, field
from typing import Dict, Optional

from chanopen.ledger.base import LedgerBase
from chanopen.peer.identity import LocalIdentity
from chanopen.peer.transport import DialerBase
from chanopen.settings import ChannelSettings, PROTOCOL_PAYMENT_CHANNEL
from chanopen.store.base import StateStoreBase


@dataclass
class OpeningContext:
    """everything the opening components need, handed in explicitly"""
    identity: LocalIdentity
    ledger: LedgerBase
    store: StateStoreBase
    dialer: Optional[DialerBase] = None
    settings: ChannelSettings = field(default_factory=ChannelSettings)
    peer_book: Dict[str, str] = field(default_factory=dict)
    protocol: str = PROTOCOL_PAYMENT_CHANNEL
