import logging
from typing import Optional

from chanopen.ledger.base import LedgerBase
from chanopen.ledger.rest import RestLedger
from chanopen.opening.context import OpeningContext
from chanopen.opening.opener import ChannelOpener
from chanopen.opening.responder import OpeningResponder
from chanopen.peer.keyhandler import KeyHandler
from chanopen.peer.transport import ProtocolServer, TcpDialer
from chanopen.settings import Settings
from chanopen.store.base import StateStoreBase
from chanopen.store.jsonfile import JsonFileStateStore

logger = logging.getLogger(name=__name__)


class Node:
    """
    Wires identity, ledger, store and transport into an opener and a
    responder for the CLI and the API.

    The ledger and store can be handed in, otherwise they are built from
    the settings.
    """

    def __init__(
            self,
            settings: Settings,
            ledger: Optional[LedgerBase] = None,
            store: Optional[StateStoreBase] = None):
        self.settings = settings
        self.identity = KeyHandler(
            filename=settings.active_keys_path,
            reuse_keys=settings.reuse_keys,
            write_keys=settings.write_keys,
        ).identity

        if ledger is None:
            if settings.ledger_rest_host is None:
                raise ValueError(
                    'No ledger configured, set LEDGER_REST_HOST in the environment or .env')
            ledger = RestLedger(
                rest_host=settings.ledger_rest_host.unicode_string(),
                timeout=settings.ledger_timeout_seconds)
        self.ledger = ledger
        self.store = store or JsonFileStateStore(file_path=settings.state_file_path)

        self.opener = ChannelOpener(OpeningContext(
            identity=self.identity,
            ledger=self.ledger,
            store=self.store,
            dialer=TcpDialer(timeout=settings.dial_timeout_seconds),
            settings=settings,
            peer_book=settings.peer_book(),
        ))
        self.responder = OpeningResponder(
            identity=self.identity,
            store=self.store,
            max_accepted_fund=settings.max_accepted_fund)
        self.server = ProtocolServer(
            host=settings.listen_host,
            port=settings.listen_port,
            negotiation_timeout=settings.dial_timeout_seconds)
        self.server.handle(self.opener.context.protocol, self.responder.handle)
        self.listening = False

    @property
    def uri(self) -> str:
        return str(self.identity.as_peer(self.settings.listen_host, self.server.bound_port))

    async def startup(self, listen: bool = False) -> None:
        """start relaying ledger events and, if asked, accept opening requests"""
        self.ledger.start()
        if listen:
            await self.server.start()
            self.listening = True
        logger.info(f'node {self.identity.pubkey.hex()} started')

    async def shutdown(self) -> None:
        await self.opener.close()
        if self.listening:
            await self.server.stop()
            self.listening = False
        await self.ledger.stop()
        if isinstance(self.ledger, RestLedger):
            await self.ledger.close_rest_client()
        logger.info(f'node {self.identity.pubkey.hex()} stopped')
