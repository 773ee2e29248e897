import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, Optional, Set

from chanopen.errors import ConnectivityError, FrameTooLongError
from chanopen.peer.framing import DEFAULT_MAX_LENGTH, encode_frame, read_frame
from chanopen.peer.identity import PeerIdentity
from chanopen.settings import TransportSettings

logger = logging.getLogger(name=__name__)

MAX_PROTOCOL_ID_LENGTH = 256
PROTOCOL_NOT_AVAILABLE = b'na'


class PeerStream:
    """
    a bidirectional stream of length-prefixed frames for one sub-protocol
    """
    def __init__(
            self,
            reader: asyncio.StreamReader,
            writer: asyncio.StreamWriter,
            protocol: Optional[str] = None):
        self.reader = reader
        self.writer = writer
        self.protocol = protocol
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, payload: bytes) -> None:
        self.writer.write(encode_frame(payload))
        await self.writer.drain()

    async def receive(self, max_length: int = DEFAULT_MAX_LENGTH) -> Optional[bytes]:
        """next frame, None once the remote side has closed the stream"""
        return await read_frame(self.reader, max_length=max_length)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.writer.close()
        with contextlib.suppress(ConnectionError):
            await self.writer.wait_closed()


class DialerBase(ABC):
    @abstractmethod
    async def dial(self, peer: PeerIdentity, protocol: str) -> PeerStream:
        """open a stream to `peer` speaking `protocol`"""


class TcpDialer(DialerBase):
    """
    dial peers over plain TCP; the dialer proposes the protocol id as the
    first frame and the listener echoes it back to accept
    """
    def __init__(self, timeout: float = TransportSettings().dial_timeout_seconds):
        self.timeout = timeout

    async def dial(self, peer: PeerIdentity, protocol: str) -> PeerStream:
        if peer.hostport is None:
            raise ConnectivityError(f'No address known for peer {peer}')

        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(peer.host, peer.port),
                timeout=self.timeout)
        except (OSError, asyncio.TimeoutError) as e:
            raise ConnectivityError(
                f"Could not connect to peer {peer} due to '{e or type(e).__name__}'")

        stream = PeerStream(reader, writer, protocol=protocol)
        try:
            await stream.send(protocol.encode())
            answer = await asyncio.wait_for(
                stream.receive(max_length=MAX_PROTOCOL_ID_LENGTH),
                timeout=self.timeout)
        except (OSError, asyncio.TimeoutError, asyncio.IncompleteReadError,
                FrameTooLongError, ValueError) as e:
            await stream.close()
            raise ConnectivityError(
                f"Could not negotiate {protocol} with peer {peer} due to "
                f"'{e or type(e).__name__}'")

        if answer != protocol.encode():
            await stream.close()
            raise ConnectivityError(f'Peer {peer} does not support {protocol}')

        logger.debug(f'opened {protocol} stream to {peer}')
        return stream


StreamHandler = Callable[[PeerStream], Awaitable[None]]


class ProtocolServer:
    """
    accepts TCP connections and hands each one to the handler registered
    for the protocol id the dialer proposes
    """
    def __init__(
            self,
            host: str = TransportSettings().listen_host,
            port: int = TransportSettings().listen_port,
            negotiation_timeout: float = TransportSettings().dial_timeout_seconds):
        self.host = host
        self.port = port
        self.negotiation_timeout = negotiation_timeout
        self.handlers: Dict[str, StreamHandler] = {}
        self._server: Optional[asyncio.base_events.Server] = None
        self._connections: Set[asyncio.Task] = set()

    def handle(self, protocol: str, handler: StreamHandler) -> None:
        self.handlers[protocol] = handler

    @property
    def bound_port(self) -> Optional[int]:
        if not self._server or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> None:
        if self._server is None:
            self._server = await asyncio.start_server(
                self._on_connection, self.host, self.port)
            logger.info(f'listening on {self.host}:{self.bound_port}')

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        for task in list(self._connections):
            task.cancel()
        for task in list(self._connections):
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._server.wait_closed()
        self._server = None

    async def _on_connection(
            self,
            reader: asyncio.StreamReader,
            writer: asyncio.StreamWriter) -> None:
        task = asyncio.current_task()
        self._connections.add(task)
        stream = PeerStream(reader, writer)
        try:
            try:
                proposed = await asyncio.wait_for(
                    stream.receive(max_length=MAX_PROTOCOL_ID_LENGTH),
                    timeout=self.negotiation_timeout)
            except (OSError, asyncio.TimeoutError, asyncio.IncompleteReadError,
                    FrameTooLongError, ValueError) as e:
                logger.debug(f'dropping connection during negotiation: {e!r}')
                return

            if proposed is None:
                return
            protocol = proposed.decode(errors='replace')
            handler = self.handlers.get(protocol)
            if handler is None:
                logger.warning(f'peer proposed unsupported protocol {protocol}')
                await stream.send(PROTOCOL_NOT_AVAILABLE)
                return

            await stream.send(proposed)
            stream.protocol = protocol
            try:
                await handler(stream)
            except Exception as e:
                logger.error(f'error handling {protocol} stream: {e}', exc_info=True)
        finally:
            await stream.close()
            self._connections.discard(task)
