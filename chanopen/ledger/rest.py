import asyncio
import contextlib
import httpx
import json
import logging
from typing import Optional

from chanopen.channel.record import LedgerChannelState
from chanopen.errors import LedgerError
from chanopen.ledger.base import LedgerBase
from chanopen.ledger.events import ChannelEventManager
from chanopen.ledger.requesthandlers import (
    ChannelStateResponse,
    LedgerEvent,
    PartyStateResponse,
    SubmitResponse,
    WithdrawResponse,
)
from chanopen.settings import LedgerSettings

logger = logging.getLogger(name=__name__)


class RestLedger(LedgerBase):
    """
    Talks to a REST gateway in front of the payment channel contract.

    Reads raise LedgerError when the gateway cannot answer; writes report
    failures through the `error_message` of their response instead.
    """
    def __init__(
            self,
            rest_host: str,
            timeout: float = LedgerSettings().ledger_timeout_seconds,
            transport: Optional[httpx.AsyncBaseTransport] = None):
        self.rest_host = rest_host
        self.events = ChannelEventManager()
        http_timeout = httpx.Timeout(connect=5.0, read=timeout, write=5.0, pool=None)
        self.http_client = httpx.AsyncClient(
            base_url=self.rest_host,
            timeout=http_timeout,
            transport=transport,
        )
        self._task: Optional[asyncio.Task] = None

    async def _get_json(self, endpoint: str) -> dict:
        try:
            r = await self.http_client.get(endpoint)
        except httpx.HTTPError as e:
            raise LedgerError(f'could not reach ledger at {self.rest_host}: {e}')

        if r.is_error:
            raise LedgerError(
                f'ledger answered {r.status_code} for {endpoint}: {r.text[:200]}')
        try:
            data = r.json()
        except ValueError:
            raise LedgerError(
                f'ledger answered {endpoint} with a non json body: {r.text[:200]}')
        if not isinstance(data, dict):
            raise LedgerError(f'ledger answered {endpoint} with unexpected json: {data}')
        return data

    @staticmethod
    def _tx_hash(r: httpx.Response) -> Optional[str]:
        # an empty or unparsable body still means the gateway accepted the
        # transaction
        try:
            return r.json().get('tx_hash')
        except (ValueError, AttributeError):
            return None

    async def query_party_state(self, address: bytes) -> PartyStateResponse:
        """
        GET /v1/accounts/{address}
        """
        endpoint = f'/v1/accounts/0x{address.hex()}'
        data = await self._get_json(endpoint)
        try:
            return PartyStateResponse(staked_funds=int(data.get('staked_funds', 0)))
        except (ValueError, TypeError) as e:
            raise LedgerError(f'ledger answered {endpoint} with an invalid account state: {e}')

    async def query_channel_state(self, channel_id: bytes) -> ChannelStateResponse:
        """
        GET /v1/channels/{channel_id}
        """
        endpoint = f'/v1/channels/0x{channel_id.hex()}'
        data = await self._get_json(endpoint)
        try:
            return ChannelStateResponse(
                state=LedgerChannelState(int(data.get('state', 0))),
                balance=int(data.get('balance', 0)),
                balance_a=int(data.get('balance_a', 0)),
            )
        except (ValueError, TypeError) as e:
            raise LedgerError(f'ledger answered {endpoint} with an invalid channel state: {e}')

    async def submit_funding_transaction(
            self,
            nonce: bytes,
            value: int,
            sig_r: bytes,
            sig_s: bytes,
            v: int) -> SubmitResponse:
        """
        POST /v1/channels/funded
        """
        data = {
            'nonce': f'0x{nonce.hex()}',
            'value': str(value),
            'r': f'0x{sig_r.hex()}',
            's': f'0x{sig_s.hex()}',
            'v': v,
        }
        try:
            r = await self.http_client.post('/v1/channels/funded', json=data)
        except httpx.HTTPError as e:
            msg = f'could not submit funding transaction: {e}'
            logger.error(msg)
            return SubmitResponse(submitted=False, error_message=msg)

        if r.is_error:
            error_message = r.text
            with contextlib.suppress(ValueError, AttributeError):
                error_message = r.json().get('message', error_message)
            return SubmitResponse(submitted=False, error_message=error_message)

        return SubmitResponse(submitted=True, tx_hash=self._tx_hash(r))

    async def withdraw(self, channel_id: bytes) -> WithdrawResponse:
        """
        POST /v1/channels/{channel_id}/withdraw
        """
        try:
            r = await self.http_client.post(f'/v1/channels/0x{channel_id.hex()}/withdraw')
        except httpx.HTTPError as e:
            msg = f'could not withdraw from channel {channel_id.hex()}: {e}'
            logger.error(msg)
            return WithdrawResponse(withdrawn=False, error_message=msg)

        if r.is_error:
            return WithdrawResponse(withdrawn=False, error_message=r.text[:200])

        return WithdrawResponse(withdrawn=True, tx_hash=self._tx_hash(r))

    async def consume_events(self) -> None:
        """
        GET /v1/events/subscribe

        line delimited json, one `{"result": {...}}` or `{"error": ...}` per
        line, dispatched to the registered listeners
        """
        try:
            async with self.http_client.stream("GET", '/v1/events/subscribe', timeout=None) as r:
                async for json_line in r.aiter_lines():
                    if not json_line.strip():
                        continue
                    try:
                        line = json.loads(json_line)
                        if line.get('error'):
                            logger.error(f'error line from ledger event stream: {line}')
                            continue
                        event = LedgerEvent.model_validate(line.get('result'))
                    except (ValueError, AttributeError) as e:
                        # if some line is garbage then listen for the next one
                        logger.error(f'unparsable ledger event, skipping: {e}')
                        continue
                    logger.debug(f'ledger event {event.event.value} for {event.channel_id.hex()}')
                    self.events.dispatch(event)
        except httpx.HTTPError as e:
            logger.error(f'ledger event stream at {self.rest_host} failed: {e}')
            return

        logger.warning('ledger event stream closed')

    def start(self) -> None:
        """Begin relaying ledger events to subscriptions."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.consume_events())

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self.events.cancel_all()

    async def close_rest_client(self) -> None:
        try:
            await self.http_client.aclose()
        except RuntimeError as e:
            logger.error(f"Could not close rest client: {e}")
