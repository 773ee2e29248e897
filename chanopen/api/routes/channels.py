from fastapi import APIRouter, Depends, HTTPException
import logging
from pydantic import BaseModel, Field
from typing import Optional

from chanopen.api.utils import get_channel_opener
from chanopen.channel.record import ChannelRecord
from chanopen.channel.transaction import FundingTransaction
from chanopen.cli.helpers import parse_channel_id
from chanopen.errors import (
    ChannelOpenError,
    ConnectivityError,
    InvalidSignatureError,
    LedgerError,
    MalformedReplyError,
    OpeningInProgressError,
    OpeningTimeoutError,
    PreconditionError,
    SubmissionError,
)
from chanopen.opening.opener import ChannelOpener

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/channels", tags=["Channels"])

ERROR_STATUS_CODES = {
    PreconditionError: 409,
    OpeningInProgressError: 409,
    ConnectivityError: 502,
    MalformedReplyError: 502,
    InvalidSignatureError: 502,
    SubmissionError: 502,
    LedgerError: 502,
    OpeningTimeoutError: 504,
}


class OpenChannelRequest(BaseModel):
    counterparty: str = Field(description="pubkey@host:port of the counterparty")
    restore_transaction: Optional[FundingTransaction] = Field(
        default=None,
        description="countersigned restore transaction to reuse instead of a handshake")


def to_http_exception(e: ChannelOpenError) -> HTTPException:
    status_code = next(
        (code for cls, code in ERROR_STATUS_CODES.items() if isinstance(e, cls)),
        500)
    return HTTPException(status_code=status_code, detail=e.to_dict())


def channel_id_or_400(channel_id: str) -> bytes:
    try:
        return parse_channel_id(channel_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid channel id: {e}")


@router.post("/open", response_model=ChannelRecord)
async def open_channel(
        request: OpenChannelRequest,
        opener: ChannelOpener = Depends(get_channel_opener)):
    """Open a payment channel and wait until the ledger confirms it"""
    try:
        return await opener.open(request.counterparty, request.restore_transaction)
    except ChannelOpenError as e:
        logger.error(f"Channel opening failed: {e}")
        raise to_http_exception(e)


@router.get("/{channel_id}", response_model=ChannelRecord)
async def get_channel(
        channel_id: str,
        opener: ChannelOpener = Depends(get_channel_opener)):
    record = await opener.context.store.get(channel_id_or_400(channel_id))
    if record is None:
        raise HTTPException(status_code=404, detail="Channel not found")
    return record


@router.post("/{channel_id}/reconcile", response_model=ChannelRecord)
async def reconcile_channel(
        channel_id: str,
        opener: ChannelOpener = Depends(get_channel_opener)):
    """Bring a channel stuck at OPENING in line with the ledger"""
    try:
        record = await opener.reconcile(channel_id_or_400(channel_id))
    except ChannelOpenError as e:
        raise to_http_exception(e)
    if record is None:
        raise HTTPException(status_code=404, detail="Channel not found")
    return record
