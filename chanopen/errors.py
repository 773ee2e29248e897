"""
Exceptions raised while opening a payment channel.

Every failure an `open` call can end with is a `ChannelOpenError`. Components
raise them without channel context; the opener re-raises the same class with
`with_context` so the caller sees which channel and which counterparty the
failure belongs to.
"""
from typing import Optional


class ChannelOpenError(Exception):
    """
    Base class for channel opening failures.

    Attributes:
        message: human readable reason
        code: error code, defaults to the class name
        details: extra data for logging or the API
        channel_id: hex channel id, when known
        counterparty: hex public key of the counterparty, when known
    """

    def __init__(
            self,
            message: str,
            code: Optional[str] = None,
            details: Optional[dict] = None,
            channel_id: Optional[str] = None,
            counterparty: Optional[str] = None):
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        self.channel_id = channel_id
        self.counterparty = counterparty
        super().__init__(self.message)

    def with_context(self, channel_id: bytes, counterparty: bytes) -> "ChannelOpenError":
        """copy of this error whose message names the channel and the peer"""
        channel_hex = channel_id.hex()
        counterparty_hex = counterparty.hex()
        return self.__class__(
            f'Could not open payment channel {channel_hex} to counterparty '
            f'{counterparty_hex}: {self.message}',
            code=self.code,
            details=self.details,
            channel_id=channel_hex,
            counterparty=counterparty_hex,
        )

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "message": self.message,
            "channel_id": self.channel_id,
            "counterparty": self.counterparty,
            "details": self.details,
        }

    def __str__(self) -> str:
        return self.message


class PreconditionError(ChannelOpenError):
    """on-chain entry already exists or a party has not staked enough"""


class ConnectivityError(ChannelOpenError):
    """the counterparty could not be resolved, dialed or kept the stream"""


class MalformedReplyError(ChannelOpenError):
    """the counterparty answered with a frame of the wrong shape"""


class InvalidSignatureError(ChannelOpenError):
    """the counterparty signature does not recover to its public key"""


class OpeningTimeoutError(ChannelOpenError):
    """no opening confirmation from the ledger within the opening window"""


class SubmissionError(ChannelOpenError):
    """the ledger rejected the funding transaction"""


class OpeningInProgressError(ChannelOpenError):
    """another open call for the same channel id has not finished yet"""


class LedgerError(ChannelOpenError):
    """the ledger could not be queried"""


class FrameTooLongError(ValueError):
    """a length prefix announced more bytes than the reader accepts"""

    def __init__(self, length: int, max_length: int):
        self.length = length
        self.max_length = max_length
        super().__init__(f'frame of {length} bytes exceeds maximum of {max_length} bytes')
