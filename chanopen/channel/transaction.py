"""
The funding ("restore") transaction both parties sign before a channel is
created on-chain.

Wire layout, no delimiters:

    nonce (32) | index (16) | value (32) | counterparty key (33) | signature (64) | recovery (1)

The first four fields form the body, whose keccak256 hash is what both
parties sign. Only the initiator's signature travels with the request; the
counterparty's signature comes back in the reply and is attached afterwards.
"""
import secrets
from eth_utils import keccak
from pydantic import BaseModel, Field, field_validator
from typing import Optional

from chanopen.channel.utils import (
    COMPRESSED_CURVE_POINT_LENGTH,
    HexBytes,
    bytes_to_number,
    number_to_bytes,
    recover_public_key,
)

NONCE_LENGTH = 32
INDEX_LENGTH = 16
VALUE_LENGTH = 32
SIGNATURE_LENGTH = 64
RECOVERY_LENGTH = 1

INITIAL_CHANNEL_INDEX = 1
# the all-zero point stands for the neutral element of the group
NEUTRAL_ELEMENT = bytes(COMPRESSED_CURVE_POINT_LENGTH)

BODY_LENGTH = NONCE_LENGTH + INDEX_LENGTH + VALUE_LENGTH + COMPRESSED_CURVE_POINT_LENGTH
WIRE_LENGTH = BODY_LENGTH + SIGNATURE_LENGTH + RECOVERY_LENGTH
REPLY_LENGTH = SIGNATURE_LENGTH + RECOVERY_LENGTH


class FundingTransaction(BaseModel):
    nonce: HexBytes
    index: int = INITIAL_CHANNEL_INDEX
    value: int
    counterparty_key: HexBytes = NEUTRAL_ELEMENT
    signature: Optional[HexBytes] = Field(default=None)
    recovery: Optional[int] = Field(default=None)
    counterparty_signature: Optional[HexBytes] = Field(default=None)
    counterparty_recovery: Optional[int] = Field(default=None)

    @field_validator('nonce')
    def validate_nonce(cls, v: bytes) -> bytes:
        if len(v) != NONCE_LENGTH:
            raise ValueError(f'nonce must be {NONCE_LENGTH} bytes')
        return v

    @field_validator('index')
    def validate_index(cls, v: int) -> int:
        if not 0 <= v < 2 ** (8 * INDEX_LENGTH):
            raise ValueError(f'index does not fit in {INDEX_LENGTH} bytes')
        return v

    @field_validator('value')
    def validate_value(cls, v: int) -> int:
        if not 0 <= v < 2 ** (8 * VALUE_LENGTH):
            raise ValueError(f'value does not fit in {VALUE_LENGTH} bytes')
        return v

    @field_validator('counterparty_key')
    def validate_counterparty_key(cls, v: bytes) -> bytes:
        if len(v) != COMPRESSED_CURVE_POINT_LENGTH:
            raise ValueError(
                f'counterparty key must be {COMPRESSED_CURVE_POINT_LENGTH} bytes')
        return v

    @field_validator('signature', 'counterparty_signature')
    def validate_signature(cls, v: Optional[bytes]) -> Optional[bytes]:
        if v is not None and len(v) != SIGNATURE_LENGTH:
            raise ValueError(f'signature must be {SIGNATURE_LENGTH} bytes')
        return v

    @field_validator('recovery', 'counterparty_recovery')
    def validate_recovery(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and not 0 <= v <= 255:
            raise ValueError('recovery must fit in one byte')
        return v

    @classmethod
    def create(cls, value: int, index: int = INITIAL_CHANNEL_INDEX) -> "FundingTransaction":
        return cls(
            nonce=secrets.token_bytes(NONCE_LENGTH),
            index=index,
            value=value,
            counterparty_key=NEUTRAL_ELEMENT,
        )

    def body(self) -> bytes:
        return (
            self.nonce
            + number_to_bytes(self.index, INDEX_LENGTH)
            + number_to_bytes(self.value, VALUE_LENGTH)
            + self.counterparty_key
        )

    @property
    def hash(self) -> bytes:
        return keccak(self.body())

    @property
    def is_signed(self) -> bool:
        return self.signature is not None and self.recovery is not None

    @property
    def has_counterparty_signature(self) -> bool:
        return (
            self.counterparty_signature is not None
            and self.counterparty_recovery is not None
        )

    @property
    def is_fully_signed(self) -> bool:
        return self.is_signed and self.has_counterparty_signature

    def sign(self, identity) -> "FundingTransaction":
        """sign the body hash with `identity`, a transaction is signed only once"""
        if self.is_signed:
            raise ValueError('transaction is already signed')
        self.signature, self.recovery = identity.sign(self.hash)
        return self

    def signer(self) -> bytes:
        """compressed key of whoever produced `signature`"""
        if not self.is_signed:
            raise ValueError('transaction is not signed')
        return recover_public_key(self.hash, self.signature, self.recovery)

    def counterparty_signer(self) -> bytes:
        if not self.has_counterparty_signature:
            raise ValueError('transaction carries no counterparty signature')
        return recover_public_key(
            self.hash,
            self.counterparty_signature,
            self.counterparty_recovery)

    def with_counterparty_signature(
            self,
            signature: bytes,
            recovery: int) -> "FundingTransaction":
        return self.model_copy(update={
            'counterparty_signature': signature,
            'counterparty_recovery': recovery,
        })

    def to_bytes(self) -> bytes:
        if not self.is_signed:
            raise ValueError('only signed transactions are sent to a counterparty')
        return self.body() + self.signature + bytes([self.recovery])

    @classmethod
    def from_bytes(cls, data: bytes) -> "FundingTransaction":
        if len(data) != WIRE_LENGTH:
            raise ValueError(
                f'expected {WIRE_LENGTH} bytes, got {len(data)}')
        offset = 0

        def take(length: int) -> bytes:
            nonlocal offset
            chunk = data[offset:offset + length]
            offset += length
            return chunk

        return cls(
            nonce=take(NONCE_LENGTH),
            index=bytes_to_number(take(INDEX_LENGTH)),
            value=bytes_to_number(take(VALUE_LENGTH)),
            counterparty_key=take(COMPRESSED_CURVE_POINT_LENGTH),
            signature=take(SIGNATURE_LENGTH),
            recovery=take(RECOVERY_LENGTH)[0],
        )
