"""
Length-prefixed frames: an unsigned LEB128 varint holding the payload length,
followed by the payload.
"""
import asyncio
from typing import Optional

from chanopen.errors import FrameTooLongError

# a length never needs more than 9 varint bytes (63 bits)
MAX_VARINT_BYTES = 9
DEFAULT_MAX_LENGTH = 4 * 1024 * 1024


def varint_encode(i: int) -> bytes:
    """Encode a non-negative integer as an unsigned varint"""
    if i < 0:
        raise ValueError('varint must be non-negative')
    out = bytearray()
    while True:
        byte = i & 0x7F
        i >>= 7
        if i:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def varint_decode(data: bytes) -> tuple:
    """Decode a varint from the start of `data`, returns (value, bytes used)"""
    value = 0
    for n, byte in enumerate(data[:MAX_VARINT_BYTES]):
        value |= (byte & 0x7F) << (7 * n)
        if not byte & 0x80:
            return value, n + 1
    raise ValueError('truncated or oversized varint')


def encode_frame(payload: bytes) -> bytes:
    return varint_encode(len(payload)) + payload


async def read_varint(reader: asyncio.StreamReader) -> Optional[int]:
    """
    read one varint, None when the stream ends before the first byte
    """
    value = 0
    for n in range(MAX_VARINT_BYTES):
        raw = await reader.read(1)
        if not raw:
            if n == 0:
                return None
            raise asyncio.IncompleteReadError(partial=b'', expected=1)
        byte = raw[0]
        value |= (byte & 0x7F) << (7 * n)
        if not byte & 0x80:
            return value
    raise ValueError('varint longer than 9 bytes')


async def read_frame(
        reader: asyncio.StreamReader,
        max_length: int = DEFAULT_MAX_LENGTH) -> Optional[bytes]:
    """
    read one frame, None on a clean end of stream

    raises FrameTooLongError before reading the payload when the announced
    length exceeds `max_length`
    """
    length = await read_varint(reader)
    if length is None:
        return None
    if length > max_length:
        raise FrameTooLongError(length=length, max_length=max_length)
    if length == 0:
        return b''
    return await reader.readexactly(length)
