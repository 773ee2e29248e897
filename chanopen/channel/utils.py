import coincurve
from eth_utils import keccak, to_checksum_address
from pydantic import BeforeValidator, PlainSerializer
from typing_extensions import Annotated

COMPRESSED_CURVE_POINT_LENGTH = 33
ADDRESS_LENGTH = 20


def _bytes_from_hex(v):
    if isinstance(v, str):
        return bytes.fromhex(v.removeprefix('0x'))
    return v


# bytes in python, hex strings in json
HexBytes = Annotated[
    bytes,
    BeforeValidator(_bytes_from_hex),
    PlainSerializer(lambda v: v.hex(), return_type=str, when_used='json'),
]


def number_to_bytes(value: int, length: int) -> bytes:
    return value.to_bytes(length, 'big')


def bytes_to_number(data: bytes) -> int:
    return int.from_bytes(data, 'big')


def pubkey_to_address(pubkey: bytes) -> bytes:
    """
    ledger address of a compressed secp256k1 key: the last 20 bytes of the
    keccak256 hash of the uncompressed point without its 0x04 prefix
    """
    uncompressed = coincurve.PublicKey(pubkey).format(compressed=False)
    return keccak(uncompressed[1:])[-ADDRESS_LENGTH:]


def pubkey_to_checksum_address(pubkey: bytes) -> str:
    return to_checksum_address(pubkey_to_address(pubkey))


def get_channel_id(address_a: bytes, address_b: bytes) -> bytes:
    """
    both parties derive the same id, the lower address always goes first
    """
    first, second = sorted([address_a, address_b])
    return keccak(first + second)


def recover_public_key(digest: bytes, signature: bytes, recovery: int) -> bytes:
    """
    compressed public key that produced `signature` over `digest`

    raises ValueError when the signature or recovery id cannot be recovered
    """
    recoverable = signature + bytes([recovery])
    pubkey = coincurve.PublicKey.from_signature_and_message(
        recoverable, digest, hasher=None)
    return pubkey.format(compressed=True)


def is_valid_pubkey(pubkey: bytes) -> bool:
    if len(pubkey) != COMPRESSED_CURVE_POINT_LENGTH:
        return False
    try:
        coincurve.PublicKey(pubkey)
    except ValueError:
        return False
    return True
