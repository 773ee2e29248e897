import coincurve
import ipaddress
import logging
from pydantic import BaseModel, Field, field_validator
from typing import Dict, Optional, Tuple, Union

from chanopen.channel.utils import (
    HexBytes,
    is_valid_pubkey,
    pubkey_to_address,
    pubkey_to_checksum_address,
)
from chanopen.errors import ConnectivityError
from chanopen.settings import PUBKEY_RE

logger = logging.getLogger(name=__name__)


class PeerIdentity(BaseModel):
    """
    who we talk to: a compressed secp256k1 key and, to dial it, a host:port

    the key may be missing when a peer is only known by its address, see
    `resolve_counterparty`
    """
    pubkey: Optional[HexBytes] = Field(default=None)
    host: Optional[str] = Field(default=None)
    port: Optional[int] = Field(default=None)

    @field_validator('pubkey')
    def validate_pubkey(cls, v: Optional[bytes]) -> Optional[bytes]:
        if v is not None and not is_valid_pubkey(v):
            raise ValueError('pubkey must be a 33-byte compressed secp256k1 point')
        return v

    @field_validator('port')
    def validate_port(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and not 1 <= v <= 65_535:
            raise ValueError("port must be 1–65535")
        return v

    @classmethod
    def from_uri(cls, uri: str) -> "PeerIdentity":
        """
        parse `<66-hex-pubkey>@<host>:<port>`, `<host>:<port>` or a bare
        `<66-hex-pubkey>`
        """
        pubkey, sep, hostport = uri.partition('@')
        if not sep:
            if PUBKEY_RE.fullmatch(uri):
                return cls(pubkey=bytes.fromhex(uri))
            pubkey, hostport = None, uri
        elif not PUBKEY_RE.fullmatch(pubkey):
            raise ValueError("pubkey must be exactly 66 hex characters")

        # split host / port by last colon (so IPv6 works)
        idx = hostport.rfind(":")
        if idx == -1:
            raise ValueError("missing port (expected host:port)")
        host = hostport[:idx].strip('[]')
        port_str = hostport[idx + 1:]
        if not port_str.isdigit():
            raise ValueError("port must be an integer")
        if host != 'localhost':
            try:
                ipaddress.ip_address(host)
            except ValueError:
                raise ValueError("host must be a valid IPv4 or IPv6 address")

        return cls(
            pubkey=bytes.fromhex(pubkey) if pubkey else None,
            host=host,
            port=int(port_str))

    @property
    def hostport(self) -> Optional[str]:
        if self.host is None or self.port is None:
            return None
        return f'{self.host}:{self.port}'

    @property
    def address(self) -> bytes:
        return pubkey_to_address(self.pubkey)

    @property
    def checksum_address(self) -> str:
        return pubkey_to_checksum_address(self.pubkey)

    def __str__(self):
        key = self.pubkey.hex() if self.pubkey else '<unknown key>'
        return f'{key}@{self.hostport}' if self.hostport else key


class LocalIdentity:
    """the signing identity of this node"""
    def __init__(self, private_key: coincurve.PrivateKey):
        self.private_key = private_key

    @classmethod
    def from_secret(cls, secret: bytes) -> "LocalIdentity":
        return cls(coincurve.PrivateKey(secret))

    @classmethod
    def generate(cls) -> "LocalIdentity":
        return cls(coincurve.PrivateKey())

    @property
    def pubkey(self) -> bytes:
        return self.private_key.public_key.format(compressed=True)

    @property
    def address(self) -> bytes:
        return pubkey_to_address(self.pubkey)

    @property
    def secret_hex(self) -> str:
        return self.private_key.secret.hex()

    def as_peer(self, host: Optional[str] = None, port: Optional[int] = None) -> PeerIdentity:
        return PeerIdentity(pubkey=self.pubkey, host=host, port=port)

    def sign(self, digest: bytes) -> Tuple[bytes, int]:
        """
        recoverable signature over a 32-byte digest as (r || s, recovery id)
        """
        recoverable = self.private_key.sign_recoverable(digest, hasher=None)
        return recoverable[:64], recoverable[64]


def resolve_counterparty(
        to: Union[PeerIdentity, str],
        peer_book: Optional[Dict[str, str]] = None) -> PeerIdentity:
    """
    make sure the counterparty comes with a usable public key, looking it up
    by host:port in the peer book when the caller only knows the address
    """
    if isinstance(to, str):
        try:
            to = PeerIdentity.from_uri(to)
        except ValueError as e:
            raise ConnectivityError(f"Could not parse counterparty '{to}': {e}")

    if to.pubkey is not None:
        return to

    pubkey_hex = (peer_book or {}).get(to.hostport) if to.hostport else None
    if not pubkey_hex:
        raise ConnectivityError(
            f'Could not obtain the public key of counterparty {to}')

    logger.debug(f'resolved {to.hostport} to {pubkey_hex} from peer book')
    try:
        pubkey = bytes.fromhex(pubkey_hex)
    except ValueError:
        pubkey = b''
    if not is_valid_pubkey(pubkey):
        raise ConnectivityError(f'Invalid public key {pubkey_hex} for {to.hostport}')
    return to.model_copy(update={'pubkey': pubkey})
