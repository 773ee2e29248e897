import json
import pytest

from chanopen.errors import ConnectivityError
from chanopen.peer.identity import PeerIdentity, resolve_counterparty
from chanopen.peer.keyhandler import KeyHandler


def test_from_uri_full(bob):
    peer = PeerIdentity.from_uri(f'{bob.pubkey.hex()}@127.0.0.1:9735')
    assert peer.pubkey == bob.pubkey
    assert peer.hostport == '127.0.0.1:9735'
    assert str(peer) == f'{bob.pubkey.hex()}@127.0.0.1:9735'


def test_from_uri_variants(bob):
    assert PeerIdentity.from_uri(bob.pubkey.hex()).hostport is None
    assert PeerIdentity.from_uri('localhost:9735').pubkey is None
    assert PeerIdentity.from_uri('[::1]:9735').host == '::1'


@pytest.mark.parametrize('uri', [
    'abc@127.0.0.1:9735',
    '127.0.0.1',
    '127.0.0.1:port',
    'example.com:9735',
    '05' + 'ab' * 32 + '@127.0.0.1:9735',
])
def test_from_uri_invalid(uri):
    with pytest.raises(ValueError):
        PeerIdentity.from_uri(uri)


def test_resolve_from_peer_book(bob):
    peer = resolve_counterparty('127.0.0.1:9735', {'127.0.0.1:9735': bob.pubkey.hex()})
    assert peer.pubkey == bob.pubkey
    assert peer.address == bob.address


def test_resolve_missing_key():
    with pytest.raises(ConnectivityError):
        resolve_counterparty('127.0.0.1:9735', {})


def test_resolve_invalid_book_entry():
    with pytest.raises(ConnectivityError):
        resolve_counterparty('127.0.0.1:9735', {'127.0.0.1:9735': 'zz'})


def test_resolve_unparsable():
    with pytest.raises(ConnectivityError):
        resolve_counterparty('not a peer')


def test_key_handler_writes_and_reuses(tmp_path):
    filename = str(tmp_path / 'keys.json')

    first = KeyHandler(filename=filename, reuse_keys=True, write_keys=True).identity
    again = KeyHandler(filename=filename, reuse_keys=True, write_keys=True).identity
    fresh = KeyHandler(filename=filename, reuse_keys=False, write_keys=True).identity

    assert again.pubkey == first.pubkey
    assert fresh.pubkey != first.pubkey
    with open(filename) as f:
        keys = json.load(f)['keys']
    assert [k['pubkey'] for k in keys] == [first.pubkey.hex(), fresh.pubkey.hex()]


def test_key_handler_without_writing(tmp_path):
    filename = tmp_path / 'keys.json'
    KeyHandler(filename=str(filename), reuse_keys=True, write_keys=False)
    assert not filename.exists()
