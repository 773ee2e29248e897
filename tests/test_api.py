import pytest
from fastapi.testclient import TestClient

from chanopen.api.app import app
from chanopen.api.utils import get_channel_opener
from chanopen.errors import ConnectivityError

from conftest import FUND


@pytest.fixture
def client(opener):
    app.dependency_overrides[get_channel_opener] = lambda: opener
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_open_channel(client, bob, channel_id):
    response = client.post('/channels/open', json={'counterparty': f'{bob.pubkey.hex()}@127.0.0.1:9999'})

    assert response.status_code == 200
    body = response.json()
    assert body['state'] == 'OPEN'
    assert body['channel_id'] == channel_id.hex()
    assert body['counterparty'] == bob.pubkey.hex()
    assert body['total_balance'] == 2 * FUND

    response = client.get(f'/channels/{channel_id.hex()}')
    assert response.status_code == 200
    assert response.json()['state'] == 'OPEN'


def test_open_precondition_failure(client, ledger, bob, channel_id):
    ledger.stakes[bob.address] = 0

    response = client.post('/channels/open', json={'counterparty': f'{bob.pubkey.hex()}@127.0.0.1:9999'})

    assert response.status_code == 409
    detail = response.json()['detail']
    assert detail['error'] == 'PreconditionError'
    assert detail['channel_id'] == channel_id.hex()
    assert detail['counterparty'] == bob.pubkey.hex()


def test_open_unreachable_counterparty(client, dialer, bob):
    dialer.error = ConnectivityError('connection refused')

    response = client.post('/channels/open', json={'counterparty': f'{bob.pubkey.hex()}@127.0.0.1:9999'})

    assert response.status_code == 502
    assert response.json()['detail']['error'] == 'ConnectivityError'


def test_open_timeout(client, ledger, channel_settings, bob):
    ledger.emit_opened = False
    channel_settings.opening_timeout_seconds = 0.1

    response = client.post('/channels/open', json={'counterparty': f'{bob.pubkey.hex()}@127.0.0.1:9999'})

    assert response.status_code == 504


def test_get_unknown_channel(client):
    assert client.get('/channels/' + '00' * 32).status_code == 404


def test_get_invalid_channel_id(client):
    assert client.get('/channels/not-hex').status_code == 400


def test_reconcile_unknown_channel(client):
    assert client.post('/channels/' + '00' * 32 + '/reconcile').status_code == 404


def test_node_not_running():
    app.dependency_overrides.clear()
    response = TestClient(app).get('/channels/' + '00' * 32)
    assert response.status_code == 503
