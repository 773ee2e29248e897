import pytest
from eth_utils import to_wei
from pydantic import ValidationError

from chanopen.settings import (
    ChannelSettings,
    Environment,
    EnvironmentSettings,
    LedgerSettings,
    TransportSettings,
)


def test_channel_defaults():
    settings = ChannelSettings()
    assert settings.default_fund == to_wei(1, 'shannon')
    assert settings.min_fund == settings.default_fund
    assert settings.reconcile_on_submit_failure


def test_min_fund_override():
    assert ChannelSettings(default_fund=10, min_fund=3).min_fund == 3


@pytest.mark.parametrize('kwargs', [
    {'default_fund': 0},
    {'opening_timeout_seconds': 0},
    {'min_fund': -1},
])
def test_channel_settings_invalid(kwargs):
    with pytest.raises(ValidationError):
        ChannelSettings(**kwargs)


def test_channel_settings_from_env(monkeypatch):
    monkeypatch.setenv('OPENING_TIMEOUT_SECONDS', '12.5')
    monkeypatch.setenv('RECONCILE_ON_SUBMIT_FAILURE', 'false')
    settings = ChannelSettings()
    assert settings.opening_timeout_seconds == 12.5
    assert not settings.reconcile_on_submit_failure


def test_peer_book():
    key = '02' + 'AB' * 32
    settings = TransportSettings(known_peers=[f'{key}@127.0.0.1:9091'])
    assert settings.peer_book() == {'127.0.0.1:9091': key.lower()}


@pytest.mark.parametrize('peer', ['127.0.0.1:9091', 'abc@127.0.0.1:9091', '02' + 'ab' * 32 + '@nowhere'])
def test_known_peers_invalid(peer):
    with pytest.raises(ValidationError):
        TransportSettings(known_peers=[peer])


@pytest.mark.parametrize('value, expected', [
    ('dev', Environment.DEV),
    ('development', Environment.DEV),
    ('PROD', Environment.PROD),
])
def test_environment_aliases(value, expected):
    assert EnvironmentSettings(environment=value).environment == expected


def test_ledger_host_serialized_as_string():
    settings = LedgerSettings(ledger_rest_host='http://127.0.0.1:8545')
    assert settings.model_dump()['ledger_rest_host'] == 'http://127.0.0.1:8545/'
