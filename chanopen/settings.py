import re
from enum import Enum
from pathlib import Path
from eth_utils import to_wei
from pydantic import (
    Field,
    HttpUrl,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources.providers.dotenv import DotEnvSettingsSource
from typing import List, Optional

VERSION = '0.1.0'
PROTOCOL_PAYMENT_CHANNEL = '/chanopen/payment-channel/0.1.0'
PUBKEY_RE = re.compile(r"^[0-9A-Fa-f]{66}$")


class Environment(str, Enum):
    PROD = 'production'
    DEV = 'development'


class LogLevel(str, Enum):
    DEBUG = 'DEBUG'
    INFO = 'INFO'
    WARNING = 'WARNING'
    ERROR = 'ERROR'
    CRITICAL = 'CRITICAL'


class ChanopenSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore'
    )
    log_level: LogLevel = LogLevel.INFO

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings
    ):
        # 1) peek at the base .env for the ENVIRONMENT key
        base_path = Path(".env")
        if base_path.is_file():
            base_vars = DotEnvSettingsSource._static_read_env_file(
                base_path,
                encoding="utf-8",
                case_sensitive=False,
                ignore_empty=False,
                parse_none_str=None,
            )
        else:
            base_vars = {}

        # 2) choose .env.dev or .env
        env = base_vars.get("environment", Environment.PROD.value)
        chosen = ".env.dev" if env.upper() == Environment.DEV.name else ".env"

        # 3) build a new DotEnvSettingsSource pointing at that file
        custom_dotenv = DotEnvSettingsSource(
            settings_cls=cls,
            env_file=chosen,
            env_file_encoding="utf-8",
        )

        def filtered_dotenv() -> dict:
            data = custom_dotenv()
            # drop keys set to the empty string so defaults apply
            return {k: v for k, v in data.items() if v != ""}

        return (
            init_settings,
            filtered_dotenv,
            env_settings,
            file_secret_settings,
        )


class EnvironmentSettings(ChanopenSettings):
    environment: Environment = Environment.PROD

    @field_validator('environment', mode='before')
    def validate_env(cls, value):
        if isinstance(value, Environment):
            return value

        # accept "development", "dev", "PROD", ...
        if isinstance(value, str):
            for env in Environment:
                if value.lower() in (env.value, env.name.lower()):
                    return env
            raise ValueError(f"Invalid env: {value}")

        raise ValueError(f"Environment must be a str or Environment enum, got {value!r}")


class ChannelSettings(ChanopenSettings):
    """
    amounts are in wei, the default funding of a new channel is 1 shannon
    """
    default_fund: int = Field(default=to_wei(1, 'shannon'))
    min_fund: Optional[int] = Field(default=None)
    max_accepted_fund: int = Field(default=to_wei(1, 'ether'))
    opening_timeout_seconds: float = Field(default=6 * 60)
    reconcile_on_submit_failure: bool = Field(default=True)

    @field_validator('default_fund', 'max_accepted_fund')
    def validate_greater_than_zero(cls, v: int) -> int:
        if v > 0:
            return v
        raise ValueError(f'{v} must be greater than 0')

    @field_validator('opening_timeout_seconds')
    def validate_timeout(cls, v: float) -> float:
        if v > 0:
            return v
        raise ValueError(f'{v} must be greater than 0')

    @model_validator(mode='after')
    def default_min_fund(self):
        # the minimum stake defaults to the amount we fund channels with
        if self.min_fund is None:
            self.min_fund = self.default_fund
        elif self.min_fund < 0:
            raise ValueError(f'{self.min_fund} must be greater than or equal to 0')
        return self


class TransportSettings(ChanopenSettings):
    listen_host: str = Field(default='127.0.0.1')
    listen_port: int = Field(default=9091)
    dial_timeout_seconds: float = Field(default=15)
    known_peers: List[str] = Field(default=[])

    @field_validator('listen_port')
    def validate_port(cls, v: int) -> int:
        if 0 <= v <= 65_535:
            return v
        raise ValueError("port must be 0–65535")

    @field_validator('known_peers')
    def validate_known_peers(cls, v: List[str]) -> List[str]:
        for uri in v:
            pubkey, sep, hostport = uri.partition('@')
            if not sep or not PUBKEY_RE.fullmatch(pubkey) or ':' not in hostport:
                raise ValueError(f"{uri} must be in form <66-hex-pubkey>@<host>:<port>")
        return v

    def peer_book(self) -> dict:
        """map of host:port to hex pubkey for peers dialed without a key"""
        book = {}
        for uri in self.known_peers:
            pubkey, _, hostport = uri.partition('@')
            book[hostport] = pubkey.lower()
        return book


class LedgerSettings(ChanopenSettings):
    ledger_rest_host: Optional[HttpUrl] = Field(default=None)
    ledger_timeout_seconds: float = Field(default=30)

    @field_serializer("ledger_rest_host", mode="plain")
    def _ser_rest_host(self, v: Optional[HttpUrl], info) -> Optional[str]:
        return None if v is None else v.unicode_string()


class IdentitySettings(ChanopenSettings):
    keys_path: str = Field(default='output/chanopen-keys.json')
    keys_path_dev: str = Field(default='output/chanopen-keys.json.dev')
    reuse_keys: bool = Field(default=True)
    write_keys: bool = Field(default=True)

    @model_validator(mode='after')
    def ensure_output_directory_exists(self):
        """Ensure the output directory exists for the keys files"""
        for path in [self.keys_path, self.keys_path_dev]:
            if path:
                Path(path).parent.mkdir(parents=True, exist_ok=True)
        return self


class StoreSettings(ChanopenSettings):
    state_file_path: str = Field(default='output/channels.json')


class ApiSettings(ChanopenSettings):
    api_host: str = Field(default='127.0.0.1')
    api_port: int = Field(default=8000)


class Settings(
        EnvironmentSettings,
        ChannelSettings,
        TransportSettings,
        LedgerSettings,
        IdentitySettings,
        StoreSettings,
        ApiSettings,
        ChanopenSettings,
        ):
    version: str = Field(default=VERSION)

    @property
    def active_keys_path(self) -> str:
        if self.environment == Environment.DEV:
            return self.keys_path_dev
        return self.keys_path
