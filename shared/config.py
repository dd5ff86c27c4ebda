"""
Runtime configuration for the custody and sweep services.

Values come from the process environment or a .env file through
python-decouple and are validated into a single Settings object that the
composition root hands to every service.
"""
from decimal import Decimal
from typing import List, Optional

from decouple import config, Csv, UndefinedValueError
from pydantic import BaseModel, ValidationError, field_validator

from shared.errors import ConfigurationError

# USDT on TRON uses 6 decimals; transfers and balance reads are built around it.
TOKEN_DECIMALS = 6

# 100 TRX expressed in sun.
DEFAULT_FEE_LIMIT_SUN = 100_000_000

NETWORK_HOSTS = {
    "mainnet": "https://api.trongrid.io",
    "shasta": "https://api.shasta.trongrid.io",
    "nile": "https://nile.trongrid.io",
}


class Settings(BaseModel):
    """Validated settings; see .env.example for the matching variables"""
    master_address: str
    encryption_key: str
    hd_mnemonic: str
    hd_passphrase: str = ""
    usdt_contract_address: str

    tron_network: str = "mainnet"
    tron_node_url: Optional[str] = None
    tron_api_key: Optional[str] = None

    min_sweep_amount: Decimal = Decimal("1")
    min_gas_reserve: Decimal = Decimal("15")
    dust_reserve: Decimal = Decimal("1")
    min_native_sweep: Decimal = Decimal("0.1")
    fee_limit_sun: int = DEFAULT_FEE_LIMIT_SUN
    token_decimals: int = TOKEN_DECIMALS

    sweep_interval_minutes: int = 5
    sweep_workers: int = 4
    chain_calls_per_second: float = 5.0

    database_url: str = "sqlite:///sweeper.db"
    redis_host: str = "redis"
    redis_port: int = 6379
    notification_channel: str = "sweeper_notifications"
    admin_ids: List[int] = []
    daily_report_at: str = "00:00"

    @field_validator("tron_network")
    @classmethod
    def _known_network(cls, value):
        if value not in NETWORK_HOSTS:
            raise ValueError(f"Unsupported TRON network: {value}")
        return value

    @field_validator("token_decimals")
    @classmethod
    def _single_token_exponent(cls, value):
        if value != TOKEN_DECIMALS:
            raise ValueError(
                f"TOKEN_DECIMALS={value} but transfers are built for a {TOKEN_DECIMALS}-decimal token"
            )
        return value

    @field_validator("sweep_interval_minutes", "sweep_workers", "fee_limit_sun")
    @classmethod
    def _positive_int(cls, value):
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("chain_calls_per_second")
    @classmethod
    def _positive_rate(cls, value):
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator("min_sweep_amount", "min_gas_reserve", "dust_reserve", "min_native_sweep")
    @classmethod
    def _non_negative(cls, value):
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @property
    def node_url(self) -> str:
        return self.tron_node_url or NETWORK_HOSTS[self.tron_network]

    @classmethod
    def from_env(cls) -> "Settings":
        try:
            return cls(
                master_address=config("MASTER_ADDRESS"),
                encryption_key=config("ENCRYPTION_KEY"),
                hd_mnemonic=config("HD_WALLET_MNEMONIC"),
                hd_passphrase=config("HD_WALLET_PASSPHRASE", default=""),
                usdt_contract_address=config("USDT_CONTRACT_ADDRESS"),
                tron_network=config("TRON_NETWORK", default="mainnet"),
                tron_node_url=config("TRON_NODE_URL", default=None),
                tron_api_key=config("TRON_API_KEY", default=None),
                min_sweep_amount=config("MIN_SWEEP_AMOUNT", default="1", cast=Decimal),
                min_gas_reserve=config("MIN_GAS_RESERVE", default="15", cast=Decimal),
                dust_reserve=config("DUST_RESERVE", default="1", cast=Decimal),
                min_native_sweep=config("MIN_NATIVE_SWEEP", default="0.1", cast=Decimal),
                fee_limit_sun=config("FEE_LIMIT_SUN", default=DEFAULT_FEE_LIMIT_SUN, cast=int),
                token_decimals=config("TOKEN_DECIMALS", default=TOKEN_DECIMALS, cast=int),
                sweep_interval_minutes=config("SWEEP_INTERVAL_MINUTES", default=5, cast=int),
                sweep_workers=config("SWEEP_WORKERS", default=4, cast=int),
                chain_calls_per_second=config("CHAIN_CALLS_PER_SECOND", default=5.0, cast=float),
                database_url=config("DATABASE_URL", default=None) or postgres_url_from_env(),
                redis_host=config("REDIS_HOST", default="redis"),
                redis_port=config("REDIS_PORT", default=6379, cast=int),
                notification_channel=config("NOTIFICATION_CHANNEL", default="sweeper_notifications"),
                admin_ids=config("ADMIN_IDS", default="", cast=Csv(int)),
                daily_report_at=config("DAILY_REPORT_AT", default="00:00"),
            )
        except UndefinedValueError as e:
            raise ConfigurationError(str(e)) from e
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e


def postgres_url_from_env() -> str:
    """Build the Postgres URL from the individual DB_* variables."""
    return "postgresql://{user}:{password}@{host}:{port}/{db_name}".format(
        host=config("DB_HOST", default="db"),
        port=config("DB_PORT", default="5432"),
        db_name=config("POSTGRES_DB", default="sweeper"),
        user=config("DB_USER", default="sweeper"),
        password=config("DB_PASS", default="sweeper"),
    )
