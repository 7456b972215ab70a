from pydantic_settings import BaseSettings
from pydantic import BaseModel, Field, field_validator, model_validator
from functools import lru_cache
from typing import List, Self

from web3 import AsyncWeb3

from lending_exporter.protocols.base import Wallet
from lending_exporter.protocols.comptroller import (
    NULL_ADDRESS,
    USDC_ADDRESS,
    WETH_ADDRESS,
    AddressBook,
)


def _checksum(value: str) -> str:
    if not AsyncWeb3.is_address(value):
        raise ValueError(f"Invalid address: {value!r}")
    return AsyncWeb3.to_checksum_address(value)


class WalletConfig(BaseModel):
    name: str = Field(..., min_length=1, description="Label used for the wallet metric")
    address: str = Field(..., description="Wallet address to monitor")

    @field_validator("address")
    @classmethod
    def validate_address(cls, value: str) -> str:
        return _checksum(value)


class Settings(BaseSettings):
    rpc_url: str = Field(..., description="Ethereum JSON-RPC endpoint URL")
    rpc_timeout_seconds: float = Field(
        default=30.0, gt=0, description="HTTP timeout for each RPC request"
    )

    # Wallets are given as a JSON list, e.g. WALLETS='[{"name": "main", "address": "0x..."}]'
    wallets: List[WalletConfig] = Field(..., description="Wallets to monitor")

    # Address book
    comptroller_address: str = Field(..., description="Comptroller contract address")
    oracle_address: str = Field(..., description="Price oracle contract address")
    null_address: str = Field(
        default=NULL_ADDRESS, description="Underlying address reported by native-asset markets"
    )
    weth_address: str = Field(
        default=WETH_ADDRESS, description="Wrapped native asset used in place of the null address"
    )
    usdc_address: str = Field(
        default=USDC_ADDRESS, description="Stablecoin used to convert native prices to USD"
    )

    poll_interval_seconds: int = Field(
        default=20 * 60, gt=0, description="Interval between poll cycles"
    )
    max_concurrent_wallets: int = Field(
        default=4, ge=1, description="Wallets computed concurrently within one cycle"
    )
    compute_limit: bool = Field(
        default=True, description="Read market metadata and publish the borrow limit"
    )

    cache_ttl_seconds: float = Field(
        default=600.0, gt=0, description="Default TTL for price and market lookups"
    )
    cache_check_period_seconds: float = Field(
        default=200.0, gt=0, description="Interval of the expired-entry sweep"
    )

    metrics_host: str = Field(default="0.0.0.0", description="Bind address for the metrics server")
    metrics_port: int = Field(
        default=9094, description="Port for Prometheus metrics endpoint"
    )
    log_level: str = Field(default="INFO", description="Root logging level")

    @field_validator(
        "comptroller_address",
        "oracle_address",
        "null_address",
        "weth_address",
        "usdc_address",
    )
    @classmethod
    def validate_address(cls, value: str) -> str:
        return _checksum(value)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return value

    @model_validator(mode="after")
    def validate_wallets(self) -> Self:
        if not self.wallets:
            raise ValueError("At least one wallet must be configured")
        names = [wallet.name for wallet in self.wallets]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate wallet names: {', '.join(duplicates)}")
        return self

    def get_address_book(self) -> AddressBook:
        return AddressBook(
            comptroller=self.comptroller_address,
            oracle=self.oracle_address,
            null_address=self.null_address,
            wrapped_native=self.weth_address,
            usdc=self.usdc_address,
        )

    def get_wallets(self) -> List[Wallet]:
        return [Wallet(name=w.name, address=w.address) for w in self.wallets]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
