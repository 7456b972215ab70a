import json

import pytest
from unittest.mock import MagicMock
from pydantic import ValidationError

from lending_exporter import main as entrypoint
from lending_exporter.config import Settings, get_settings
from lending_exporter.protocols.comptroller import USDC_ADDRESS, WETH_ADDRESS

from conftest import COMPTROLLER, ORACLE, WALLET


@pytest.fixture
def env(monkeypatch):
    monkeypatch.setenv("RPC_URL", "http://localhost:8545")
    monkeypatch.setenv("COMPTROLLER_ADDRESS", COMPTROLLER)
    monkeypatch.setenv("ORACLE_ADDRESS", ORACLE)
    monkeypatch.setenv("WALLETS", json.dumps([{"name": "main", "address": WALLET}]))
    return monkeypatch


def load() -> Settings:
    return Settings(_env_file=None)


class TestSettings:
    def test_defaults(self, env):
        settings = load()

        assert settings.metrics_port == 9094
        assert settings.poll_interval_seconds == 1200
        assert settings.cache_ttl_seconds == 600
        assert settings.cache_check_period_seconds == 200
        assert settings.compute_limit is True

        book = settings.get_address_book()
        assert book.wrapped_native == WETH_ADDRESS
        assert book.usdc == USDC_ADDRESS

    def test_wallet_addresses_are_checksummed(self, env):
        env.setenv("WALLETS", json.dumps([{"name": "main", "address": WALLET.lower()}]))

        wallets = load().get_wallets()

        assert wallets[0].name == "main"
        assert wallets[0].address == "0x1234567890123456789012345678901234567890"

    def test_invalid_wallet_address(self, env):
        env.setenv("WALLETS", json.dumps([{"name": "main", "address": "0x1234"}]))

        with pytest.raises(ValidationError):
            load()

    def test_invalid_address_book(self, env):
        env.setenv("ORACLE_ADDRESS", "not-an-address")

        with pytest.raises(ValidationError):
            load()

    def test_missing_comptroller(self, env):
        env.delenv("COMPTROLLER_ADDRESS")

        with pytest.raises(ValidationError):
            load()

    def test_no_wallets(self, env):
        env.setenv("WALLETS", "[]")

        with pytest.raises(ValidationError):
            load()

    def test_duplicate_wallet_names(self, env):
        env.setenv(
            "WALLETS",
            json.dumps([
                {"name": "main", "address": WALLET},
                {"name": "main", "address": COMPTROLLER},
            ]),
        )

        with pytest.raises(ValidationError, match="Duplicate wallet names"):
            load()

    def test_log_level_normalized(self, env):
        env.setenv("LOG_LEVEL", "debug")
        assert load().log_level == "DEBUG"


class TestStartup:
    @pytest.fixture(autouse=True)
    def fresh_settings(self):
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()

    def test_invalid_configuration_exits_with_status_1(self, monkeypatch, tmp_path):
        # No .env file in the working directory either
        monkeypatch.chdir(tmp_path)
        for name in ("RPC_URL", "WALLETS", "COMPTROLLER_ADDRESS", "ORACLE_ADDRESS"):
            monkeypatch.delenv(name, raising=False)
        run = MagicMock()
        app_main = MagicMock()
        monkeypatch.setattr(entrypoint.asyncio, "run", run)
        monkeypatch.setattr(entrypoint, "main", app_main)

        with pytest.raises(SystemExit) as exc:
            entrypoint.main_sync()

        assert exc.value.code == 1
        run.assert_not_called()
        app_main.assert_not_called()
