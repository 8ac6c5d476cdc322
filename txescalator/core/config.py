# /txescalator/core/config.py
import sys
from typing import List

import structlog
from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from txescalator.core.models import EscalationPolicy


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Executor account
    EXECUTOR_PRIVATE_KEY: SecretStr | None = None

    # RPC endpoints. ETH_RPC_URL_n are read in order; rpc_urls is the
    # JSON-list alternative.
    ETH_RPC_URL_1: SecretStr | None = None
    ETH_RPC_URL_2: SecretStr | None = None
    ETH_RPC_URL_3: SecretStr | None = None
    rpc_urls: List[str] = []
    RPC_TIMEOUT_SECONDS: int = 10

    # Chain configuration
    chain_id: int = 1
    NONCE_BLOCK_TAG: str = "pending"

    # Escalation policy for this chain, given as one JSON object so that a
    # chain's settings are always overridden together, e.g.
    # TX_SETTINGS='{"gas_limit_factor": 1.5, "escalation_interval": 2}'
    TX_SETTINGS: EscalationPolicy = EscalationPolicy()

    # Operational Settings
    LOG_LEVEL: str = "INFO"
    SENTRY_DSN: SecretStr | None = None
    METRICS_PORT: int | None = None

    @property
    def ETH_RPC_URL(self) -> str | None:  # noqa: N802
        """Primary RPC URL: ETH_RPC_URL_1 if set, else the first of rpc_urls."""
        if self.ETH_RPC_URL_1 is not None:
            return self.ETH_RPC_URL_1.get_secret_value()
        if self.rpc_urls:
            return self.rpc_urls[0]
        return None

    def get_rpc_urls(self) -> List[str]:
        """All configured RPC URLs, numbered variables first."""
        urls = []
        i = 1
        while (url := getattr(self, f"ETH_RPC_URL_{i}", None)):
            urls.append(url.get_secret_value())
            i += 1
        return urls + [u for u in self.rpc_urls if u not in urls]


try:
    settings = Settings()
except Exception as e:
    # txescalator.core.logger depends on settings, so use structlog's defaults here.
    structlog.get_logger("txescalator.config").critical("FAILED_TO_LOAD_SETTINGS", error=str(e))
    sys.exit(1)
