# /gasfee/core/config.py
from pydantic import SecretStr
from pydantic_settings import BaseSettings
from typing import List

# Endpoints carry a <chain_id> placeholder that is substituted with the
# normalized decimal chain id at request time.
DEFAULT_EIP1559_API_ENDPOINT = "https://gas-api.metaswap.codefi.network/networks/<chain_id>/suggestedGasFees"
DEFAULT_LEGACY_API_ENDPOINT = "https://gas-api.metaswap.codefi.network/networks/<chain_id>/gasPrices"


class Settings(BaseSettings):
    # RPC
    ETH_RPC_URL: SecretStr | None = None
    chain_id: int = 1

    # Polling
    GAS_POLL_INTERVAL_MS: int = 15000

    # Gas estimation APIs
    EIP1559_API_ENDPOINT: str = DEFAULT_EIP1559_API_ENDPOINT
    LEGACY_API_ENDPOINT: str = DEFAULT_LEGACY_API_ENDPOINT
    GAS_API_CLIENT_ID: str | None = None
    USE_FEE_HISTORY_ESTIMATES: bool = False
    LEGACY_GAS_API_CHAIN_IDS: List[int] = [1, 56, 137]
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # Operational Settings
    LOG_LEVEL: str = "INFO"
    SENTRY_DSN: str | None = None
    HEALTH_PORT: int = 8080
    CONTROL_API_PORT: int = 8081
    CONTROL_API_TOKEN: str | None = None

    @property
    def rpc_url(self) -> str | None:
        """Plain-text RPC URL, or ``None`` when unset."""
        if self.ETH_RPC_URL is None:
            return None
        return self.ETH_RPC_URL.get_secret_value()

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

try:
    settings = Settings()
except Exception as e:
    # Late import to avoid circular dependency only for logging the failure
    try:
        from gasfee.core.logger import get_logger, configure_logging
        configure_logging()
        log = get_logger("GasFee.Config")
        log.critical("FAILED_TO_LOAD_SETTINGS", error=str(e))
    except Exception:
        print("FAILED_TO_LOAD_SETTINGS", e)
    # In a container, a hard exit is often appropriate if config fails.
    raise SystemExit(1)
