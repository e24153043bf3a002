# /gasfee/core/config_validator.py
# Run at startup to validate configuration before any network activity.
from gasfee.core.config import settings
from gasfee.core.logger import log

def validate():
    log.info("--- CONFIG VALIDATION START ---")
    errors = []

    if not settings.rpc_url:
        errors.append("Missing required configuration: ETH_RPC_URL")
    if settings.GAS_POLL_INTERVAL_MS <= 0:
        errors.append(f"GAS_POLL_INTERVAL_MS must be positive, got {settings.GAS_POLL_INTERVAL_MS}")
    for name in ("EIP1559_API_ENDPOINT", "LEGACY_API_ENDPOINT"):
        if "<chain_id>" not in getattr(settings, name):
            log.warning("ENDPOINT_WITHOUT_CHAIN_ID_PLACEHOLDER", setting=name)

    if errors:
        for error in errors:
            log.critical(error)
        raise ValueError("System configuration is incomplete. Halting.")

    log.info("--- CONFIG VALIDATION PASSED ---")

if __name__ == "__main__":
    validate()
