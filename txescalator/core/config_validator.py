# /txescalator/core/config_validator.py
# Run at startup to validate the settings a live submission needs.
from txescalator.core.config import settings
from txescalator.core.logger import log


def validate():
    log.info("--- CONFIG VALIDATION START ---")
    errors = []

    if not settings.EXECUTOR_PRIVATE_KEY:
        errors.append("Missing required configuration: EXECUTOR_PRIVATE_KEY")
    if not settings.get_rpc_urls():
        errors.append("Missing required configuration: ETH_RPC_URL_1 or rpc_urls")

    if errors:
        for error in errors:
            log.critical(error)
        raise ValueError("System configuration is incomplete. Halting.")

    log.info("--- CONFIG VALIDATION PASSED ---", chain_id=settings.chain_id,
             rpc_count=len(settings.get_rpc_urls()), policy=settings.TX_SETTINGS.model_dump())


if __name__ == "__main__":
    validate()
