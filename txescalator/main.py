# /txescalator/main.py
# Submits a single transaction with gas price escalation and prints its receipt.
import argparse
import asyncio
import sys

from prometheus_client import start_http_server

from txescalator.core.config import settings
from txescalator.core.config_validator import validate as validate_config
from txescalator.core.errors import EscalationError
from txescalator.core.logger import configure_logging, get_logger
from txescalator.core.tx import TransactionManager


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Send a transaction, escalating its gas price until it confirms.")
    parser.add_argument("--to", required=True, help="recipient address")
    parser.add_argument("--data", default="0x", help="calldata as 0x hex")
    parser.add_argument("--gas", type=int, default=None, help="explicit gas limit")
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging()
    log = get_logger("txescalator.main")
    validate_config()

    if settings.METRICS_PORT:
        start_http_server(settings.METRICS_PORT)
        log.info("METRICS_SERVER_STARTED", port=settings.METRICS_PORT)

    tx_manager = await TransactionManager.from_settings()
    try:
        receipt = await tx_manager.submit_with_escalation(args.to, args.data, args.gas)
    except EscalationError as e:
        log.critical("SUBMISSION_FAILED", error_type=type(e).__name__, error=str(e))
        return 1
    print(receipt.model_dump_json(indent=2))
    return 0


def run():
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
