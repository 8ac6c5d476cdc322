# /txescalator/core/logger.py
import logging

import sentry_sdk
import structlog
from prometheus_client import Counter
from structlog.contextvars import bind_contextvars, unbind_contextvars

from txescalator.core.config import settings

# --- Prometheus Metrics ---
TX_SENT = Counter("txescalator_tx_sent_total", "Transactions accepted by the node", ["kind"])
TX_ESCALATIONS = Counter("txescalator_escalations_total", "Gas price escalations performed")
TX_CONFIRMED = Counter("txescalator_tx_confirmed_total", "Logical transactions confirmed")
TX_FAILED = Counter("txescalator_tx_failed_total", "Logical transactions that ended in a terminal error", ["reason"])
SEND_ERRORS = Counter("txescalator_send_errors_total", "Send attempts rejected by the node", ["kind"])

SUBMISSION_CONTEXT_KEYS = ("to", "nonce")


def hexify_bytes(logger, method_name: str, event_dict: dict) -> dict:
    """Structlog processor rendering raw bytes (tx hashes, calldata) as 0x hex.

    JSONRenderer would otherwise fall back to ``repr`` for bytes values.
    """
    for key, value in event_dict.items():
        if isinstance(value, (bytes, bytearray)):
            event_dict[key] = "0x" + bytes(value).hex()
    return event_dict


def configure_logging(level: str | None = None):
    if settings.SENTRY_DSN:
        sentry_sdk.init(dsn=settings.SENTRY_DSN.get_secret_value(), traces_sample_rate=1.0)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            hexify_bytes,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName((level or settings.LOG_LEVEL).upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str):
    return structlog.get_logger(name)


def bind_submission(**context):
    bind_contextvars(**context)


def clear_submission():
    unbind_contextvars(*SUBMISSION_CONTEXT_KEYS)


configure_logging()
log = get_logger("txescalator")
