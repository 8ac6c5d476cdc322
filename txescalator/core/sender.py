# /txescalator/core/sender.py
# Bounded transmission of one transaction attempt with local recovery for
# the node rejections that have a known fix.
import asyncio
import logging

from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from txescalator.core.errors import (
    EscalationError,
    PreconditionViolated,
    SendErrorKind,
    SendExhausted,
    SequenceConflict,
    classify_send_error,
)
from txescalator.core.logger import SEND_ERRORS, TX_SENT, get_logger
from txescalator.core.models import EscalationPolicy, TransactionDraft
from txescalator.core.nonce_manager import ensure_explicit_nonce_signer, resolve_nonce

log = get_logger(__name__)


class TransactionSender:
    """
    Sends a TransactionDraft through a signer, retrying up to
    ``policy.max_send_retries`` times.

    Recovery per rejected attempt:

    * fee too low: the gas limit is doubled in place, the nonce is kept.
    * nonce conflict on the initial send: the nonce is re-read from the node.
    * nonce conflict on a replacement: SequenceConflict is raised at once. An
      earlier attempt of the same transaction has taken the nonce and the
      caller has to look for its receipt instead of opening a new slot.
    * anything else: retried as is until the budget runs out.
    """
    def __init__(self, signer, sleep=asyncio.sleep):
        self.signer = signer
        self.sleep = sleep

    async def send(self, draft: TransactionDraft, is_initial: bool, policy: EscalationPolicy) -> str:
        ensure_explicit_nonce_signer(self.signer)
        if not draft.gas:
            raise PreconditionViolated("send(): gas limit undefined")
        if draft.nonce is None:
            raise PreconditionViolated("send(): nonce undefined")

        retrying = AsyncRetrying(
            stop=stop_after_attempt(policy.max_send_retries),
            wait=wait_fixed(policy.send_retry_delay),
            # CancelledError is a BaseException and must reach the caller.
            retry=retry_if_exception_type(Exception) & retry_if_not_exception_type(EscalationError),
            before_sleep=before_sleep_log(log, logging.WARNING),
            sleep=self.sleep,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._send_once(draft, is_initial)
        except RetryError as exc:
            attempts = exc.last_attempt.attempt_number
            cause = exc.last_attempt.exception()
            log.error("SEND_RETRIES_EXHAUSTED", attempts=attempts, error=str(cause))
            raise SendExhausted(attempts) from cause

    async def _send_once(self, draft: TransactionDraft, is_initial: bool) -> str:
        kind_label = "initial" if is_initial else "replacement"
        try:
            tx_hash = await self.signer.send_transaction(draft)
        except EscalationError:
            raise
        except Exception as exc:
            kind = classify_send_error(exc)
            SEND_ERRORS.labels(kind.value).inc()
            log.error(
                "SEND_ATTEMPT_REJECTED",
                send=kind_label, kind=kind.value, error=str(exc),
                nonce=draft.nonce, gas=draft.gas, gas_price=draft.gas_price,
            )
            await self._recover(draft, kind, is_initial, exc)
            raise

        TX_SENT.labels(kind_label).inc()
        log.info(
            "TX_BROADCASTED",
            send=kind_label, tx_hash=tx_hash,
            nonce=draft.nonce, gas=draft.gas, gas_price=draft.gas_price,
        )
        return tx_hash

    async def _recover(self, draft: TransactionDraft, kind: SendErrorKind, is_initial: bool, exc: Exception):
        if kind is SendErrorKind.FEE_TOO_LOW:
            # Covers "intrinsic gas too low" from L2 sequencers.
            draft.gas = draft.gas * 2
            log.info("RETRYING_WITH_DOUBLED_GAS_LIMIT", gas=draft.gas)
        elif kind is SendErrorKind.SEQUENCE_CONFLICT:
            if not is_initial:
                raise SequenceConflict(str(exc)) from exc
            draft.nonce = await resolve_nonce(self.signer)
            log.info("RETRYING_WITH_REFRESHED_NONCE", nonce=draft.nonce)
