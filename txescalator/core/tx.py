# /txescalator/core/tx.py
# Escalated submission: send once, then keep replacing the transaction under
# the same nonce at a higher gas price until one of the attempts confirms.
import asyncio
import time
from typing import List, Optional

import sentry_sdk

from txescalator.core.config import settings
from txescalator.core.confirmations import ConfirmationTracker
from txescalator.core.errors import EscalationExhausted, SendExhausted, SendFailed, SequenceConflict
from txescalator.core.gas_estimator import DEFAULT_GAS_MODEL, GasEstimator, GasModel
from txescalator.core.logger import (
    TX_CONFIRMED,
    TX_ESCALATIONS,
    TX_FAILED,
    bind_submission,
    clear_submission,
    get_logger,
)
from txescalator.core.models import (
    AttemptRecord,
    EscalationPolicy,
    EscalationSchedule,
    Receipt,
    TransactionDraft,
)
from txescalator.core.nonce_manager import resolve_nonce
from txescalator.core.sender import TransactionSender

log = get_logger(__name__)


class TransactionManager:
    """
    Drives one logical transaction per ``submit_with_escalation`` call from
    first send to a confirmed receipt.

    Calls share nothing but the signer and node, so any number of them may
    run concurrently. ``clock`` and ``sleep`` exist so tests can run the
    escalation schedule on a virtual clock.
    """
    def __init__(
        self,
        signer,
        node=None,
        policy: Optional[EscalationPolicy] = None,
        gas_model: GasModel = DEFAULT_GAS_MODEL,
        clock=time.monotonic,
        sleep=asyncio.sleep,
    ):
        self.signer = signer
        self.node = node if node is not None else signer.node
        self.policy = policy or settings.TX_SETTINGS
        self.gas_estimator = GasEstimator(self.node, gas_model)
        self.sender = TransactionSender(signer, sleep=sleep)
        self.tracker = ConfirmationTracker(self.node)
        self.clock = clock
        self.sleep = sleep

    @classmethod
    async def from_settings(cls) -> "TransactionManager":
        """Builds a manager on the configured RPC nodes and executor key."""
        from txescalator.adapters.signer import LocalSigner
        from txescalator.core.resilient_rpc import ResilientNode

        node = ResilientNode()
        await node.initialize()
        signer = LocalSigner.from_private_key(settings.EXECUTOR_PRIVATE_KEY.get_secret_value(), node)
        log.info("TRANSACTION_MANAGER_INITIALIZED", address=signer.address, chain_id=signer.chain_id)
        return cls(signer, node)

    async def submit_with_escalation(
        self,
        to: str,
        data,
        gas: Optional[int] = None,
        policy: Optional[EscalationPolicy] = None,
    ) -> Receipt:
        """
        Sends a transaction and escalates its gas price until it confirms.

        Args:
            to: Recipient address.
            data: Calldata as bytes or a 0x hex string.
            gas: Explicit gas limit. Estimated from the calldata size if omitted.
            policy: Overrides the configured EscalationPolicy for this call.

        Returns:
            The receipt of whichever attempt confirmed.

        Raises:
            SendFailed: the initial send exhausted its retries.
            EscalationExhausted: nothing confirmed within the escalation budget.
            PreconditionViolated, IncompatibleSignerKind, SignerUnavailable:
                the call or the signer cannot be used.
        """
        policy = policy or self.policy
        bind_submission(to=to)
        try:
            return await self._submit(to, data, gas, policy)
        finally:
            clear_submission()

    async def _submit(self, to: str, data, gas: Optional[int], policy: EscalationPolicy) -> Receipt:
        log.debug("SUBMISSION_STARTED", policy=policy.model_dump())
        draft = TransactionDraft(to=to, data=data)
        draft.gas = gas if gas is not None else self.gas_estimator.estimate_gas_limit(draft.data, policy)
        # The nonce is fixed here for the initial send and every replacement.
        draft.nonce = await resolve_nonce(self.signer)
        draft.gas_price = await self.gas_estimator.initial_gas_price(policy)
        bind_submission(nonce=draft.nonce)

        # Every accepted attempt stays tracked: any of them may be the one
        # that gets mined.
        attempts: List[AttemptRecord] = []
        try:
            await self._transmit(draft, attempts, True, policy)
        except SendExhausted as e:
            TX_FAILED.labels("send_failed").inc()
            log.error("INITIAL_SEND_FAILED", attempts=e.attempts)
            raise SendFailed(e.attempts) from e

        schedule = EscalationSchedule.start(self.clock(), policy)
        while True:
            schedule = schedule.advance_poll(policy.poll_interval)
            await self.sleep(schedule.poll_interval)

            receipt = await self.tracker.find_confirmed([a.tx_hash for a in attempts])
            if receipt is not None:
                return self._confirmed(receipt, schedule, attempts)

            if not schedule.is_due(self.clock()):
                continue

            if schedule.escalations >= policy.max_escalations:
                TX_FAILED.labels("exhausted").inc()
                log.error("TX_NOT_CONFIRMED_ESCALATIONS_EXHAUSTED",
                          escalations=schedule.escalations, attempts=len(attempts),
                          gas_price=draft.gas_price)
                sentry_sdk.capture_message("Transaction escalation budget exhausted")
                raise EscalationExhausted(schedule.escalations, len(attempts))

            schedule = schedule.escalated(self.clock(), policy.escalation_interval)
            TX_ESCALATIONS.inc()
            draft.gas_price = self.gas_estimator.escalate(draft.gas_price, policy)
            log.info("GAS_PRICE_ESCALATED", escalation=schedule.escalations,
                     gas_price=draft.gas_price, next_timeout=schedule.timeout)

            try:
                await self._transmit(draft, attempts, False, policy)
            except SequenceConflict as e:
                # The nonce is taken, most likely by one of our own attempts.
                # The node may reject before its receipt is visible, so only
                # a confirmed receipt ends the loop here.
                log.warning("REPLACEMENT_NONCE_CONFLICT", escalation=schedule.escalations, error=str(e))
                receipt = await self.tracker.find_confirmed([a.tx_hash for a in attempts])
                if receipt is not None:
                    return self._confirmed(receipt, schedule, attempts)
            except SendExhausted as e:
                log.error("REPLACEMENT_SEND_FAILED", escalation=schedule.escalations, attempts=e.attempts)

    async def _transmit(self, draft: TransactionDraft, attempts: List[AttemptRecord], is_initial: bool,
                        policy: EscalationPolicy) -> str:
        tx_hash = await self.sender.send(draft, is_initial, policy)
        attempts.append(AttemptRecord(
            tx_hash=tx_hash,
            is_initial=is_initial,
            nonce=draft.nonce,
            gas=draft.gas,
            gas_price=draft.gas_price,
        ))
        return tx_hash

    def _confirmed(self, receipt: Receipt, schedule: EscalationSchedule, attempts: List[AttemptRecord]) -> Receipt:
        TX_CONFIRMED.inc()
        log.info("TX_CONFIRMED", tx_hash=receipt.tx_hash, block_number=receipt.block_number,
                 effective_gas_price=receipt.effective_gas_price, gas_used=receipt.gas_used,
                 escalations=schedule.escalations, attempts=len(attempts))
        return receipt
