# /txescalator/core/confirmations.py
from typing import Optional, Sequence

from txescalator.core.logger import get_logger
from txescalator.core.models import Receipt

log = get_logger(__name__)


class ConfirmationTracker:
    """
    Looks for a successful receipt among every hash submitted for one logical
    transaction. Replacements do not invalidate earlier attempts, so the whole
    list is scanned on every poll, oldest first.
    """
    def __init__(self, node):
        self.node = node

    async def find_confirmed(self, tx_hashes: Sequence[str]) -> Optional[Receipt]:
        for tx_hash in tx_hashes:
            receipt = await self._lookup(tx_hash)
            if receipt is None:
                continue
            if receipt.succeeded:
                return receipt
            log.warning("TX_RECEIPT_NOT_SUCCESSFUL", tx_hash=tx_hash, status=receipt.status,
                        block_number=receipt.block_number)
        return None

    async def _lookup(self, tx_hash: str) -> Optional[Receipt]:
        # Receipt visibility lags block inclusion on some nodes, so a failed
        # lookup only means "not confirmed yet".
        try:
            return await self.node.get_transaction_receipt(tx_hash)
        except Exception as e:
            log.debug("TX_RECEIPT_LOOKUP_FAILED", tx_hash=tx_hash, error=str(e))
            return None
