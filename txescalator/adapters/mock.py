# /txescalator/adapters/mock.py
# In-memory node and signer for exercising the submission engine without a
# chain. Nothing is mined unless the test (or auto_confirm) says so.

from collections import deque
from typing import Dict, List, Optional, Tuple

from web3.exceptions import TransactionNotFound

from txescalator.core.logger import get_logger
from txescalator.core.models import Receipt, TransactionDraft

log = get_logger(__name__)


class MockNode:
    """A node whose gas price, nonce and receipts are set by the test."""
    def __init__(self, gas_price: int = 10**9, nonce: int = 0):
        self.gas_price = gas_price
        self.nonce = nonce
        self.receipts: Dict[str, Receipt] = {}
        self.failing_lookups: set = set()
        self.receipt_queries: List[str] = []
        self.gas_price_reads = 0

    async def current_gas_price(self) -> int:
        self.gas_price_reads += 1
        return self.gas_price

    async def get_transaction_count(self, address: str, block_identifier: str = "pending") -> int:
        return self.nonce

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Receipt]:
        self.receipt_queries.append(tx_hash)
        if tx_hash in self.failing_lookups:
            raise TransactionNotFound(f"Transaction with hash: '{tx_hash}' not found.")
        return self.receipts.get(tx_hash)

    def mine(self, tx_hash: str, gas_price: int = 0, status: int = 1, gas_used: int = 21000) -> Receipt:
        """Records a receipt for ``tx_hash`` and consumes the account nonce."""
        receipt = Receipt(
            tx_hash=tx_hash,
            status=status,
            effective_gas_price=gas_price,
            gas_used=gas_used,
            block_hash="0x" + "ab" * 32,
            block_number=len(self.receipts) + 1,
        )
        self.receipts[tx_hash] = receipt
        self.nonce += 1
        log.info("MOCK_TX_MINED", tx_hash=tx_hash, status=status)
        return receipt


class MockSigner:
    """
    Records every draft it is asked to send. Queued failures are raised one
    per send before anything is accepted.
    """
    overrides_nonce = False

    def __init__(self, node: Optional[MockNode], address: str = "0xMockExecutor", auto_confirm: bool = False):
        self.node = node
        self.address = address
        self.auto_confirm = auto_confirm
        self.sent: List[Tuple[str, TransactionDraft]] = []
        self.rejected: List[TransactionDraft] = []
        self._all: List[TransactionDraft] = []
        self._failures: deque = deque()
        log.info("MOCK_SIGNER_INITIALIZED", address=self.address)

    def fail_next(self, *errors: Exception):
        self._failures.extend(errors)

    @property
    def attempts(self) -> List[TransactionDraft]:
        """Every draft seen, rejected or not, in send order."""
        return self._all

    async def send_transaction(self, draft: TransactionDraft) -> str:
        snapshot = draft.model_copy()
        self._all.append(snapshot)
        if self._failures:
            error = self._failures.popleft()
            self.rejected.append(snapshot)
            log.error("MOCK_TX_FORCED_FAILURE", error=str(error))
            raise error

        tx_hash = "0x" + f"{len(self.sent):064x}"
        self.sent.append((tx_hash, snapshot))
        log.info("MOCK_TRANSACTION_SENT", tx_hash=tx_hash, nonce=draft.nonce, gas_price=draft.gas_price)
        if self.auto_confirm:
            self.node.mine(tx_hash, gas_price=draft.gas_price)
        return tx_hash

    @property
    def sent_hashes(self) -> List[str]:
        return [tx_hash for tx_hash, _ in self.sent]
