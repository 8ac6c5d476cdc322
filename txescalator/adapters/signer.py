# /txescalator/adapters/signer.py
import asyncio

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import Web3RPCError

from txescalator.core.config import settings
from txescalator.core.errors import SendRejected, classify_send_error, is_already_known
from txescalator.core.logger import get_logger
from txescalator.core.models import TransactionDraft

log = get_logger(__name__)


class LocalSigner:
    """
    Signs drafts with a local key and broadcasts them through a node. Sends
    exactly the nonce it is given. A node that already holds the signed bytes
    counts as a successful broadcast.
    """
    overrides_nonce = False

    def __init__(self, account: LocalAccount, node, chain_id: int | None = None):
        self.account = account
        self.address = account.address
        self.node = node
        self.chain_id = chain_id if chain_id is not None else settings.chain_id

    @classmethod
    def from_private_key(cls, private_key: str, node, chain_id: int | None = None) -> "LocalSigner":
        return cls(Account.from_key(private_key), node, chain_id)

    async def send_transaction(self, draft: TransactionDraft) -> str:
        params = draft.to_tx_params(self.chain_id)
        params["to"] = Web3.to_checksum_address(draft.to)
        signed = self.account.sign_transaction(params)
        try:
            return await self.node.send_raw_transaction(signed.raw_transaction)
        except Web3RPCError as e:
            if is_already_known(e):
                # Same bytes, same hash: report the earlier broadcast as ours.
                tx_hash = signed.hash.to_0x_hex()
                log.info("TX_ALREADY_KNOWN", tx_hash=tx_hash, nonce=draft.nonce)
                return tx_hash
            raise SendRejected(classify_send_error(e), str(e)) from e


class CachedNonceSigner:
    """
    Wraps a signer and assigns nonces from a local counter, for callers that
    fire transactions without tracking nonces themselves.

    The counter only moves on successful broadcasts and cannot tell a dropped
    transaction from a pending one, so the escalation engine refuses it.
    """
    overrides_nonce = True

    def __init__(self, signer):
        self.signer = signer
        self.address = signer.address
        self.node = signer.node
        self._lock = asyncio.Lock()
        self._next_nonce: int | None = None

    async def send_transaction(self, draft: TransactionDraft) -> str:
        async with self._lock:
            if self._next_nonce is None:
                self._next_nonce = await self.node.get_transaction_count(self.address, "pending")
            draft = draft.model_copy(update={"nonce": self._next_nonce})
            tx_hash = await self.signer.send_transaction(draft)
            self._next_nonce += 1
            log.debug("CACHED_NONCE_BUMPED", nonce=self._next_nonce)
            return tx_hash

    async def reset(self):
        """Forget the local counter; the next send re-reads it from the node."""
        async with self._lock:
            self._next_nonce = None
