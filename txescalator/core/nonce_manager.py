# /txescalator/core/nonce_manager.py
# The node is the only source of truth for the account nonce. Nothing here
# caches it: every logical transaction reads it fresh.

from txescalator.core.config import settings
from txescalator.core.errors import IncompatibleSignerKind, SignerUnavailable
from txescalator.core.logger import get_logger

log = get_logger(__name__)


def ensure_explicit_nonce_signer(signer):
    # A signer that fills in nonces itself hides send failures behind its own
    # counter and breaks nonce reuse for replacement transactions.
    if getattr(signer, "overrides_nonce", False):
        raise IncompatibleSignerKind(
            f"{type(signer).__name__} manages nonces itself; use a signer that sends the nonce it is given"
        )


async def resolve_nonce(signer, block_identifier: str | None = None) -> int:
    """Returns the next unused nonce of the signer's account as seen by the node."""
    ensure_explicit_nonce_signer(signer)
    node = getattr(signer, "node", None)
    if node is None:
        raise SignerUnavailable(f"{type(signer).__name__} has no node connection")
    block_identifier = block_identifier or settings.NONCE_BLOCK_TAG
    nonce = await node.get_transaction_count(signer.address, block_identifier)
    log.info("NONCE_FROM_RPC", address=signer.address, nonce=nonce, block=block_identifier)
    return nonce
