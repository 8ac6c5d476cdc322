# /test/test_forked_sim.py
# Runs the escalation engine against a local anvil node
# (`anvil --block-time 3`). Skipped when no node is listening.

import pytest
from web3 import Web3

from txescalator.adapters.signer import LocalSigner
from txescalator.core.models import EscalationPolicy
from txescalator.core.resilient_rpc import ResilientNode
from txescalator.core.tx import TransactionManager

ANVIL_URL = "http://127.0.0.1:8545"
# anvil's first pre-funded development account
ANVIL_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcac784d7bf4f2ff80"
RECIPIENT = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"


@pytest.fixture(scope="module")
def anvil():
    w3 = Web3(Web3.HTTPProvider(ANVIL_URL))
    if not w3.is_connected():
        pytest.skip("No local anvil node. Run `anvil --block-time 3` first.")
    return w3


@pytest.mark.forked
@pytest.mark.asyncio
async def test_transaction_confirms_on_local_chain(anvil):
    node = ResilientNode(rpc_urls=[ANVIL_URL])
    await node.initialize()
    signer = LocalSigner.from_private_key(ANVIL_KEY, node, chain_id=anvil.eth.chain_id)
    policy = EscalationPolicy(gas_limit_factor=1, escalation_interval=2, poll_interval=0.5, max_escalations=5)
    manager = TransactionManager(signer, node, policy=policy)

    nonce_before = anvil.eth.get_transaction_count(signer.address)
    receipt = await manager.submit_with_escalation(RECIPIENT, b"\x00" * 32)

    assert receipt.succeeded
    assert receipt.block_number is not None
    assert anvil.eth.get_transaction_count(signer.address) == nonce_before + 1
