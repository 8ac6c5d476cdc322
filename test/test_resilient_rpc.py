import pytest
from hexbytes import HexBytes
from web3.exceptions import TransactionNotFound

from txescalator.core.resilient_rpc import ResilientNode

TX_HASH = "0x" + "aa" * 32


class FakeEth:
    def __init__(self, receipt=None, error=None, gas_price=0, nonce=0, gas_price_errors=()):
        self.receipt = receipt
        self.error = error
        self._gas_price = gas_price
        self.gas_price_errors = list(gas_price_errors)
        self.gas_price_calls = 0
        self.nonce = nonce
        self.count_calls = []

    @property
    def gas_price(self):
        async def _gas_price():
            self.gas_price_calls += 1
            if self.gas_price_errors:
                raise self.gas_price_errors.pop(0)
            return self._gas_price
        return _gas_price()

    async def get_transaction_count(self, address, block_identifier):
        self.count_calls.append((address, block_identifier))
        return self.nonce

    async def get_transaction_receipt(self, tx_hash):
        if self.error:
            raise self.error
        return self.receipt


class FakeProvider:
    def __init__(self, url, **eth_kwargs):
        self.eth = FakeEth(**eth_kwargs)
        self.provider = type("P", (), {"endpoint_uri": url})()


def make_node(*providers):
    node = ResilientNode(rpc_urls=[p.provider.endpoint_uri for p in providers])
    node.providers = list(providers)
    node.primary_provider = providers[0]
    return node


RAW_RECEIPT = {
    "transactionHash": HexBytes(TX_HASH),
    "status": 1,
    "effectiveGasPrice": 3 * 10**9,
    "gasUsed": 52_000,
    "blockHash": HexBytes("0x" + "bb" * 32),
    "blockNumber": 12,
}


@pytest.mark.asyncio
async def test_receipt_falls_through_to_lagging_nodes():
    node = make_node(
        FakeProvider("http://a", error=TransactionNotFound("not found")),
        FakeProvider("http://b", error=ConnectionError("down")),
        FakeProvider("http://c", receipt=RAW_RECEIPT),
    )
    receipt = await node.get_transaction_receipt(TX_HASH)
    assert receipt.tx_hash == TX_HASH
    assert receipt.succeeded
    assert receipt.effective_gas_price == 3 * 10**9
    assert receipt.gas_used == 52_000
    assert receipt.block_hash == "0x" + "bb" * 32
    assert receipt.block_number == 12


@pytest.mark.asyncio
async def test_receipt_missing_everywhere_is_none():
    node = make_node(FakeProvider("http://a", error=TransactionNotFound("not found")))
    assert await node.get_transaction_receipt(TX_HASH) is None


@pytest.mark.asyncio
async def test_reads_go_to_primary():
    primary = FakeProvider("http://a", gas_price=7, nonce=11)
    node = make_node(primary, FakeProvider("http://b", gas_price=99, nonce=99))
    assert await node.current_gas_price() == 7
    assert await node.get_transaction_count("0xabc", "latest") == 11
    assert primary.eth.count_calls == [("0xabc", "latest")]


@pytest.mark.asyncio
async def test_no_reachable_nodes():
    node = ResilientNode(rpc_urls=[])
    with pytest.raises(ConnectionError):
        await node.initialize()
    with pytest.raises(ConnectionError):
        node.get_primary_provider()


@pytest.mark.asyncio
async def test_transport_errors_on_reads_are_retried():
    primary = FakeProvider("http://a", gas_price=7, gas_price_errors=[ConnectionError("reset")])
    node = make_node(primary)
    assert await node.current_gas_price() == 7
    assert primary.eth.gas_price_calls == 2


@pytest.mark.asyncio
async def test_node_errors_on_reads_are_not_retried():
    primary = FakeProvider("http://a", gas_price_errors=[ValueError("method not found")])
    node = make_node(primary)
    with pytest.raises(ValueError):
        await node.current_gas_price()
    assert primary.eth.gas_price_calls == 1
