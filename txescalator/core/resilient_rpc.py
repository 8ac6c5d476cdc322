# /txescalator/core/resilient_rpc.py
# Multi-node async node client: fee and nonce reads go to the primary,
# receipt lookups fall through every reachable node.
import asyncio
import logging
from typing import List, Optional

from aiohttp import ClientError, ClientTimeout
from tenacity import before_sleep_log, retry, retry_if_exception_type, stop_after_attempt, wait_exponential
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import TransactionNotFound
from web3.middleware import ExtraDataToPOAMiddleware

from txescalator.core.config import settings
from txescalator.core.logger import get_logger
from txescalator.core.models import Receipt

log = get_logger(__name__)

# Fee and nonce reads are idempotent. Only transport failures are retried;
# a node that answers with an error is not asked again.
retriable_network_call = retry(
    retry=retry_if_exception_type((ConnectionError, asyncio.TimeoutError, ClientError)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=5),
    before_sleep=before_sleep_log(log, logging.WARNING),
    reraise=True,
)


class ResilientNode:
    def __init__(self, rpc_urls: Optional[List[str]] = None, timeout: Optional[int] = None):
        self.rpc_urls = rpc_urls if rpc_urls is not None else settings.get_rpc_urls()
        self.timeout = timeout or settings.RPC_TIMEOUT_SECONDS
        self.providers: List[AsyncWeb3] = []
        self.primary_provider: Optional[AsyncWeb3] = None

    async def initialize(self):
        if self.providers:
            return
        if len(self.rpc_urls) < 2:
            log.warning("RESILIENCE_DEGRADED_LT_2_RPCS", count=len(self.rpc_urls))

        for url in self.rpc_urls:
            provider = AsyncWeb3(AsyncHTTPProvider(url, request_kwargs={"timeout": ClientTimeout(total=self.timeout)}))
            # POA and most L2 chains put more than 32 bytes in extraData.
            provider.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
            if await provider.is_connected():
                self.providers.append(provider)
            else:
                log.warning("RPC_NODE_UNREACHABLE", url=url)

        if not self.providers:
            raise ConnectionError("All RPC nodes are unreachable.")
        self.primary_provider = self.providers[0]
        log.info("RESILIENT_NODE_INITIALIZED", rpc_count=len(self.providers))

    def get_primary_provider(self) -> AsyncWeb3:
        """Returns the primary provider, used for sending transactions."""
        if self.primary_provider is None:
            raise ConnectionError("ResilientNode.initialize() has not been awaited")
        return self.primary_provider

    @retriable_network_call
    async def current_gas_price(self) -> int:
        return await self.get_primary_provider().eth.gas_price

    @retriable_network_call
    async def get_transaction_count(self, address: str, block_identifier: str = "pending") -> int:
        return await self.get_primary_provider().eth.get_transaction_count(address, block_identifier)

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Receipt]:
        """Receipt of ``tx_hash`` from the first node that has one, else None."""
        for provider in self.providers or [self.get_primary_provider()]:
            try:
                raw = await provider.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                continue
            except Exception as e:
                log.warning("RPC_RECEIPT_LOOKUP_FAILED", url=provider.provider.endpoint_uri,
                            tx_hash=tx_hash, error=str(e))
                continue
            return Receipt.from_web3(raw)
        return None

    async def send_raw_transaction(self, raw_transaction: bytes) -> str:
        tx_hash = await self.get_primary_provider().eth.send_raw_transaction(raw_transaction)
        return tx_hash.to_0x_hex()
