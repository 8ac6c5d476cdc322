import asyncio

import pytest

from txescalator.adapters.mock import MockNode, MockSigner
from txescalator.core.models import EscalationPolicy

RECIPIENT = "0x" + "22" * 20


class FakeClock:
    """Virtual monotonic clock; ``sleep`` advances it instead of waiting."""
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def policy():
    return EscalationPolicy(
        gas_limit_factor=2,
        initial_price_factor=1.5,
        escalation_factor=2,
        escalation_interval=10,
        max_escalations=3,
        poll_interval=1,
        max_send_retries=5,
        send_retry_delay=0,
    )


@pytest.fixture
def node():
    return MockNode(gas_price=10**9, nonce=7)


@pytest.fixture
def signer(node):
    return MockSigner(node)
