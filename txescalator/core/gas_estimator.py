# /txescalator/core/gas_estimator.py
# Gas limit and gas price calculation for escalated submission.

from decimal import ROUND_HALF_UP, Decimal
from typing import NamedTuple

from hexbytes import HexBytes

from txescalator.core.logger import get_logger
from txescalator.core.models import EscalationPolicy

log = get_logger(__name__)

# Fixed-point scale for multiplying integer wei amounts by float factors.
PRECISION = 100


class GasModel(NamedTuple):
    """Linear gas model: base + per_byte * max(0, len(data) - baseline)."""
    base_gas: int
    per_byte_gas: int
    baseline_length: int


# Profiled against commitment transactions at ~100K gas for ~778 bytes of
# calldata and ~366 gas per byte above that. The constants round both up
# (150K, 400) so the model stays above the profile. Re-profile before changing.
DEFAULT_GAS_MODEL = GasModel(base_gas=150_000, per_byte_gas=400, baseline_length=778)


def scale(value: int, factor: float) -> int:
    """Multiplies an integer amount by ``factor`` in fixed point."""
    factor_fp = int((Decimal(str(factor)) * PRECISION).to_integral_value(rounding=ROUND_HALF_UP))
    return int(value) * factor_fp // PRECISION


def estimate_gas_limit(data, gas_limit_factor: float, model: GasModel = DEFAULT_GAS_MODEL) -> int:
    length = len(HexBytes(data)) if isinstance(data, str) else len(data)
    base = model.base_gas + model.per_byte_gas * max(0, length - model.baseline_length)
    return scale(base, gas_limit_factor)


class GasEstimator:
    """
    Computes the gas limit and the initial and escalated gas prices of a
    logical transaction.
    """
    def __init__(self, node, model: GasModel = DEFAULT_GAS_MODEL):
        self.node = node
        self.model = model

    def estimate_gas_limit(self, data, policy: EscalationPolicy) -> int:
        gas = estimate_gas_limit(data, policy.gas_limit_factor, self.model)
        log.debug("GAS_LIMIT_ESTIMATED", gas=gas, factor=policy.gas_limit_factor)
        return gas

    async def initial_gas_price(self, policy: EscalationPolicy) -> int:
        """
        Network gas price plus the initial premium. This is the only place a
        gas price is read from the node; escalations work from its result.
        """
        current = await self.node.current_gas_price()
        gas_price = scale(current, policy.initial_price_factor)
        log.debug("INITIAL_GAS_PRICE", current_gas_price=current, gas_price=gas_price)
        return gas_price

    def escalate(self, gas_price: int, policy: EscalationPolicy) -> int:
        """Next price for a replacement; always at least one wei above ``gas_price``."""
        return max(scale(gas_price, policy.escalation_factor), gas_price + 1)
