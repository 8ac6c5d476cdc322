# /txescalator/core/models.py
# Data model for one logical transaction: the draft being escalated, the
# attempts made for it, the escalation schedule and the receipt it ends with.
from typing import Any, Mapping, Optional

from hexbytes import HexBytes
from pydantic import BaseModel, ConfigDict, Field, field_validator


def to_hex(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        return HexBytes(value).to_0x_hex()
    text = str(value)
    return text if text.startswith("0x") else "0x" + text


class EscalationPolicy(BaseModel):
    """
    Numeric knobs of the escalation protocol. Read-only during a submission;
    pass a modified copy (``policy.model_copy(update=...)``) to override.
    Intervals are in seconds.
    """
    model_config = ConfigDict(frozen=True)

    # Multiplier on the profiled gas model. High by default for L2s that
    # charge L1 data costs against the gas limit.
    gas_limit_factor: float = Field(20, gt=0)
    initial_price_factor: float = Field(1.5, gt=0)
    escalation_factor: float = Field(2.0, gt=1)
    escalation_interval: float = Field(10.0, gt=0)
    max_escalations: int = Field(5, ge=0)
    poll_interval: float = Field(1.0, gt=0)
    max_send_retries: int = Field(5, ge=1)
    send_retry_delay: float = Field(0.0, ge=0)


class TransactionDraft(BaseModel):
    """The transaction being submitted. Mutated in place across attempts."""
    model_config = ConfigDict(validate_assignment=True)

    to: str
    data: bytes = b""
    gas: Optional[int] = None
    gas_price: Optional[int] = None
    nonce: Optional[int] = None

    @field_validator("data", mode="before")
    @classmethod
    def _decode_hex(cls, value):
        if isinstance(value, str):
            return bytes(HexBytes(value))
        return value

    def to_tx_params(self, chain_id: int) -> dict:
        return {
            "to": self.to,
            "data": HexBytes(self.data).to_0x_hex(),
            "gas": self.gas,
            "gasPrice": self.gas_price,
            "nonce": self.nonce,
            "chainId": chain_id,
            "value": 0,
        }


class AttemptRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    tx_hash: str
    is_initial: bool
    nonce: int
    gas: int
    gas_price: int


class EscalationSchedule(BaseModel):
    """
    Timing state of the escalation loop. Frozen: every transition returns a
    new schedule, so the counters only ever move forward.
    """
    model_config = ConfigDict(frozen=True)

    timeout: float
    next_escalation_at: float
    escalations: int = 0
    poll_interval: float = 0.0

    @classmethod
    def start(cls, now: float, policy: EscalationPolicy) -> "EscalationSchedule":
        return cls(
            timeout=policy.escalation_interval,
            next_escalation_at=now + policy.escalation_interval,
        )

    def advance_poll(self, base_interval: float) -> "EscalationSchedule":
        # The wait grows by one base unit per poll to back off under load.
        return self.model_copy(update={"poll_interval": self.poll_interval + base_interval})

    def is_due(self, now: float) -> bool:
        return now > self.next_escalation_at

    def escalated(self, now: float, base_interval: float) -> "EscalationSchedule":
        timeout = self.timeout + base_interval
        return self.model_copy(update={
            "timeout": timeout,
            "next_escalation_at": now + timeout,
            "escalations": self.escalations + 1,
        })


class Receipt(BaseModel):
    model_config = ConfigDict(frozen=True)

    tx_hash: str
    status: int
    effective_gas_price: Optional[int] = None
    gas_used: int = 0
    block_hash: Optional[str] = None
    block_number: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    @classmethod
    def from_web3(cls, raw: Mapping[str, Any]) -> "Receipt":
        return cls(
            tx_hash=to_hex(raw["transactionHash"]),
            status=int(raw.get("status", 0)),
            effective_gas_price=raw.get("effectiveGasPrice"),
            gas_used=int(raw.get("gasUsed", 0)),
            block_hash=to_hex(raw.get("blockHash")),
            block_number=raw.get("blockNumber"),
        )
