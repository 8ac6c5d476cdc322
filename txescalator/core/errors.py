# /txescalator/core/errors.py
# Error taxonomy of the submission engine and the single translation point
# from node rejections to a structured error kind.
from enum import Enum


class SendErrorKind(str, Enum):
    FEE_TOO_LOW = "fee_too_low"
    SEQUENCE_CONFLICT = "sequence_conflict"
    OTHER = "other"


# Checked in this order; the first match wins.
FEE_TOO_LOW_MARKERS = ("intrinsic gas too low", "gas")
SEQUENCE_CONFLICT_MARKERS = ("nonce", "replacement transaction underpriced")
# The node already holds these exact signed bytes: an earlier attempt got
# through even if its reply was lost. Not a rejection.
ALREADY_KNOWN_MARKERS = ("already known", "known transaction")


class SendRejected(Exception):
    """A node rejection that already carries its structured kind."""
    def __init__(self, kind: SendErrorKind, message: str = ""):
        super().__init__(message or kind.value)
        self.kind = kind


class EscalationError(Exception):
    """Base class of every error the engine raises itself. Never retried."""


class PreconditionViolated(EscalationError):
    pass


class IncompatibleSignerKind(EscalationError):
    pass


class SignerUnavailable(EscalationError):
    pass


class SequenceConflict(EscalationError):
    """A resend collided with the nonce of an already accepted attempt."""


class SendExhausted(EscalationError):
    def __init__(self, attempts: int):
        super().__init__(f"Failed to send transaction after {attempts} attempts")
        self.attempts = attempts


class SendFailed(EscalationError):
    def __init__(self, attempts: int):
        super().__init__(f"Initial send failed after {attempts} attempts")
        self.attempts = attempts


class EscalationExhausted(EscalationError):
    def __init__(self, escalations: int, attempts: int):
        super().__init__(
            f"Transaction was not confirmed after {escalations} gas price escalations "
            f"({attempts} submitted attempts)"
        )
        self.escalations = escalations
        self.attempts = attempts


def classify_message(message: str) -> SendErrorKind:
    text = message.lower()
    if any(marker in text for marker in FEE_TOO_LOW_MARKERS):
        return SendErrorKind.FEE_TOO_LOW
    if any(marker in text for marker in SEQUENCE_CONFLICT_MARKERS):
        return SendErrorKind.SEQUENCE_CONFLICT
    return SendErrorKind.OTHER


def classify_send_error(exc: BaseException) -> SendErrorKind:
    """
    Maps a failed send to its SendErrorKind.

    Signers that know the kind raise SendRejected; anything else (plain RPC
    errors from web3 and friends) is classified from its message text.
    """
    kind = getattr(exc, "kind", None)
    if isinstance(kind, SendErrorKind):
        return kind
    return classify_message(error_message(exc))


def is_already_known(exc: BaseException) -> bool:
    text = error_message(exc).lower()
    return any(marker in text for marker in ALREADY_KNOWN_MARKERS)


def error_message(exc: BaseException) -> str:
    message = exc.args[0] if exc.args else str(exc)
    if isinstance(message, dict):
        # web3 RPC errors carry the JSON-RPC error object
        message = message.get("message", "")
    return str(message)
