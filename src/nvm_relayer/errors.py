"""
Error types for the NVM Relayer.

Pre-submission failures (missing transactions, receipts, incomplete L2 data,
bad proofs) are raised. Submission failures are classified with
``classify_error`` and recorded on the affected ``RelayResult``.
"""

from enum import Enum
from typing import Iterable


class RelayerError(Exception):
    """Base exception for relayer operations."""

    pass


class NotFoundError(RelayerError):
    """Raised when a requested L2 object does not exist (yet)."""

    pass


class TransactionNotFound(NotFoundError):
    """Raised when an L2 transaction is unknown or not yet mined into a block"""

    pass


class ReceiptNotFound(NotFoundError):
    """Raised when an L2 receipt is missing or has no committed state root"""

    pass


class IncompleteL2Data(RelayerError):
    """Raised when an L2 transaction or receipt lacks a field the L1 verifier needs"""

    pass


class L2RpcError(RelayerError):
    """Raised when the L2 node answers a raw JSON-RPC request with an error"""

    pass


class MessageDecodeError(RelayerError):
    """Raised when a SentMessage payload is not a relayMessage call"""

    pass


class StorageProofError(RelayerError):
    """Raised when eth_getProof returns a malformed response"""

    pass


class ProofVerificationError(RelayerError):
    """Raised when a storage proof does not show the message slot as set"""

    pass


class SubmissionError(RelayerError):
    """Base exception for failures after a relay transaction was sent."""

    pass


class TransactionReverted(SubmissionError):
    """Raised when the L1 relay transaction was mined with status 0"""

    pass


class ConfirmationTimeout(SubmissionError):
    """Raised when the L1 relay transaction is not confirmed in time"""

    pass


class InvalidStateTransition(RelayerError):
    """Raised when a RelayResult is moved backwards or out of a terminal state"""

    pass


class ErrorKind(Enum):
    """Closed classification of relay submission failures."""

    ALREADY_RELAYED = "already_relayed"
    TRANSIENT_EXECUTION = "transient_execution"
    TRANSIENT_NONCE = "transient_nonce"
    OTHER = "other"

    @property
    def is_transient(self) -> bool:
        return self in (ErrorKind.TRANSIENT_EXECUTION, ErrorKind.TRANSIENT_NONCE)


ALREADY_RELAYED_PATTERNS: tuple[str, ...] = (
    "already received",
    "already been received",
)
TRANSIENT_EXECUTION_PATTERNS: tuple[str, ...] = (
    "execution failed due to an exception",
)
TRANSIENT_NONCE_PATTERNS: tuple[str, ...] = (
    "nonce too low",
)


def classify_error(error: BaseException | str, extra_transient: Iterable[str] = ()) -> ErrorKind:
    """
    Translate a raw submission failure into an ErrorKind.

    Nodes only surface untyped failure reasons, so this matches known
    substrings of the error text (case-insensitive). Anything unrecognised
    is OTHER and treated as terminal by the submitter.

    Args:
        error: Exception raised by the L1 client, or its message
        extra_transient: Additional substrings to treat as transient execution errors

    Returns:
        The ErrorKind for this failure
    """
    text = (error if isinstance(error, str) else str(error)).lower()

    if any(pattern in text for pattern in ALREADY_RELAYED_PATTERNS):
        return ErrorKind.ALREADY_RELAYED
    if any(pattern in text for pattern in TRANSIENT_EXECUTION_PATTERNS):
        return ErrorKind.TRANSIENT_EXECUTION
    if any(pattern in text for pattern in TRANSIENT_NONCE_PATTERNS):
        return ErrorKind.TRANSIENT_NONCE
    if any(pattern.lower() in text for pattern in extra_transient if pattern):
        return ErrorKind.TRANSIENT_EXECUTION
    return ErrorKind.OTHER
