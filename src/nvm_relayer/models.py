"""
Shared data models for the NVM Relayer.

This module contains the message, proof, L2 context and relay result types
passed between the discovery, proof and submission components.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any

from web3.types import TxReceipt

from .errors import InvalidStateTransition


@dataclass(frozen=True, slots=True)
class CrossDomainMessage:
    """A cross-domain call intent decoded from an L2 SentMessage event.

    Attributes:
        target: L1 address the call is executed against
        sender: L2 address that sent the message
        message: ABI-encoded calldata for the target
        message_nonce: Nonce assigned by the L2 messenger
    """
    target: str
    sender: str
    message: bytes
    message_nonce: int

    def __str__(self) -> str:
        return (
            f"CrossDomainMessage(nonce={self.message_nonce}, "
            f"sender={self.sender[:10]}..., target={self.target[:10]}...)"
        )


@dataclass(frozen=True, slots=True)
class StateTrieProof:
    """Account and storage proofs for one slot, as returned by eth_getProof.

    Attributes:
        account_proof: RLP-encoded list of account trie nodes
        storage_proof: RLP-encoded list of storage trie nodes
        account_proof_nodes: Raw account trie nodes
        storage_proof_nodes: Raw storage trie nodes
    """
    account_proof: bytes
    storage_proof: bytes
    account_proof_nodes: tuple[bytes, ...] = ()
    storage_proof_nodes: tuple[bytes, ...] = ()


@dataclass(frozen=True, slots=True)
class CrossDomainMessageProof:
    """Witness that a message's storage slot was set at a given L2 state root."""
    state_root: bytes
    state_trie_witness: bytes
    storage_trie_witness: bytes

    def to_abi(self) -> dict[str, Any]:
        """Struct layout expected by L1CrossDomainMessenger.relayMessage."""
        return {
            'stateRoot': self.state_root,
            'stateTrieWitness': self.state_trie_witness,
            'storageTrieWitness': self.storage_trie_witness,
        }


class QueueOrigin(IntEnum):
    SEQUENCER = 0
    L1TOL2_QUEUE = 1


@dataclass(frozen=True, slots=True)
class NVMTransaction:
    """L2 transaction fields the L1 verifier uses to anchor the L2 block."""
    timestamp: int
    block_number: int
    l1_queue_origin: QueueOrigin
    l1_tx_origin: str
    entrypoint: str
    gas_limit: int
    data: bytes

    def to_abi(self) -> dict[str, Any]:
        return {
            'timestamp': self.timestamp,
            'blockNumber': self.block_number,
            'l1QueueOrigin': int(self.l1_queue_origin),
            'l1TxOrigin': self.l1_tx_origin,
            'entrypoint': self.entrypoint,
            'gasLimit': self.gas_limit,
            'data': self.data,
        }


@dataclass(frozen=True, slots=True)
class NVMReceipt:
    """L2 receipt fields the L1 verifier uses to check the claimed state root."""
    index: int
    state_root: bytes
    nvm_transaction_hash: bytes
    operator_signature: bytes

    def to_abi(self) -> dict[str, Any]:
        return {
            'index': self.index,
            'stateRoot': self.state_root,
            'nvmTransactionHash': self.nvm_transaction_hash,
            'operatorSignature': self.operator_signature,
        }


@dataclass(frozen=True, slots=True)
class L2BlockContext:
    transaction: NVMTransaction
    receipt: NVMReceipt


class RelayOutcome(Enum):
    NOT_SENT = "not_sent"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    ALREADY_RELAYED = "already_relayed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self not in (RelayOutcome.NOT_SENT, RelayOutcome.SUBMITTING)


_ALLOWED_TRANSITIONS: dict[RelayOutcome, frozenset[RelayOutcome]] = {
    RelayOutcome.NOT_SENT: frozenset({RelayOutcome.SUBMITTING}),
    RelayOutcome.SUBMITTING: frozenset({
        RelayOutcome.SUCCESS,
        RelayOutcome.ALREADY_RELAYED,
        RelayOutcome.FAILED,
        RelayOutcome.CANCELLED,
    }),
}


@dataclass(slots=True)
class RelayResult:
    """Outcome of relaying one message.

    Created as NOT_SENT before submission starts and mutated in place by the
    submitter. Outcomes only move forward; once terminal the result is final.

    Attributes:
        message: The relayed message
        proof: Inclusion proof submitted with the message
        outcome: Current state of the message
        errors: Errors that made the message fail
        transaction_receipt: L1 receipt when the relay succeeded
        attempts: Number of relay transactions sent for this message
    """
    message: CrossDomainMessage
    proof: CrossDomainMessageProof
    outcome: RelayOutcome = RelayOutcome.NOT_SENT
    errors: list[BaseException] = field(default_factory=list)
    transaction_receipt: TxReceipt | None = None
    attempts: int = 0

    def transition(self, outcome: RelayOutcome, receipt: TxReceipt | None = None) -> None:
        """Move to ``outcome``, refusing any backwards or out-of-terminal move."""
        if outcome not in _ALLOWED_TRANSITIONS.get(self.outcome, frozenset()):
            raise InvalidStateTransition(
                f"Cannot move relay of nonce {self.message.message_nonce} "
                f"from {self.outcome.name} to {outcome.name}"
            )
        self.outcome = outcome
        if receipt is not None:
            self.transaction_receipt = receipt
