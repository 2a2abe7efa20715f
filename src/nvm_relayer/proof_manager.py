"""
Proof assembly for the NVM Relayer.

This module derives the L2ToL1MessagePasser storage slot of every message
sent in an L2 transaction and pairs each message with a Merkle proof of that
slot at the transaction's block.
"""

import logging

from web3 import Web3

from .config import DEFAULT_CHAIN_CONSTANTS, ChainConstants
from .errors import ReceiptNotFound
from .l2_context import L2Receipt, fetch_l2_receipt
from .message_codec import MessageCodec
from .message_discovery import MessageDiscovery
from .models import CrossDomainMessage, CrossDomainMessageProof
from .storage_proof import StorageSlotProof
from .utils.blockchain_encoder import ZERO_BYTES32, BlockchainEncoder

logger = logging.getLogger(__name__)

# Storage base slot of the message passer's sentMessages mapping
SENT_MESSAGES_MAPPING_SLOT = ZERO_BYTES32


def derive_storage_slot(encoded_message: bytes, messenger_address: str) -> bytes:
    """
    Compute the storage slot recording a message in the L2ToL1MessagePasser.

    The passer stores ``sentMessages[keccak256(message ++ messenger)] = true``,
    and a Solidity mapping value lives at ``keccak256(key ++ base_slot)``.

    Args:
        encoded_message: relayMessage calldata of the message
        messenger_address: L2 messenger that passed the message

    Returns:
        32-byte storage slot
    """
    message_hash = Web3.keccak(
        BlockchainEncoder.to_bytes_safe(encoded_message)
        + BlockchainEncoder.to_bytes_safe(messenger_address)
    )
    return bytes(Web3.keccak(bytes(message_hash) + SENT_MESSAGES_MAPPING_SLOT))


class ProofAssembler:
    """Produces inclusion proofs for the messages of an L2 transaction."""

    def __init__(
        self,
        w3_l2: Web3,
        discovery: MessageDiscovery | None = None,
        slot_prover: StorageSlotProof | None = None,
        constants: ChainConstants = DEFAULT_CHAIN_CONSTANTS,
        verify_proofs: bool = False,
    ):
        """
        Initialize the ProofAssembler.

        Args:
            w3_l2: Web3 instance for the L2 chain
            discovery: Message discovery (defaults to the constants' L2 messenger)
            slot_prover: Storage proof builder
            constants: Protocol constants
            verify_proofs: Check every proof locally before returning it
        """
        self.w3_l2 = w3_l2
        self.constants = constants
        self.discovery = discovery or MessageDiscovery(w3_l2, constants.l2_cross_domain_messenger)
        self.slot_prover = slot_prover or StorageSlotProof(w3_l2)
        self.verify_proofs = verify_proofs

    def get_receipt(self, tx_hash: str) -> L2Receipt:
        """
        Fetch the L2 receipt a proof will be tied to.

        Raises:
            ReceiptNotFound: If the receipt is absent or has no state root yet
        """
        raw_receipt = fetch_l2_receipt(self.w3_l2, tx_hash)
        if raw_receipt is None:
            raise ReceiptNotFound(f"Unable to find receipt with hash: {tx_hash}")
        return self.check_receipt(tx_hash, L2Receipt.from_rpc(raw_receipt))

    @staticmethod
    def check_receipt(tx_hash: str, receipt: L2Receipt) -> L2Receipt:
        """Reject a receipt the L2 node has not committed a state root for yet."""
        if receipt.root is None or receipt.block_number is None:
            raise ReceiptNotFound(f"Receipt for {tx_hash} has no committed state root yet")
        return receipt

    async def assemble(
        self,
        tx_hash: str,
        messenger_address: str | None = None,
        receipt: L2Receipt | None = None,
    ) -> list[tuple[CrossDomainMessage, CrossDomainMessageProof]]:
        """
        Find every message sent in an L2 transaction and prove its inclusion.

        Args:
            tx_hash: L2 transaction hash
            messenger_address: L2 messenger the messages were sent through
            receipt: Receipt of ``tx_hash`` already fetched by the caller; the
                proofs and the relayed context then share one snapshot

        Returns:
            (message, proof) pairs in emission order

        Raises:
            ReceiptNotFound: If the receipt or its state root is missing
        """
        messenger_address = Web3.to_checksum_address(
            messenger_address or self.discovery.messenger_address
        )
        if receipt is None:
            receipt = self.get_receipt(tx_hash)
        else:
            receipt = self.check_receipt(tx_hash, receipt)

        discovery = self.discovery
        if messenger_address != discovery.messenger_address:
            discovery = MessageDiscovery(self.w3_l2, messenger_address)
        # The receipt already names the block, so the transaction is not fetched again
        messages = await discovery.discover_by_block(receipt.block_number, expected_tx_hash=tx_hash)

        pairs: list[tuple[CrossDomainMessage, CrossDomainMessageProof]] = []
        for message in messages:
            proof = self.prove_message(message, messenger_address, receipt)
            pairs.append((message, proof))

        logger.info(f"Assembled {len(pairs)} message proofs for tx {tx_hash[:10]}... at L2 block {receipt.block_number}")
        return pairs

    def prove_message(
        self,
        message: CrossDomainMessage,
        messenger_address: str,
        receipt: L2Receipt,
    ) -> CrossDomainMessageProof:
        """Build the inclusion proof of one message at the receipt's block."""
        slot = derive_storage_slot(MessageCodec.encode(message), messenger_address)
        logger.info(f"Proving {message} at slot {Web3.to_hex(slot)[:10]}...")

        state_trie_proof = self.slot_prover.prove(
            receipt.block_number,
            self.constants.l2_to_l1_message_passer,
            slot,
        )

        if self.verify_proofs:
            self.slot_prover.verify(
                receipt.root,
                self.constants.l2_to_l1_message_passer,
                slot,
                state_trie_proof,
            )

        return CrossDomainMessageProof(
            state_root=receipt.root,
            state_trie_witness=state_trie_proof.account_proof,
            storage_trie_witness=state_trie_proof.storage_proof,
        )
