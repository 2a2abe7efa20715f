"""
Storage slot proofs for the NVM Relayer.

Fetches an account + storage Merkle-Patricia proof for a single slot with
eth_getProof and RLP-encodes it for the L1 verifier. Provider errors are not
retried here; retry policy belongs to the submission layer.
"""

import logging

import rlp
from rlp.exceptions import DecodingError as RLPDecodingError
from trie import HexaryTrie
from trie.exceptions import BadTrieProof
from web3 import Web3

from .errors import ProofVerificationError, StorageProofError
from .models import StateTrieProof
from .utils.blockchain_encoder import BlockchainEncoder

logger = logging.getLogger(__name__)

# Index of storageRoot in an RLP account [nonce, balance, storageRoot, codeHash]
ACCOUNT_STORAGE_ROOT_INDEX = 2


class StorageSlotProof:
    """Builds account and storage proofs against an L2 node."""

    def __init__(self, w3_l2: Web3):
        """
        Initialize the StorageSlotProof.

        Args:
            w3_l2: Web3 instance for the L2 chain
        """
        self.w3_l2 = w3_l2

    def prove(self, block_number: int, address: str, slot: bytes) -> StateTrieProof:
        """
        Fetch and encode the proof for one storage slot.

        Args:
            block_number: L2 block to prove against
            address: Contract holding the slot
            slot: 32-byte storage key

        Returns:
            StateTrieProof with RLP-encoded account and storage proofs

        Raises:
            StorageProofError: If the node returns no storage proof entry
        """
        slot = BlockchainEncoder.to_bytes32(slot)
        proof = self.w3_l2.eth.get_proof(
            Web3.to_checksum_address(address),
            [int.from_bytes(slot, 'big')],
            block_number,
        )

        storage_proofs = proof.get('storageProof') or []
        if not storage_proofs:
            raise StorageProofError(
                f"eth_getProof returned no storage proof for slot {Web3.to_hex(slot)} "
                f"of {address} at block {block_number}"
            )

        # Exactly one slot was requested, so only the first entry is relevant
        account_nodes = tuple(BlockchainEncoder.to_bytes_safe(n) for n in proof['accountProof'])
        storage_nodes = tuple(BlockchainEncoder.to_bytes_safe(n) for n in storage_proofs[0]['proof'])

        logger.debug(
            f"Proof for slot {Web3.to_hex(slot)[:10]}... at block {block_number}: "
            f"{len(account_nodes)} account nodes, {len(storage_nodes)} storage nodes"
        )

        return StateTrieProof(
            account_proof=BlockchainEncoder.encode_proof_nodes(account_nodes),
            storage_proof=BlockchainEncoder.encode_proof_nodes(storage_nodes),
            account_proof_nodes=account_nodes,
            storage_proof_nodes=storage_nodes,
        )

    @staticmethod
    def verify(state_root: bytes, address: str, slot: bytes, proof: StateTrieProof) -> bytes:
        """
        Check locally that a proof shows ``slot`` set under ``state_root``.

        Walks the account proof from the state root, then the storage proof
        from the account's storage root.

        Returns:
            The RLP-encoded slot value

        Raises:
            ProofVerificationError: If the account is absent, the slot is empty,
                or either proof does not match its root
        """
        state_root = BlockchainEncoder.to_bytes32(state_root)
        slot = BlockchainEncoder.to_bytes32(slot)
        account_key = bytes(Web3.keccak(BlockchainEncoder.to_bytes_safe(address)))
        storage_key = bytes(Web3.keccak(slot))

        try:
            account_rlp = HexaryTrie.get_from_proof(
                state_root,
                account_key,
                [rlp.decode(node) for node in proof.account_proof_nodes],
            )
        except (BadTrieProof, RLPDecodingError) as e:
            raise ProofVerificationError(f"Invalid account proof for {address}: {e}") from e
        if not account_rlp:
            raise ProofVerificationError(f"Account {address} is absent from state root {Web3.to_hex(state_root)}")

        storage_root = rlp.decode(account_rlp)[ACCOUNT_STORAGE_ROOT_INDEX]

        try:
            value = HexaryTrie.get_from_proof(
                storage_root,
                storage_key,
                [rlp.decode(node) for node in proof.storage_proof_nodes],
            )
        except (BadTrieProof, RLPDecodingError) as e:
            raise ProofVerificationError(f"Invalid storage proof for slot {Web3.to_hex(slot)}: {e}") from e

        if not value or not rlp.decode(value).lstrip(b'\0'):
            raise ProofVerificationError(
                f"Slot {Web3.to_hex(slot)} of {address} is empty: the proof shows non-inclusion"
            )
        return value
