"""
Blockchain encoding utilities for the NVM Relayer.

This module provides conversions between the hex strings returned by raw
JSON-RPC calls, web3 HexBytes values, and the bytes/ints used internally,
plus RLP encoding of Merkle proof node lists.
"""

import logging
from typing import Iterable, Union

import rlp
from hexbytes import HexBytes
from web3 import Web3

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ZERO_BYTES32 = b"\x00" * 32


class BlockchainEncoder:
    """Utilities for encoding blockchain data structures."""

    @staticmethod
    def to_bytes_safe(value: Union[HexBytes, bytes, str]) -> bytes:
        """
        Safely convert value to bytes, handling HexBytes, bytes, and hex strings.

        Args:
            value: Value to convert (HexBytes, bytes, or hex string)

        Returns:
            Bytes representation
        """
        if isinstance(value, HexBytes):
            return bytes(value)
        elif isinstance(value, bytes):
            return value
        else:
            return Web3.to_bytes(hexstr=value)

    @staticmethod
    def to_int_safe(value: Union[int, str]) -> int:
        """
        Convert a JSON-RPC quantity to an int.

        Raw responses carry quantities as hex strings ("0x1b4"); formatted web3
        responses already carry ints. Decimal strings are accepted too.
        """
        if isinstance(value, bool):
            raise TypeError(f"Expected a quantity, got {value!r}")
        if isinstance(value, int):
            return value
        if value.startswith(("0x", "0X")):
            return int(value, 16)
        return int(value)

    @staticmethod
    def to_bytes32(value: Union[HexBytes, bytes, str, int]) -> bytes:
        """Left-pad a value to a 32-byte word."""
        if isinstance(value, int):
            return value.to_bytes(32, 'big')
        raw = BlockchainEncoder.to_bytes_safe(value)
        if len(raw) > 32:
            raise ValueError(f"Value longer than 32 bytes: {Web3.to_hex(raw)}")
        return raw.rjust(32, b'\0')

    @staticmethod
    def encode_proof_nodes(nodes: Iterable[Union[HexBytes, bytes, str]]) -> bytes:
        """
        RLP encode a Merkle proof as a list of byte strings.

        eth_getProof returns each trie node already RLP-encoded; the L1 verifier
        expects the whole list wrapped in one more RLP list.

        Args:
            nodes: Proof nodes in root-to-leaf order

        Returns:
            RLP-encoded node list
        """
        return rlp.encode([BlockchainEncoder.to_bytes_safe(node) for node in nodes])
