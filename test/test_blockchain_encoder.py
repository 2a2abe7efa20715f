"""Unit tests for BlockchainEncoder conversions."""

import pytest
import rlp
from hexbytes import HexBytes

from nvm_relayer.utils.blockchain_encoder import BlockchainEncoder


class TestBlockchainEncoder:
    """Test suite for BlockchainEncoder."""

    @pytest.mark.parametrize("value", [HexBytes("0x0102"), b"\x01\x02", "0x0102"])
    def test_to_bytes_safe(self, value):
        assert BlockchainEncoder.to_bytes_safe(value) == b"\x01\x02"

    @pytest.mark.parametrize("value, expected", [(436, 436), ("0x1b4", 436), ("436", 436), ("0x0", 0)])
    def test_to_int_safe(self, value, expected):
        assert BlockchainEncoder.to_int_safe(value) == expected

    def test_to_int_safe_rejects_bool(self):
        with pytest.raises(TypeError):
            BlockchainEncoder.to_int_safe(True)

    def test_to_bytes32_pads(self):
        assert BlockchainEncoder.to_bytes32("0x01") == b"\x00" * 31 + b"\x01"
        assert BlockchainEncoder.to_bytes32(1) == b"\x00" * 31 + b"\x01"

    def test_to_bytes32_rejects_long_values(self):
        with pytest.raises(ValueError):
            BlockchainEncoder.to_bytes32(b"\x01" * 33)

    def test_encode_proof_nodes(self):
        nodes = [HexBytes(b"\xaa" * 40), "0x" + "bb" * 33]
        assert rlp.decode(BlockchainEncoder.encode_proof_nodes(nodes)) == [b"\xaa" * 40, b"\xbb" * 33]
        assert BlockchainEncoder.encode_proof_nodes([]) == b"\xc0"
