"""Shared builders for the relayer test suite."""

from typing import Any
from unittest.mock import MagicMock

import pytest
from eth_abi import encode
from hexbytes import HexBytes
from web3 import Web3

from nvm_relayer.message_codec import MessageCodec
from nvm_relayer.models import CrossDomainMessage, CrossDomainMessageProof

TX_HASH = "0x" + "ab" * 32
OTHER_TX_HASH = "0x" + "cd" * 32
L2_BLOCK = 1234
STATE_ROOT = "0x" + "5e" * 32
TARGET_A = Web3.to_checksum_address("0x" + "a1" * 20)
TARGET_B = Web3.to_checksum_address("0x" + "b2" * 20)
SENDER = Web3.to_checksum_address("0x" + "c3" * 20)
L1_MESSENGER = Web3.to_checksum_address("0x" + "d4" * 20)


def make_message(nonce: int = 5, target: str = TARGET_A, payload: bytes = b"\x12\x34") -> CrossDomainMessage:
    return CrossDomainMessage(target=target, sender=SENDER, message=payload, message_nonce=nonce)


def make_proof(tag: int = 1) -> CrossDomainMessageProof:
    return CrossDomainMessageProof(
        state_root=bytes([tag]) * 32,
        state_trie_witness=b"\xc1\x01",
        storage_trie_witness=b"\xc1\x02",
    )


def sent_message_log(message: CrossDomainMessage, log_index: int, tx_hash: str = TX_HASH) -> dict[str, Any]:
    """A SentMessage log as returned by eth_getLogs."""
    return {
        'address': "0x4200000000000000000000000000000000000007",
        'data': HexBytes(encode(["bytes"], [MessageCodec.encode(message)])),
        'logIndex': log_index,
        'blockNumber': L2_BLOCK,
        'transactionHash': HexBytes(tx_hash),
    }


def raw_l2_transaction(**overrides: Any) -> dict[str, Any]:
    raw = {
        'hash': TX_HASH,
        'blockNumber': hex(L2_BLOCK),
        'l1BlockNumber': hex(9000),
        'l1Timestamp': hex(1_700_000_000),
        'l1TxOrigin': None,
        'queueOrigin': "sequencer",
        'rawTransaction': "0xf86c0a85",
    }
    raw.update(overrides)
    return raw


def raw_l2_receipt(**overrides: Any) -> dict[str, Any]:
    raw = {
        'transactionHash': TX_HASH,
        'blockNumber': hex(L2_BLOCK),
        'root': STATE_ROOT,
        'status': "0x1",
    }
    raw.update(overrides)
    return raw


class FakeL2:
    """MagicMock-backed L2 Web3 answering raw requests from dicts."""

    def __init__(self) -> None:
        self.transactions: dict[str, dict[str, Any]] = {TX_HASH: raw_l2_transaction()}
        self.receipts: dict[str, dict[str, Any]] = {TX_HASH: raw_l2_receipt()}
        self.w3 = MagicMock()
        self.w3.provider.make_request.side_effect = self._make_request
        self.w3.eth.get_logs.return_value = []
        self.w3.eth.get_proof.return_value = {
            'accountProof': [HexBytes(b"\xaa" * 40), HexBytes(b"\xbb" * 40)],
            'storageProof': [{'key': 0, 'value': 1, 'proof': [HexBytes(b"\xcc" * 40)]}],
        }

    def _make_request(self, method: str, params: list[Any]) -> dict[str, Any]:
        if method == "eth_getTransactionByHash":
            return {'jsonrpc': "2.0", 'id': 1, 'result': self.transactions.get(params[0])}
        if method == "eth_getTransactionReceipt":
            return {'jsonrpc': "2.0", 'id': 1, 'result': self.receipts.get(params[0])}
        return {'jsonrpc': "2.0", 'id': 1, 'error': {'code': -32601, 'message': f"unknown method {method}"}}


@pytest.fixture
def fake_l2() -> FakeL2:
    return FakeL2()
