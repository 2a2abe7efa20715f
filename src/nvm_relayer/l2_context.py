"""
L2 transaction context for the L1 verifier.

NVM nodes return extra fields on transactions (L1 anchoring block and
timestamp, queue origin, raw transaction) and receipts (state root, operator
signature) that web3's result formatters do not know about. This module
fetches the raw JSON-RPC responses, parses them into value types and builds
the transaction/receipt structs the L1 messenger expects.
"""

import logging
from dataclasses import dataclass
from typing import Any

from web3 import Web3
from web3.types import RPCEndpoint

from .config import DEFAULT_CHAIN_CONSTANTS, ChainConstants
from .errors import IncompleteL2Data, L2RpcError
from .models import L2BlockContext, NVMReceipt, NVMTransaction, QueueOrigin
from .utils.blockchain_encoder import ZERO_ADDRESS, ZERO_BYTES32, BlockchainEncoder

logger = logging.getLogger(__name__)


def _raw_request(w3: Web3, method: str, params: list[Any]) -> dict[str, Any] | None:
    response = w3.provider.make_request(RPCEndpoint(method), params)
    if error := response.get('error'):
        message = error.get('message', error) if isinstance(error, dict) else error
        raise L2RpcError(f"{method} failed: {message}")
    return response.get('result')


def fetch_l2_transaction(w3: Web3, tx_hash: str) -> dict[str, Any] | None:
    """Fetch an L2 transaction with its NVM fields, or None if unknown."""
    return _raw_request(w3, "eth_getTransactionByHash", [tx_hash])


def fetch_l2_receipt(w3: Web3, tx_hash: str) -> dict[str, Any] | None:
    """Fetch an L2 receipt with its NVM fields, or None if unknown."""
    return _raw_request(w3, "eth_getTransactionReceipt", [tx_hash])


def _optional_int(raw: dict[str, Any], key: str) -> int | None:
    value = raw.get(key)
    return None if value is None else BlockchainEncoder.to_int_safe(value)


def _optional_bytes(raw: dict[str, Any], key: str) -> bytes | None:
    value = raw.get(key)
    return None if value is None else BlockchainEncoder.to_bytes_safe(value)


@dataclass(frozen=True, slots=True)
class L2Transaction:
    """An L2 transaction augmented with its NVM fields."""
    hash: str
    block_number: int | None
    l1_block_number: int | None
    l1_timestamp: int | None
    l1_tx_origin: str | None
    queue_origin: str | None
    raw_transaction: bytes | None

    @classmethod
    def from_rpc(cls, raw: dict[str, Any]) -> "L2Transaction":
        return cls(
            hash=raw.get('hash', ''),
            block_number=_optional_int(raw, 'blockNumber'),
            l1_block_number=_optional_int(raw, 'l1BlockNumber'),
            l1_timestamp=_optional_int(raw, 'l1Timestamp'),
            l1_tx_origin=raw.get('l1TxOrigin') or None,
            queue_origin=raw.get('queueOrigin'),
            raw_transaction=_optional_bytes(raw, 'rawTransaction'),
        )


@dataclass(frozen=True, slots=True)
class L2Receipt:
    """An L2 receipt augmented with its NVM fields."""
    transaction_hash: str
    block_number: int | None
    root: bytes | None
    nvm_transaction_hash: bytes | None
    operator_signature: bytes | None

    @classmethod
    def from_rpc(cls, raw: dict[str, Any]) -> "L2Receipt":
        return cls(
            transaction_hash=raw.get('transactionHash', ''),
            block_number=_optional_int(raw, 'blockNumber'),
            root=_optional_bytes(raw, 'root'),
            nvm_transaction_hash=_optional_bytes(raw, 'nvmTransactionHash'),
            operator_signature=_optional_bytes(raw, 'operatorSignature'),
        )


def _require(value: Any, field_name: str, source: str) -> Any:
    if value is None:
        raise IncompleteL2Data(f"L2 {source} is missing required field '{field_name}'")
    return value


def build_context(
    l2_tx: L2Transaction,
    l2_receipt: L2Receipt,
    constants: ChainConstants = DEFAULT_CHAIN_CONSTANTS,
) -> L2BlockContext:
    """
    Build the NVM transaction and receipt structs for an L1 relay call.

    Args:
        l2_tx: Augmented L2 transaction
        l2_receipt: Augmented receipt of the same transaction
        constants: Protocol constants supplying entrypoint and gas limit

    Returns:
        L2BlockContext for the L1 messenger

    Raises:
        IncompleteL2Data: If a field the verifier needs is missing
    """
    if l2_tx.queue_origin == constants.sequencer_queue_origin:
        queue_origin = QueueOrigin.SEQUENCER
    else:
        queue_origin = QueueOrigin.L1TOL2_QUEUE

    transaction = NVMTransaction(
        timestamp=_require(l2_tx.l1_timestamp, 'l1Timestamp', 'transaction'),
        block_number=_require(l2_tx.l1_block_number, 'l1BlockNumber', 'transaction'),
        l1_queue_origin=queue_origin,
        l1_tx_origin=Web3.to_checksum_address(l2_tx.l1_tx_origin or ZERO_ADDRESS),
        entrypoint=Web3.to_checksum_address(constants.sequencer_entrypoint),
        gas_limit=constants.l1_gas_limit,
        data=_require(l2_tx.raw_transaction, 'rawTransaction', 'transaction'),
    )

    receipt = NVMReceipt(
        index=_require(l2_receipt.block_number, 'blockNumber', 'receipt'),
        state_root=_require(l2_receipt.root, 'root', 'receipt'),
        nvm_transaction_hash=l2_receipt.nvm_transaction_hash or ZERO_BYTES32,
        operator_signature=l2_receipt.operator_signature or ZERO_BYTES32,
    )

    logger.debug(
        f"Built L2 context: L2 block {receipt.index}, L1 block {transaction.block_number}, "
        f"queue origin {queue_origin.name}"
    )
    return L2BlockContext(transaction=transaction, receipt=receipt)
