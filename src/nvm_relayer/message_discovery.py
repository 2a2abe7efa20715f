"""
Discovery of L2 to L1 messages.

Finds the SentMessage events emitted by the L2 cross domain messenger in one
L2 block and decodes them into CrossDomainMessage objects.

Precondition: the L2 chain produces one user transaction per block. Events
are queried by block, so if a block ever holds several transactions, messages
from all of them are returned for any one of their hashes.
"""

import logging
from typing import Any

from web3 import Web3
from web3.types import FilterParams, LogReceipt

from .errors import MessageDecodeError, TransactionNotFound
from .l2_context import L2Transaction, fetch_l2_transaction
from .message_codec import MessageCodec
from .models import CrossDomainMessage
from .utils.blockchain_encoder import BlockchainEncoder

logger = logging.getLogger(__name__)


class MessageDiscovery:
    """Scans L2 blocks for messages sent through the L2 messenger."""

    def __init__(self, w3_l2: Web3, messenger_address: str):
        """
        Initialize the MessageDiscovery.

        Args:
            w3_l2: Web3 instance for the L2 chain
            messenger_address: Address of the L2CrossDomainMessenger
        """
        self.w3_l2 = w3_l2
        self.messenger_address = Web3.to_checksum_address(messenger_address)

    def resolve_block(self, tx_hash: str) -> int:
        """
        Find the block containing an L2 transaction.

        Raises:
            TransactionNotFound: If the transaction is unknown or still pending
        """
        raw_tx = fetch_l2_transaction(self.w3_l2, tx_hash)
        if raw_tx is None:
            raise TransactionNotFound(f"Unable to find tx with hash: {tx_hash}")

        block_number = L2Transaction.from_rpc(raw_tx).block_number
        if block_number is None:
            raise TransactionNotFound(f"Transaction {tx_hash} is not yet included in a block")
        return block_number

    async def discover(self, tx_hash: str) -> list[CrossDomainMessage]:
        """
        Find all messages sent in the block of an L2 transaction.

        Args:
            tx_hash: Hash of the L2 transaction

        Returns:
            Messages in emission order
        """
        block_number = self.resolve_block(tx_hash)
        logger.info(f"Transaction {tx_hash[:10]}... is in L2 block {block_number}")
        return await self.discover_by_block(block_number, expected_tx_hash=tx_hash)

    async def discover_by_block(
        self,
        block: int | str,
        expected_tx_hash: str | None = None,
    ) -> list[CrossDomainMessage]:
        """
        Find all messages sent in one L2 block.

        Args:
            block: Block number or block hash
            expected_tx_hash: Transaction the caller is interested in; logs from
                other transactions are kept but reported

        Returns:
            Messages in emission order
        """
        filter_params: FilterParams = {
            'address': self.messenger_address,
            'topics': [Web3.to_hex(MessageCodec.SENT_MESSAGE_TOPIC)],
        }
        if isinstance(block, int):
            filter_params['fromBlock'] = block
            filter_params['toBlock'] = block
        else:
            filter_params['blockHash'] = block

        logs = sorted(self.w3_l2.eth.get_logs(filter_params), key=self._log_position)

        messages: list[CrossDomainMessage] = []
        for log in logs:
            if expected_tx_hash is not None and not self._same_hash(log.get('transactionHash'), expected_tx_hash):
                logger.warning(
                    f"SentMessage in block {block} comes from transaction "
                    f"{Web3.to_hex(log.get('transactionHash') or b'')}, not {expected_tx_hash}; "
                    "the block holds more than one transaction"
                )

            try:
                payload = MessageCodec.decode_sent_message_event(log.get('data') or b'')
                if payload is None:
                    logger.warning(f"Skipping SentMessage without payload at log index {log.get('logIndex')}")
                    continue
                message = MessageCodec.decode(payload)
            except MessageDecodeError as e:
                logger.warning(f"Skipping undecodable SentMessage at log index {log.get('logIndex')}: {e}")
                continue

            messages.append(message)

        logger.info(f"Found {len(messages)} L2 to L1 messages in block {block}")
        return messages

    @staticmethod
    def _log_position(log: LogReceipt) -> int:
        index: Any = log.get('logIndex')
        return 0 if index is None else BlockchainEncoder.to_int_safe(index)

    @staticmethod
    def _same_hash(actual: Any, expected: str) -> bool:
        if actual is None:
            return True
        return BlockchainEncoder.to_bytes_safe(actual) == BlockchainEncoder.to_bytes_safe(expected)
