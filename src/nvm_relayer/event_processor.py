"""
Event processor for watch mode.

This module turns SentMessage logs seen on L2 into relay calls, keeping the
processing logic separate from the polling and service lifecycle.

A SentMessage log is seen only once, so a transaction that could not be
relayed yet (not found, FAILED or NOT_SENT messages) is kept in a pending
queue and re-driven by ``retry_pending`` until it resolves or runs out of
attempts.
"""

import asyncio
import logging
import time
from collections import Counter, OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from web3 import Web3
from web3.types import LogReceipt

from .config import MonitoringConfig
from .errors import NotFoundError, RelayerError
from .models import RelayOutcome, RelayResult

if TYPE_CHECKING:
    from .config import RelayerConfig
    from .relay_submitter import RelaySubmitter

logger = logging.getLogger(__name__)

UNRESOLVED_OUTCOMES = (RelayOutcome.FAILED, RelayOutcome.NOT_SENT)


@dataclass(slots=True)
class PendingRelay:
    """A transaction waiting for another relay attempt."""
    retries: int
    next_attempt_at: float


class EventProcessor:
    """Relays the L2 transactions behind SentMessage events, once each."""

    MAX_PROCESSED_HASHES: int = 10_000

    def __init__(
        self,
        submitter: Optional["RelaySubmitter"] = None,
        config: Optional["RelayerConfig"] = None,
    ) -> None:
        """Initialize the event processor.

        Args:
            submitter: RelaySubmitter used to relay each transaction
            config: RelayerConfig instance for the L1 messenger address and limits
        """
        # OrderedDict provides O(1) lookups and maintains insertion order for LRU
        self.processed_tx_hashes: OrderedDict[str, None] = OrderedDict()
        monitoring = config.monitoring if config is not None else MonitoringConfig()
        self.MAX_PROCESSED_HASHES = monitoring.max_tracked_transactions
        self.retry_count = monitoring.retry_count
        self.retry_interval = monitoring.retry_interval

        self.submitter = submitter
        self.config = config

        # One relay at a time: all relays share the L1 signer and its nonce
        self.relay_lock = asyncio.Lock()
        self.pending: OrderedDict[str, PendingRelay] = OrderedDict()
        self.outcomes: Counter[str] = Counter()
        self.errors = 0
        self.abandoned = 0

    async def process_sent_message(self, event: LogReceipt) -> list[RelayResult] | None:
        """
        Relay the transaction that emitted a SentMessage event.

        Args:
            event: The SentMessage log

        Returns:
            Relay results, or None if the event was skipped or could not be relayed
        """
        match event.get('transactionHash'):
            case None:
                logger.warning("Event missing transaction hash")
                return None
            case bytes() as tx_hash_bytes:
                tx_hash = Web3.to_hex(tx_hash_bytes)
            case str() as tx_hash:
                pass  # Already a string
            case _:
                logger.warning(f"Unexpected transaction hash type: {type(event.get('transactionHash'))}")
                return None

        # A transaction emitting several messages yields several events
        if tx_hash in self.processed_tx_hashes:
            return None
        self._track_processed_hash(tx_hash)

        if not self.submitter or not self.config:
            logger.warning("RelaySubmitter or config not initialized, skipping relay")
            return None

        logger.info(f"SentMessage detected - TX: {tx_hash[:10]}... block={event.get('blockNumber')}")
        return await self._relay(tx_hash)

    async def retry_pending(self) -> int:
        """
        Re-drive every pending transaction whose retry interval has elapsed.

        Returns:
            Number of transactions attempted
        """
        now = time.monotonic()
        due = [tx_hash for tx_hash, entry in self.pending.items() if entry.next_attempt_at <= now]

        for tx_hash in due:
            entry = self.pending.get(tx_hash)
            if entry is None:
                continue
            entry.retries += 1
            logger.info(f"Retrying relay of tx {tx_hash[:10]}... (retry {entry.retries}/{self.retry_count})")
            await self._relay(tx_hash)

        return len(due)

    async def _relay(self, tx_hash: str) -> list[RelayResult] | None:
        async with self.relay_lock:
            try:
                results = await self.submitter.relay(
                    tx_hash,
                    self.config.l1_chain.cross_domain_messenger_address,
                )
            except NotFoundError as e:
                logger.warning(f"Transaction {tx_hash[:10]}... not ready for relay: {e}")
                self.errors += 1
                self._schedule_retry(tx_hash)
                return None
            except RelayerError as e:
                logger.error(f"Failed to relay tx {tx_hash[:10]}...: {e}")
                self.errors += 1
                self.pending.pop(tx_hash, None)
                return None
            except Exception as e:
                logger.error(f"Unexpected error relaying tx {tx_hash[:10]}...: {e}", exc_info=True)
                self.errors += 1
                self._schedule_retry(tx_hash)
                return None

        for result in results:
            self.outcomes[result.outcome.value] += 1

        if any(result.outcome in UNRESOLVED_OUTCOMES for result in results):
            logger.error(f"Relay of tx {tx_hash[:10]}... finished with unresolved messages")
            self._schedule_retry(tx_hash)
        else:
            self.pending.pop(tx_hash, None)
        return results

    def _schedule_retry(self, tx_hash: str) -> None:
        """Queue a transaction for another attempt, or give up once its retries are spent."""
        entry = self.pending.get(tx_hash)
        retries = entry.retries if entry is not None else 0

        if retries >= self.retry_count:
            self.pending.pop(tx_hash, None)
            self.abandoned += 1
            logger.error(f"Giving up on tx {tx_hash[:10]}... after {retries} retries")
            return

        next_attempt_at = time.monotonic() + self.retry_interval
        if entry is None:
            if len(self.pending) >= self.MAX_PROCESSED_HASHES:
                dropped, _ = self.pending.popitem(last=False)
                self.abandoned += 1
                logger.error(f"Pending queue full, dropping tx {dropped[:10]}...")
            self.pending[tx_hash] = PendingRelay(retries=0, next_attempt_at=next_attempt_at)
        else:
            entry.next_attempt_at = next_attempt_at

    def _track_processed_hash(self, tx_hash: str) -> None:
        """
        Track a processed transaction hash with automatic LRU eviction.

        When we reach capacity, we remove the oldest entry (first inserted).

        Args:
            tx_hash: Transaction hash to track
        """
        if tx_hash in self.processed_tx_hashes:
            self.processed_tx_hashes.move_to_end(tx_hash)
        else:
            if len(self.processed_tx_hashes) >= self.MAX_PROCESSED_HASHES:
                self.processed_tx_hashes.popitem(last=False)

            self.processed_tx_hashes[tx_hash] = None

    def get_stats(self) -> dict:
        """
        Get current processor statistics.

        Returns:
            Dictionary with current state metrics
        """
        return {
            'processed_transactions': len(self.processed_tx_hashes),
            'relayed': self.outcomes[RelayOutcome.SUCCESS.value],
            'already_relayed': self.outcomes[RelayOutcome.ALREADY_RELAYED.value],
            'failed': self.outcomes[RelayOutcome.FAILED.value],
            'not_sent': self.outcomes[RelayOutcome.NOT_SENT.value],
            'pending_retries': len(self.pending),
            'abandoned': self.abandoned,
            'errors': self.errors,
        }
