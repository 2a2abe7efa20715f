"""
NVM Relayer implementation.

This module contains the relayer service that wires the L1/L2 connections to
the proof and submission components, and either relays a single L2
transaction or watches the L2 messenger and relays every new message.
"""

import asyncio
import logging
from typing import Optional

from web3 import Web3

from .config import RelayerConfig
from .event_processor import EventProcessor
from .message_codec import MessageCodec
from .message_discovery import MessageDiscovery
from .models import RelayOutcome, RelayResult
from .proof_manager import ProofAssembler
from .relay_submitter import RelaySubmitter
from .storage_proof import StorageSlotProof
from .utils.contract_utility import ContractUtility
from .utils.polling_event_listener import PollingEventListener

logger = logging.getLogger(__name__)


class NVMRelayer:
    """
    Relayer service for L2 to L1 messages.

    This class focuses on wiring and lifecycle management, delegating
    proof construction to the ProofAssembler and submission to the
    RelaySubmitter.
    """

    STATUS_LOG_INTERVAL = 30  # seconds

    def __init__(self, config: RelayerConfig):
        """
        Initialize the NVM Relayer.

        Args:
            config: Relayer configuration
        """
        self.config = config
        self.running = False

        # Initialize utilities
        self._init_utilities()

        self.event_processor = EventProcessor(submitter=self.submitter, config=config)
        self.message_listener: Optional[PollingEventListener] = None

        # Async coordination
        self.shutdown_event = asyncio.Event()

    def _init_utilities(self) -> None:
        """
        Initialize chain connections and relay components.
        """
        self.w3_l2 = Web3(Web3.HTTPProvider(self.config.l2_chain.rpc_url))

        # Signing connection for the L1 messenger
        self.contract_util = ContractUtility(
            rpc_url=self.config.l1_chain.rpc_url,
            secret=self.config.l1_chain.private_key,
        )

        self.proof_assembler = ProofAssembler(
            w3_l2=self.w3_l2,
            discovery=MessageDiscovery(self.w3_l2, self.config.l2_chain.cross_domain_messenger_address),
            slot_prover=StorageSlotProof(self.w3_l2),
            constants=self.config.constants,
            verify_proofs=self.config.relay.verify_proofs,
        )

        self.submitter = RelaySubmitter(
            w3_l2=self.w3_l2,
            contract_util=self.contract_util,
            proof_assembler=self.proof_assembler,
            relay_config=self.config.relay,
            constants=self.config.constants,
        )

        logger.info(f"Initialized relayer with L1 account {self.contract_util.w3.eth.default_account}")

    @classmethod
    def from_env(cls) -> "NVMRelayer":
        """
        Create an NVMRelayer instance from environment variables.

        Returns:
            Configured NVMRelayer instance

        Raises:
            ValueError: If required environment variables are missing
        """
        config = RelayerConfig.from_env()
        config.log_config()
        return cls(config)

    async def relay_transaction(
        self,
        tx_hash: str,
        max_retries: int | None = None,
        confirmations: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> list[RelayResult]:
        """
        Relay all messages of one L2 transaction and log a summary.

        Args:
            tx_hash: L2 transaction hash
            max_retries: Override of the configured retries per message
            confirmations: Override of the configured L1 confirmations
            cancel_event: Event that aborts the relay when set

        Returns:
            One RelayResult per message
        """
        results = await self.submitter.relay(
            tx_hash,
            self.config.l1_chain.cross_domain_messenger_address,
            max_retries=max_retries,
            confirmations=confirmations,
            on_submitted=lambda relay_tx: logger.info(f"Submitted relay tx {Web3.to_hex(relay_tx)}"),
            cancel_event=cancel_event,
        )
        self.log_results(tx_hash, results)
        return results

    # Name used by the withdrawal flow: finalizing a withdrawal is relaying its message
    finalize_withdrawal = relay_transaction

    @staticmethod
    def log_results(tx_hash: str, results: list[RelayResult]) -> None:
        logger.info(f"Relay summary for {tx_hash}: {len(results)} message(s)")
        for result in results:
            line = f"  nonce {result.message.message_nonce}: {result.outcome.name} ({result.attempts} attempt(s))"
            if result.outcome is RelayOutcome.SUCCESS and result.transaction_receipt is not None:
                line += f" L1 tx {Web3.to_hex(result.transaction_receipt['transactionHash'])}"
            if result.errors:
                line += f" error: {result.errors[-1]}"
            logger.info(line)

    async def init_event_monitoring(self) -> None:
        """Initialize the polling listener for the L2 messenger."""
        logger.info("Initializing event monitoring...")

        self.message_listener = PollingEventListener(
            w3=self.w3_l2,
            contract_address=self.config.l2_chain.cross_domain_messenger_address,
            event_topic=MessageCodec.SENT_MESSAGE_TOPIC,
            event_name="SentMessage",
            lookback_blocks=self.config.monitoring.lookback_blocks,
            after_poll=self.event_processor.retry_pending,
        )

        logger.info(f"L2CrossDomainMessenger listener: {self.config.l2_chain.cross_domain_messenger_address}")

    async def _periodic_status_logger(self) -> None:
        """Log status periodically while running."""
        while self.running:
            await asyncio.sleep(self.STATUS_LOG_INTERVAL)
            stats = self.event_processor.get_stats()
            logger.info(
                f"Status: {stats['processed_transactions']} transactions seen, "
                f"{stats['relayed']} relayed, {stats['already_relayed']} already relayed, "
                f"{stats['failed']} failed, {stats['pending_retries']} pending retry"
            )

    async def _check_task_health(self, tasks: dict[str, asyncio.Task]) -> bool:
        """Check if any critical task has failed."""
        for name, task in tasks.items():
            if task.done() and name != "status":  # status task can end normally
                try:
                    await task
                except Exception as e:
                    logger.error(f"{name} task failed: {e}", exc_info=True)
                return False
        return True

    async def _cleanup_tasks(self, tasks: dict[str, asyncio.Task]) -> None:
        """Clean up all tasks and listeners."""
        if self.message_listener:
            await self.message_listener.stop()

        for task in tasks.values():
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass  # Expected when cancelling

    async def run(self) -> None:
        """Watch the L2 messenger and relay every new message."""
        self.running = True
        logger.info("NVM Relayer starting...")
        logger.info(f"Polling interval: {self.config.monitoring.polling_interval}s")
        logger.info(f"Lookback blocks: {self.config.monitoring.lookback_blocks}")

        tasks = {}
        try:
            await self.init_event_monitoring()

            if not self.message_listener:
                raise RuntimeError("Event listener not properly initialized")

            tasks = {
                "messages": asyncio.create_task(
                    self.message_listener.start_polling(
                        callback=self.event_processor.process_sent_message,
                        interval=self.config.monitoring.polling_interval
                    )
                ),
                "status": asyncio.create_task(self._periodic_status_logger())
            }

            logger.info("Event monitoring started, waiting for messages...")

            while self.running:
                try:
                    await asyncio.wait_for(self.shutdown_event.wait(), timeout=1.0)
                    break  # Shutdown requested
                except asyncio.TimeoutError:
                    pass

                if not await self._check_task_health(tasks):
                    logger.error("Critical task failure, shutting down")
                    break

        except Exception as e:
            logger.error(f"Error in main loop: {e}", exc_info=True)
            raise
        finally:
            await self._cleanup_tasks(tasks)
            logger.info("NVM Relayer stopped")

    def stop(self) -> None:
        """Stop the relayer service."""
        self.running = False
        self.shutdown_event.set()
