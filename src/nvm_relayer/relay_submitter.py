"""
Submission of proven L2 to L1 messages.

RelaySubmitter drives each message of an L2 transaction through
NOT_SENT -> SUBMITTING -> {SUCCESS, ALREADY_RELAYED, FAILED, CANCELLED}
against the L1CrossDomainMessenger. Messages are sent strictly one after the
other with the shared L1 signer; the first message that fails terminally stops
the batch and the partial results are returned.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Union

from hexbytes import HexBytes
from web3 import Web3
from web3.contract import Contract
from web3.exceptions import TransactionNotFound as Web3TransactionNotFound
from web3.types import TxParams, TxReceipt

from .config import DEFAULT_CHAIN_CONSTANTS, ChainConstants, RelayConfig
from .errors import (
    ConfirmationTimeout,
    ErrorKind,
    ReceiptNotFound,
    TransactionNotFound,
    TransactionReverted,
    classify_error,
)
from .l2_context import L2Receipt, L2Transaction, build_context, fetch_l2_receipt, fetch_l2_transaction
from .models import L2BlockContext, RelayOutcome, RelayResult
from .proof_manager import ProofAssembler

logger = logging.getLogger(__name__)

SubmittedCallback = Callable[[HexBytes], Union[None, Awaitable[None]]]


class RelayCancelled(Exception):
    """Raised internally when the caller's cancel event fires mid-relay."""


class RelaySubmitter:
    """Relays every message of an L2 transaction to the L1 messenger."""

    def __init__(
        self,
        w3_l2: Web3,
        contract_util: Any,
        proof_assembler: ProofAssembler | None = None,
        relay_config: RelayConfig | None = None,
        constants: ChainConstants = DEFAULT_CHAIN_CONSTANTS,
    ):
        """
        Initialize the RelaySubmitter.

        Args:
            w3_l2: Web3 instance for the L2 chain
            contract_util: Utility holding the signing L1 Web3 instance and ABIs
            proof_assembler: Proof assembler for L2 messages
            relay_config: Retry, confirmation and gas settings
            constants: Protocol constants
        """
        self.w3_l2 = w3_l2
        self.contract_util = contract_util
        self.config = relay_config or RelayConfig()
        self.constants = constants
        self.proof_assembler = proof_assembler or ProofAssembler(
            w3_l2,
            constants=constants,
            verify_proofs=self.config.verify_proofs,
        )
        self.l1_messenger_abi: list[dict[str, Any]] = self.contract_util.get_contract_abi("L1CrossDomainMessenger")

    def fetch_l2_objects(self, tx_hash: str) -> tuple[L2Transaction, L2Receipt]:
        """
        Fetch an L2 transaction and its receipt once, for both the context and the proofs.

        Raises:
            TransactionNotFound: If the transaction is unknown
            ReceiptNotFound: If the receipt is unknown or has no committed state root yet
        """
        raw_tx = fetch_l2_transaction(self.w3_l2, tx_hash)
        if raw_tx is None:
            raise TransactionNotFound(f"Unable to find tx with hash: {tx_hash}")
        raw_receipt = fetch_l2_receipt(self.w3_l2, tx_hash)
        if raw_receipt is None:
            raise ReceiptNotFound(f"Unable to find receipt with hash: {tx_hash}")

        # A receipt without a root is too early, not malformed: the caller may retry later
        receipt = ProofAssembler.check_receipt(tx_hash, L2Receipt.from_rpc(raw_receipt))
        return L2Transaction.from_rpc(raw_tx), receipt

    def get_l2_context(self, tx_hash: str) -> L2BlockContext:
        """
        Build the L2 block context of a transaction.

        Raises:
            TransactionNotFound: If the transaction is unknown
            ReceiptNotFound: If the receipt or its state root is missing
            IncompleteL2Data: If a required NVM field is missing
        """
        l2_tx, l2_receipt = self.fetch_l2_objects(tx_hash)
        return build_context(l2_tx, l2_receipt, self.constants)

    async def relay(
        self,
        tx_hash: str,
        l1_messenger_address: str,
        max_retries: int | None = None,
        confirmations: int | None = None,
        on_submitted: SubmittedCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> list[RelayResult]:
        """
        Relay all L2 to L1 messages found in an L2 transaction.

        Args:
            tx_hash: L2 transaction hash to find the messages in
            l1_messenger_address: Address of the L1CrossDomainMessenger
            max_retries: Retries per message for transient errors
            confirmations: L1 confirmations to wait for per relay transaction
            on_submitted: Called with each relay transaction hash before waiting
                for confirmations
            cancel_event: When set during a backoff or confirmation wait, the
                current message is CANCELLED and the batch stops

        Returns:
            One RelayResult per message in emission order. Messages after a
            FAILED or CANCELLED one remain NOT_SENT.

        Raises:
            NotFoundError: If the transaction, its receipt or its state root is missing
            IncompleteL2Data: If the L2 context cannot be built
        """
        max_retries = self.config.max_retries if max_retries is None else max_retries
        confirmations = self.config.confirmations if confirmations is None else confirmations

        l2_tx, l2_receipt = self.fetch_l2_objects(tx_hash)
        context = build_context(l2_tx, l2_receipt, self.constants)
        pairs = await self.proof_assembler.assemble(tx_hash, receipt=l2_receipt)

        results = [RelayResult(message=message, proof=proof) for message, proof in pairs]
        if not results:
            logger.info(f"No L2 to L1 messages to relay in tx {tx_hash[:10]}...")
            return results

        contract = self._get_messenger(l1_messenger_address)

        for index, result in enumerate(results):
            logger.info(f"Relaying message {index + 1}/{len(results)}: {result.message}")
            advance = await self._relay_one(
                contract, result, context, max_retries, confirmations, on_submitted, cancel_event
            )
            if not advance:
                remaining = len(results) - index - 1
                logger.error(
                    f"Stopping relay of tx {tx_hash[:10]}... at message {index + 1} "
                    f"({result.outcome.name}); {remaining} message(s) left unsent"
                )
                break

        return results

    async def _relay_one(
        self,
        contract: Contract,
        result: RelayResult,
        context: L2BlockContext,
        max_retries: int,
        confirmations: int,
        on_submitted: SubmittedCallback | None,
        cancel_event: asyncio.Event | None,
    ) -> bool:
        """
        Run one message to a terminal outcome.

        Returns:
            True if the batch may continue with the next message
        """
        result.transition(RelayOutcome.SUBMITTING)
        retries = 0

        while True:
            try:
                result.attempts += 1
                relay_tx_hash = self._submit(contract, result, context)
                logger.info(f"Relay transaction sent: {Web3.to_hex(relay_tx_hash)}")

                if on_submitted is not None:
                    maybe_awaitable = on_submitted(relay_tx_hash)
                    if inspect.isawaitable(maybe_awaitable):
                        await maybe_awaitable

                receipt = await self._wait_for_confirmations(relay_tx_hash, confirmations, cancel_event)

            except RelayCancelled:
                logger.warning(f"Relay of nonce {result.message.message_nonce} cancelled")
                result.transition(RelayOutcome.CANCELLED)
                return False

            except Exception as e:
                kind = classify_error(e, self.config.extra_transient_errors)

                if kind is ErrorKind.ALREADY_RELAYED:
                    logger.info(f"Message nonce {result.message.message_nonce} was already relayed")
                    result.transition(RelayOutcome.ALREADY_RELAYED)
                    return True

                if kind.is_transient and retries < max_retries:
                    retries += 1
                    logger.warning(
                        f"Transient relay error ({kind.value}) for nonce {result.message.message_nonce}, "
                        f"retry {retries}/{max_retries} in {self.config.retry_backoff}s: {e}"
                    )
                    if await self._sleep_or_cancelled(self.config.retry_backoff, cancel_event):
                        logger.warning(f"Relay of nonce {result.message.message_nonce} cancelled during backoff")
                        result.transition(RelayOutcome.CANCELLED)
                        return False
                    continue

                logger.error(
                    f"Relay of nonce {result.message.message_nonce} failed ({kind.value}) "
                    f"after {result.attempts} attempt(s): {e}"
                )
                result.errors.append(e)
                result.transition(RelayOutcome.FAILED)
                return False

            else:
                logger.info(
                    f"Message nonce {result.message.message_nonce} relayed in L1 block {receipt['blockNumber']}"
                )
                result.transition(RelayOutcome.SUCCESS, receipt)
                return True

    def _get_messenger(self, l1_messenger_address: str) -> Contract:
        return self.contract_util.w3.eth.contract(
            address=Web3.to_checksum_address(l1_messenger_address),
            abi=self.l1_messenger_abi,
        )

    def _submit(self, contract: Contract, result: RelayResult, context: L2BlockContext) -> HexBytes:
        """Send one relayMessage transaction and return its hash."""
        tx_params: TxParams = {}
        if self.config.l1_gas_limit is not None:
            tx_params['gas'] = self.config.l1_gas_limit

        message = result.message
        return contract.functions.relayMessage(
            message.target,
            message.sender,
            message.message,
            message.message_nonce,
            context.transaction.to_abi(),
            context.receipt.to_abi(),
            result.proof.to_abi(),
        ).transact(tx_params)

    async def _wait_for_confirmations(
        self,
        tx_hash: HexBytes,
        confirmations: int,
        cancel_event: asyncio.Event | None,
    ) -> TxReceipt:
        """
        Poll L1 until ``tx_hash`` is mined with enough confirmations.

        Raises:
            TransactionReverted: If the transaction was mined with status 0
            ConfirmationTimeout: If the configured timeout elapses
            RelayCancelled: If the cancel event fires while waiting
        """
        w3 = self.contract_util.w3
        loop = asyncio.get_running_loop()
        timeout = self.config.confirmation_timeout
        deadline = None if timeout is None else loop.time() + timeout

        while True:
            try:
                receipt = w3.eth.get_transaction_receipt(tx_hash)
            except Web3TransactionNotFound:
                receipt = None

            if receipt is not None:
                if receipt.get('status', 1) == 0:
                    raise TransactionReverted(
                        f"Relay transaction {Web3.to_hex(tx_hash)} reverted in block {receipt['blockNumber']}"
                    )
                if w3.eth.block_number - receipt['blockNumber'] + 1 >= confirmations:
                    return receipt

            if deadline is not None and loop.time() >= deadline:
                raise ConfirmationTimeout(
                    f"Relay transaction {Web3.to_hex(tx_hash)} not confirmed after {timeout}s"
                )

            if await self._sleep_or_cancelled(self.config.confirmation_poll_interval, cancel_event):
                raise RelayCancelled()

    @staticmethod
    async def _sleep_or_cancelled(delay: float, cancel_event: asyncio.Event | None) -> bool:
        """Sleep for ``delay`` seconds; return True if cancelled meanwhile."""
        if cancel_event is None:
            await asyncio.sleep(delay)
            return False
        if cancel_event.is_set():
            return True
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
            return True
        except asyncio.TimeoutError:
            return False
