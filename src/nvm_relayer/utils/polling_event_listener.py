"""
Log polling for watch mode.

Scans one contract's logs for one topic: a lookback range on start, then the
blocks produced since the previous scan. An optional ``after_poll`` hook runs
after every cycle, whether or not new blocks arrived, so work that does not
come from new logs (re-driving pending relays) shares the same cadence.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from web3 import Web3
from web3.types import FilterParams, LogReceipt

EventCallback = Callable[[LogReceipt], Awaitable[Any]]


class PollingEventListener:
    """Polls eth_getLogs for one event of one contract."""

    def __init__(
        self,
        w3: Web3,
        contract_address: str,
        event_topic: bytes,
        event_name: str,
        lookback_blocks: int = 100,
        after_poll: Optional[Callable[[], Awaitable[Any]]] = None,
    ):
        """
        Initialize the polling event listener.

        Args:
            w3: Web3 instance of the chain to watch
            contract_address: Address of the contract to monitor
            event_topic: topic0 of the event to listen for
            event_name: Name of the event, for logging
            lookback_blocks: Number of blocks to scan on startup
            after_poll: Coroutine function awaited after each polling cycle
        """
        self.w3 = w3
        self.contract_address = Web3.to_checksum_address(contract_address)
        self.event_topic = Web3.to_hex(event_topic)
        self.event_name = event_name
        self.lookback_blocks = lookback_blocks
        self.after_poll = after_poll

        # Highest block whose logs were all handed to the callback
        self.last_processed_block: Optional[int] = None
        self.is_running = False

        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def _scan(self, from_block: int, to_block: int, callback: EventCallback) -> int:
        filter_params: FilterParams = {
            'address': self.contract_address,
            'topics': [self.event_topic],
            'fromBlock': from_block,
            'toBlock': to_block,
        }
        events = self.w3.eth.get_logs(filter_params)
        for event in events:
            await callback(event)

        self.last_processed_block = to_block
        return len(events)

    async def initial_sync(self, callback: EventCallback) -> None:
        """Hand every event of the lookback window to ``callback``."""
        head = self.w3.eth.block_number
        start = max(0, head - self.lookback_blocks)

        found = await self._scan(start, head, callback)
        self.logger.info(f"Initial sync of {self.event_name} over blocks {start}-{head}: {found} event(s)")

    async def poll_for_events(self, callback: EventCallback) -> None:
        """
        Hand the events of blocks newer than the last scan to ``callback``.

        RPC errors are logged and the same range is scanned again on the next
        cycle. The ``after_poll`` hook runs in every case.
        """
        try:
            head = self.w3.eth.block_number
            if self.last_processed_block is None:
                start: Optional[int] = head
            elif head > self.last_processed_block:
                start = self.last_processed_block + 1
            else:
                start = None

            if start is not None:
                found = await self._scan(start, head, callback)
                if found:
                    self.logger.info(f"Found {found} new {self.event_name} event(s) in blocks {start}-{head}")
        except Exception as e:
            self.logger.error(f"Error polling {self.event_name} events: {e}")

        if self.after_poll is not None:
            await self.after_poll()

    async def start_polling(self, callback: EventCallback, interval: int = 30) -> None:
        """
        Run the initial sync, then poll every ``interval`` seconds until stopped.

        Args:
            callback: Coroutine function awaited for each event
            interval: Polling interval in seconds
        """
        if self.is_running:
            self.logger.warning("Polling already running")
            return

        self.is_running = True
        self.logger.info(f"Watching {self.event_name} on {self.contract_address} every {interval}s")

        await self.initial_sync(callback)
        while self.is_running:
            await asyncio.sleep(interval)
            await self.poll_for_events(callback)

    async def stop(self) -> None:
        """Stop the polling loop after the current cycle."""
        self.logger.info(f"Stopping {self.event_name} polling")
        self.is_running = False

    def get_status(self) -> Dict[str, Any]:
        return {
            "is_running": self.is_running,
            "last_processed_block": self.last_processed_block,
            "contract_address": self.contract_address,
            "event_name": self.event_name,
        }
