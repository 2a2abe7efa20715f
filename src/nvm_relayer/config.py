"""
Configuration module for the NVM Relayer.

This module provides dataclasses for the protocol constants of the L2 chain,
the endpoints of both chains, and the relay and monitoring settings.
"""

import os
from dataclasses import dataclass, field

from web3 import Web3


@dataclass(frozen=True, slots=True)
class ChainConstants:
    """Fixed protocol addresses and limits of the L2 chain.

    Injected into the components instead of read from module globals so
    alternative chain layouts can be substituted.
    """
    l2_to_l1_message_passer: str = "0x4200000000000000000000000000000000000000"
    l2_cross_domain_messenger: str = "0x4200000000000000000000000000000000000007"
    sequencer_entrypoint: str = "0x4200000000000000000000000000000000000005"
    l1_gas_limit: int = 11_000_000
    sequencer_queue_origin: str = "sequencer"


DEFAULT_CHAIN_CONSTANTS = ChainConstants()


@dataclass
class L1ChainConfig:
    """Configuration for the settlement chain."""
    rpc_url: str
    cross_domain_messenger_address: str
    private_key: str

    def __post_init__(self) -> None:
        if not Web3.is_address(self.cross_domain_messenger_address):
            raise ValueError(
                f"Invalid L1 cross domain messenger address: {self.cross_domain_messenger_address}"
            )
        self.cross_domain_messenger_address = Web3.to_checksum_address(
            self.cross_domain_messenger_address
        )


@dataclass
class L2ChainConfig:
    """Configuration for the rollup chain."""
    rpc_url: str
    cross_domain_messenger_address: str = DEFAULT_CHAIN_CONSTANTS.l2_cross_domain_messenger

    def __post_init__(self) -> None:
        if not Web3.is_address(self.cross_domain_messenger_address):
            raise ValueError(
                f"Invalid L2 cross domain messenger address: {self.cross_domain_messenger_address}"
            )
        self.cross_domain_messenger_address = Web3.to_checksum_address(
            self.cross_domain_messenger_address
        )


@dataclass
class RelayConfig:
    """Settings for the submission state machine."""
    max_retries: int = 5
    confirmations: int = 1
    retry_backoff: float = 1.0  # seconds
    confirmation_poll_interval: float = 2.0  # seconds
    confirmation_timeout: float | None = 300.0  # seconds, None waits forever
    l1_gas_limit: int | None = None  # None lets the node estimate
    verify_proofs: bool = False
    extra_transient_errors: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.confirmations < 0:
            raise ValueError(f"confirmations must be >= 0, got {self.confirmations}")


@dataclass
class MonitoringConfig:
    """Configuration for watch mode."""
    # Hard-coded sensible defaults
    polling_interval: int = 12  # seconds
    lookback_blocks: int = 100
    max_tracked_transactions: int = 10_000
    retry_count: int = 3  # re-attempts of an unresolved transaction
    retry_interval: int = 60  # seconds between re-attempts


def _int_from_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


@dataclass
class RelayerConfig:
    """Main configuration class for the NVM Relayer."""

    l1_chain: L1ChainConfig
    l2_chain: L2ChainConfig
    relay: RelayConfig = field(default_factory=RelayConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    constants: ChainConstants = DEFAULT_CHAIN_CONSTANTS

    @classmethod
    def from_env(cls) -> "RelayerConfig":
        """
        Load configuration from environment variables.

        Returns:
            RelayerConfig: Configured relayer instance

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        l1_rpc_url = os.environ.get("L1_RPC_URL")
        if not l1_rpc_url:
            raise ValueError(
                "L1_RPC_URL environment variable is required. "
                "Example: https://ethereum-sepolia.publicnode.com"
            )

        l2_rpc_url = os.environ.get("L2_RPC_URL")
        if not l2_rpc_url:
            raise ValueError(
                "L2_RPC_URL environment variable is required. "
                "This is the RPC endpoint of the L2 node exposing NVM transaction fields"
            )

        l1_messenger = os.environ.get("L1_CROSS_DOMAIN_MESSENGER_ADDRESS")
        if not l1_messenger:
            raise ValueError(
                "L1_CROSS_DOMAIN_MESSENGER_ADDRESS environment variable is required. "
                "This is the address of the L1CrossDomainMessenger contract"
            )

        private_key = os.environ.get("PRIVATE_KEY")
        if not private_key:
            raise ValueError(
                "PRIVATE_KEY environment variable is required. "
                "This is used to sign relay transactions on L1"
            )

        l2_messenger = (
            os.environ.get("L2_CROSS_DOMAIN_MESSENGER_ADDRESS")
            or DEFAULT_CHAIN_CONSTANTS.l2_cross_domain_messenger
        )

        relay_config = RelayConfig(
            max_retries=_int_from_env("RELAY_MAX_RETRIES", 5),
            confirmations=_int_from_env("RELAY_CONFIRMATIONS", 1),
        )

        return cls(
            l1_chain=L1ChainConfig(
                rpc_url=l1_rpc_url,
                cross_domain_messenger_address=l1_messenger,
                private_key=private_key,
            ),
            l2_chain=L2ChainConfig(
                rpc_url=l2_rpc_url,
                cross_domain_messenger_address=l2_messenger,
            ),
            relay=relay_config,
            monitoring=MonitoringConfig(),
        )

    def log_config(self) -> None:
        """Log configuration settings (hiding sensitive data)."""
        print("\n=== NVM Relayer Configuration ===")

        print("\n[L1 Chain]")
        print(f"  RPC URL: {self.l1_chain.rpc_url}")
        print(f"  L1CrossDomainMessenger: {self.l1_chain.cross_domain_messenger_address}")
        print(f"  Private Key: {'[SET]' if self.l1_chain.private_key else '[NOT SET]'}")

        print("\n[L2 Chain]")
        print(f"  RPC URL: {self.l2_chain.rpc_url}")
        print(f"  L2CrossDomainMessenger: {self.l2_chain.cross_domain_messenger_address}")
        print(f"  L2ToL1MessagePasser: {self.constants.l2_to_l1_message_passer}")

        print("\n[Relay Settings]")
        print(f"  Max Retries: {self.relay.max_retries}")
        print(f"  Confirmations: {self.relay.confirmations}")
        print(f"  Retry Backoff: {self.relay.retry_backoff}s")
        print(f"  Verify Proofs: {self.relay.verify_proofs}")

        print("\n[Monitoring Settings]")
        print(f"  Polling Interval: {self.monitoring.polling_interval}s")
        print(f"  Lookback Blocks: {self.monitoring.lookback_blocks}")
        print(f"  Retry Count: {self.monitoring.retry_count}")
        print(f"  Retry Interval: {self.monitoring.retry_interval}s")
        print("=================================\n")
