#!/usr/bin/env python3

import argparse
import asyncio
import logging
import sys

from nvm_relayer.models import RelayOutcome
from nvm_relayer.relayer import NVMRelayer

# Set up root logger
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="NVM L2 to L1 message relayer")
    subparsers = parser.add_subparsers(dest="command", required=True)

    relay_parser = subparsers.add_parser("relay", help="Relay the messages of one L2 transaction")
    relay_parser.add_argument("tx_hash", help="L2 transaction hash that sent the message(s)")
    relay_parser.add_argument(
        "--max-retries",
        type=int,
        default=None,
        help="Retries per message for transient errors (default: from config)"
    )
    relay_parser.add_argument(
        "--confirmations",
        type=int,
        default=None,
        help="L1 confirmations to wait for (default: from config)"
    )

    subparsers.add_parser("watch", help="Watch the L2 messenger and relay every new message")
    return parser.parse_args(argv)


async def main():
    """Main entry point for the NVM Relayer."""
    args = parse_args()

    try:
        relayer = NVMRelayer.from_env()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        logger.error("Required environment variables:")
        logger.error("  - L1_RPC_URL: L1 RPC endpoint (e.g., Ethereum)")
        logger.error("  - L2_RPC_URL: L2 RPC endpoint exposing NVM transaction fields")
        logger.error("  - L1_CROSS_DOMAIN_MESSENGER_ADDRESS: L1CrossDomainMessenger contract address")
        logger.error("  - PRIVATE_KEY: Private key for signing relay transactions")
        sys.exit(1)

    try:
        if args.command == "relay":
            results = await relayer.relay_transaction(
                args.tx_hash,
                max_retries=args.max_retries,
                confirmations=args.confirmations,
            )
            unresolved = [r for r in results if r.outcome in (RelayOutcome.FAILED, RelayOutcome.NOT_SENT)]
            sys.exit(1 if unresolved else 0)
        else:
            await relayer.run()
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
        relayer.stop()
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
