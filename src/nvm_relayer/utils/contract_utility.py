import json
from pathlib import Path

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.middleware import SignAndSendRawMiddlewareBuilder


class ContractUtility:
    """
    Utility for L1 contract interaction and ABI loading.

    Can be used in two modes:
    1. Full mode: Initialize with an RPC URL and secret to sign relay transactions
    2. ABI-only mode: Initialize with empty strings to just load ABIs
    """

    def __init__(self, rpc_url: str = "", secret: str = ""):
        """
        Initialize the ContractUtility.

        Args:
            rpc_url: L1 RPC endpoint (optional for ABI-only mode)
            secret: Private key for transactions (optional for ABI-only mode)
        """
        if rpc_url and secret:
            self.network = rpc_url
            self.w3 = self.setup_web3_middleware(secret)
        else:
            # ABI-only mode - no network connection needed
            self.network = None
            self.w3 = None

    def setup_web3_middleware(self, secret: str) -> Web3:
        if not all([secret]):
            raise Warning(
                "Missing required environment variables. Please set PRIVATE_KEY."
            )

        account: LocalAccount = Account.from_key(secret)
        w3 = Web3(Web3.HTTPProvider(self.network))
        w3.middleware_onion.inject(SignAndSendRawMiddlewareBuilder.build(account), layer=0)
        w3.eth.default_account = account.address
        return w3

    def get_contract_abi(self, contract_name: str) -> list:
        """Fetches ABI of the given contract from the bundled contracts folder"""
        contract_path = (
            Path(__file__).parent.parent / "contracts" / f"{contract_name}.json"
        ).resolve()

        with contract_path.open() as file:
            contract_data = json.load(file)

        return contract_data["abi"]
