import json
from pathlib import Path

from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.contract import AsyncContract


class ContractUtility:
    """
    Utility for EVM contract interaction and ABI loading.

    Can be used in two modes:
    1. Full mode: Initialize with an RPC URL (or an existing AsyncWeb3)
    2. ABI-only mode: Initialize with nothing to just load ABIs
    """

    def __init__(self, rpc_url: str = "", w3: AsyncWeb3 | None = None):
        """
        Initialize the ContractUtility.

        Args:
            rpc_url: HTTP(S) JSON-RPC endpoint (optional for ABI-only mode)
            w3: Pre-built AsyncWeb3 instance, takes precedence over rpc_url
        """
        if w3 is not None:
            self.w3 = w3
        elif rpc_url:
            self.w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        else:
            self.w3 = None

    def get_contract_abi(self, contract_name: str) -> list:
        """Fetches ABI of the given contract from the contracts folder"""
        contract_path = (
            Path(__file__).parent.parent / "contracts" / f"{contract_name}.json"
        ).resolve()

        with contract_path.open() as file:
            contract_data = json.load(file)

        return contract_data["abi"]

    def get_contract(self, contract_name: str, address: str) -> AsyncContract:
        """Bind the named ABI to an address on the connected chain."""
        if self.w3 is None:
            raise RuntimeError("ContractUtility was created in ABI-only mode")
        return self.w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(address),
            abi=self.get_contract_abi(contract_name),
        )
