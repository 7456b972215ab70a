"""Read-only bindings for a Compound-style comptroller, its markets and oracle."""

from dataclasses import dataclass

from web3 import AsyncWeb3

NULL_ADDRESS = "0x0000000000000000000000000000000000000000"
WETH_ADDRESS = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
USDC_ADDRESS = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"

COMPTROLLER_ABI = [
    {
        "inputs": [{"internalType": "address", "name": "account", "type": "address"}],
        "name": "getAssetsIn",
        "outputs": [{"internalType": "contract CToken[]", "name": "", "type": "address[]"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "address", "name": "", "type": "address"}],
        "name": "markets",
        "outputs": [
            {"internalType": "bool", "name": "isListed", "type": "bool"},
            {"internalType": "uint256", "name": "collateralFactorMantissa", "type": "uint256"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
]

CTOKEN_ABI = [
    {
        "inputs": [{"internalType": "address", "name": "owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "address", "name": "account", "type": "address"}],
        "name": "borrowBalanceStored",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "exchangeRateStored",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "underlying",
        "outputs": [{"internalType": "address", "name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
]

ERC20_DECIMALS_ABI = [
    {
        "inputs": [],
        "name": "decimals",
        "outputs": [{"internalType": "uint8", "name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
]

# Price of an asset in the chain's native currency, 18 decimals
ORACLE_ABI = [
    {
        "inputs": [{"internalType": "address", "name": "underlying", "type": "address"}],
        "name": "price",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]


@dataclass(frozen=True)
class AddressBook:
    """Static protocol addresses for one deployment."""
    comptroller: str
    oracle: str
    null_address: str = NULL_ADDRESS
    wrapped_native: str = WETH_ADDRESS
    usdc: str = USDC_ADDRESS

    def normalize_asset(self, address: str) -> str:
        """Map the native-asset placeholder to the wrapped-native token."""
        if address.lower() == self.null_address.lower():
            return self.wrapped_native
        return address


class ComptrollerContracts:
    """Factory for the contract objects the exporter reads from."""

    def __init__(self, web3: AsyncWeb3, addresses: AddressBook):
        self._web3 = web3
        self.addresses = addresses
        self.comptroller = self._web3.eth.contract(
            address=AsyncWeb3.to_checksum_address(addresses.comptroller),
            abi=COMPTROLLER_ABI,
        )
        self.oracle = self._web3.eth.contract(
            address=AsyncWeb3.to_checksum_address(addresses.oracle),
            abi=ORACLE_ABI,
        )

    def market(self, address: str):
        return self._web3.eth.contract(
            address=AsyncWeb3.to_checksum_address(address),
            abi=CTOKEN_ABI,
        )

    def token(self, address: str):
        return self._web3.eth.contract(
            address=AsyncWeb3.to_checksum_address(address),
            abi=ERC20_DECIMALS_ABI,
        )
