"""EVM networks a deployment can be pointed at (``wallet.chain`` in config)."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Chain:
    """One EVM network: id, default public RPC, gas token and block explorer."""

    name: str
    chain_id: int
    rpc_url: str
    native_symbol: str
    explorer_url: str
    testnet: bool = False

    @property
    def needs_poa_middleware(self) -> bool:
        # Every network except Ethereum mainnet may return oversized extraData.
        return self.chain_id != 1

    def tx_url(self, tx_hash: str) -> str:
        return f"{self.explorer_url}/tx/{tx_hash}"


CHAINS: dict[str, Chain] = {
    chain.name: chain
    for chain in (
        Chain("ethereum", 1, "https://eth.llamarpc.com", "ETH", "https://etherscan.io"),
        Chain("base", 8453, "https://mainnet.base.org", "ETH", "https://basescan.org"),
        Chain("arbitrum", 42161, "https://arb1.arbitrum.io/rpc", "ETH", "https://arbiscan.io"),
        Chain("polygon", 137, "https://polygon-rpc.com", "POL", "https://polygonscan.com"),
        Chain(
            "sepolia", 11155111, "https://ethereum-sepolia-rpc.publicnode.com", "ETH",
            "https://sepolia.etherscan.io", testnet=True,
        ),
        Chain(
            "base-sepolia", 84532, "https://sepolia.base.org", "ETH",
            "https://sepolia.basescan.org", testnet=True,
        ),
    )
}


def get_chain(name: str) -> Chain:
    """Look up a chain by name. Raises ``KeyError`` naming the valid choices."""
    try:
        return CHAINS[name]
    except KeyError:
        raise KeyError(f"Unknown chain '{name}'. Available: {list_chain_names()}") from None


def list_chain_names() -> list[str]:
    return list(CHAINS)
