"""Web3 provider bound to the deployment's chain.

All methods are blocking; callers on the event loop run them through
``asyncio.to_thread``.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from web3 import Web3
from web3.exceptions import TransactionNotFound
from web3.middleware import ExtraDataToPOAMiddleware

from wallet_agent_bot.wallet.chains import Chain

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount

logger = logging.getLogger("wallet_agent_bot.wallet.provider")

_PRIORITY_FEE_GWEI = Decimal("1.5")


class Web3Provider:
    """Executes queries and signed transfers on a single EVM chain."""

    def __init__(self, chain: Chain, rpc_url: str | None = None) -> None:
        self.chain = chain
        self.rpc_url = rpc_url or chain.rpc_url
        self._w3: Web3 | None = None

    @property
    def w3(self) -> Web3:
        """Return a (cached) Web3 instance.

        Injects POA middleware where the chain needs it.
        """
        if self._w3 is None:
            w3 = Web3(Web3.HTTPProvider(self.rpc_url))
            if self.chain.needs_poa_middleware:
                w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
            self._w3 = w3
        return self._w3

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_native_balance(self, address: str) -> Decimal:
        """Get the native token balance in human-readable units (e.g. ETH)."""
        checksum = Web3.to_checksum_address(address)
        balance_wei = self.w3.eth.get_balance(checksum)
        return Decimal(str(Web3.from_wei(balance_wei, "ether")))

    def gas_price(self) -> Decimal:
        """Current gas price in gwei."""
        return Decimal(str(Web3.from_wei(self.w3.eth.gas_price, "gwei")))

    def estimate_transfer(self, from_address: str, to_address: str, amount: Decimal | str) -> dict:
        """Estimate the gas and fee for a native-token transfer."""
        tx = self._build_transfer(from_address, to_address, amount)
        fee_per_gas = tx.get("maxFeePerGas", tx.get("gasPrice", 0))
        return {
            "gas": tx["gas"],
            "fee_per_gas_gwei": str(Web3.from_wei(fee_per_gas, "gwei")),
            "max_fee": str(Web3.from_wei(fee_per_gas * tx["gas"], "ether")),
            "symbol": self.chain.native_symbol,
        }

    def get_transaction_status(self, tx_hash: str) -> dict:
        """Look up a transaction receipt. Unmined transactions report ``pending``."""
        try:
            receipt = self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return {"tx_hash": tx_hash, "status": "pending"}
        return {
            "tx_hash": tx_hash,
            "status": "success" if receipt["status"] == 1 else "failed",
            "block_number": receipt["blockNumber"],
            "gas_used": receipt["gasUsed"],
            "explorer_url": self.chain.tx_url(tx_hash),
        }

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def _build_transfer(self, from_address: str, to_address: str, amount: Decimal | str) -> dict:
        """Build an unsigned native-token transfer with fee fields and gas.

        Uses EIP-1559 fee parameters with a legacy gas price fallback.
        """
        w3 = self.w3
        tx: dict = {
            "from": Web3.to_checksum_address(from_address),
            "to": Web3.to_checksum_address(to_address),
            "value": Web3.to_wei(Decimal(str(amount)), "ether"),
            "chainId": self.chain.chain_id,
        }

        latest = w3.eth.get_block("latest")
        base_fee = latest.get("baseFeePerGas")
        if base_fee is not None:
            max_priority = Web3.to_wei(_PRIORITY_FEE_GWEI, "gwei")
            tx["maxFeePerGas"] = base_fee * 2 + max_priority
            tx["maxPriorityFeePerGas"] = max_priority
        else:
            tx["gasPrice"] = w3.eth.gas_price
        tx["gas"] = w3.eth.estimate_gas(tx)
        return tx

    def send_transfer(self, account: LocalAccount, to_address: str, amount: Decimal | str) -> str:
        """Sign and broadcast a native-token transfer from *account*.

        Returns the transaction hash as a ``0x``-prefixed hex string.
        """
        tx = self._build_transfer(account.address, to_address, amount)
        tx["nonce"] = self.w3.eth.get_transaction_count(account.address)
        signed = account.sign_transaction(tx)
        tx_hash = Web3.to_hex(self.w3.eth.send_raw_transaction(signed.raw_transaction))
        logger.info(
            "Transfer sent from %s to %s (%s %s) tx=%s",
            account.address,
            tx["to"],
            amount,
            self.chain.native_symbol,
            tx_hash,
        )
        return tx_hash
