"""Custodial wallet system for the wallet agent bot.

Provides per-user eth-account keys persisted in SQLite, and a Web3 provider
for the configured EVM chain. Only the keystore touches private keys.
"""
