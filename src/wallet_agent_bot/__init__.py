"""Wallet Agent Bot - a chat-driven custodial wallet run by an AI agent."""

__version__ = "0.1.0"
