"""Wallet and whale tracking alert engine for Solana chat bots."""

__version__ = "0.1.0"
