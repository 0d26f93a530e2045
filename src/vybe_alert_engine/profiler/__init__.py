"""Wallet profiling - Derived analytics for tracked wallets."""
