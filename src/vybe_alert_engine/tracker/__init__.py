"""Tracking engines - Wallet and whale subscriptions."""
