"""Adapters that deliver push notifications."""
