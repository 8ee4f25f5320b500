"""Polymarket builder trade sync and dashboard service."""

__version__ = "0.1.0"
