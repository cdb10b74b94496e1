"""Incoming mail receiver: turns raw email into topics, replies and bounces."""

__version__ = "1.0.0"
