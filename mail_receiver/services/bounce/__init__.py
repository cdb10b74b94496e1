"""Bounce scoring."""

from .bounce_updater import BounceScoreUpdater

__all__ = ["BounceScoreUpdater"]
