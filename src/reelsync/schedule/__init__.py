"""Scheduling of the periodic reconciliation sweep."""

from .scheduler import SweepScheduler

__all__ = ["SweepScheduler"]
