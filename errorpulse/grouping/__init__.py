"""Incident grouping for errorpulse."""

from errorpulse.grouping.store import GroupingStore

__all__ = ["GroupingStore"]
