"""Richlist Tracker - periodic top-holder snapshots and whale behaviour analytics."""

__version__ = "0.1.0"
