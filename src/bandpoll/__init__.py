"""Scheduling polls for band rehearsals with automatic line-up composition."""

__version__ = "0.1.0"
