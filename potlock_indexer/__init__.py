"""
Potlock donation indexer.

Follows NEAR blocks one at a time, extracts Potlock donation and payout events
and keeps per-account donation aggregates in a relational store.
"""

__version__ = "0.1.0"
