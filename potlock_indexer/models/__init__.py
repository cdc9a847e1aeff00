"""
Database models for the Potlock indexer.

Donations and payouts are immutable facts keyed by transaction hash; accounts
hold running aggregates derived from them.
"""

from .base import Base, BaseModel, TimestampMixin
from .account import Account
from .donation import Donation, DonationType
from .pot import Pot, Campaign
from .payout import PotPayout
from .token_price import TokenPrice
from .checkpoint import IndexerCheckpoint, CHECKPOINT_ID

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "Account",
    "Donation",
    "DonationType",
    "Pot",
    "Campaign",
    "PotPayout",
    "TokenPrice",
    "IndexerCheckpoint",
    "CHECKPOINT_ID",
]
