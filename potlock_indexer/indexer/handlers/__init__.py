"""
Persistence handlers for parsed Potlock events.
"""

from .donation_handlers import DonationHandlers
from .payout_handlers import PayoutHandlers

__all__ = [
    "DonationHandlers",
    "PayoutHandlers",
]
