"""
Account model - running donation aggregates per NEAR account.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Integer, DECIMAL, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel


# Native amounts keep full yoctoNEAR precision, fiat amounts keep 8 places
NEAR_AMOUNT = DECIMAL(48, 24)
USD_AMOUNT = DECIMAL(30, 8)


class Account(BaseModel):
    """
    Materialized donation summary for one account.

    Rows are created the first time an account shows up as donor, recipient or
    referrer and are only ever incremented afterwards.
    """

    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment="NEAR account id"
    )

    first_seen_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        comment="Event time of the first appearance"
    )

    last_activity_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        comment="Event time of the latest appearance"
    )

    # Totals
    total_donated_near: Mapped[Decimal] = mapped_column(NEAR_AMOUNT, default=Decimal(0))
    total_donated_usd: Mapped[Decimal] = mapped_column(USD_AMOUNT, default=Decimal(0))
    total_received_near: Mapped[Decimal] = mapped_column(NEAR_AMOUNT, default=Decimal(0))
    total_received_usd: Mapped[Decimal] = mapped_column(USD_AMOUNT, default=Decimal(0))
    donations_sent_count: Mapped[int] = mapped_column(Integer, default=0)
    donations_received_count: Mapped[int] = mapped_column(Integer, default=0)

    # Referrals
    referral_fees_earned_near: Mapped[Decimal] = mapped_column(NEAR_AMOUNT, default=Decimal(0))
    referral_fees_earned_usd: Mapped[Decimal] = mapped_column(USD_AMOUNT, default=Decimal(0))
    referral_fees_paid_near: Mapped[Decimal] = mapped_column(NEAR_AMOUNT, default=Decimal(0))
    referral_fees_paid_usd: Mapped[Decimal] = mapped_column(USD_AMOUNT, default=Decimal(0))

    # Direct donations
    direct_donated_usd: Mapped[Decimal] = mapped_column(USD_AMOUNT, default=Decimal(0))
    direct_received_usd: Mapped[Decimal] = mapped_column(USD_AMOUNT, default=Decimal(0))
    direct_sent_count: Mapped[int] = mapped_column(Integer, default=0)
    direct_received_count: Mapped[int] = mapped_column(Integer, default=0)

    # Pot donations
    pot_donated_usd: Mapped[Decimal] = mapped_column(USD_AMOUNT, default=Decimal(0))
    pot_received_usd: Mapped[Decimal] = mapped_column(USD_AMOUNT, default=Decimal(0))
    pot_sent_count: Mapped[int] = mapped_column(Integer, default=0)
    pot_received_count: Mapped[int] = mapped_column(Integer, default=0)

    # Campaign donations
    campaign_donated_usd: Mapped[Decimal] = mapped_column(USD_AMOUNT, default=Decimal(0))
    campaign_received_usd: Mapped[Decimal] = mapped_column(USD_AMOUNT, default=Decimal(0))
    campaign_sent_count: Mapped[int] = mapped_column(Integer, default=0)
    campaign_received_count: Mapped[int] = mapped_column(Integer, default=0)

    first_donation_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_donation_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("idx_account_total_donated", "total_donated_usd"),
        Index("idx_account_total_received", "total_received_usd"),
        Index("idx_account_last_activity", "last_activity_at"),
    )

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, donated=${self.total_donated_usd}, received=${self.total_received_usd})>"
