"""
Donation model - one immutable row per indexed donation event.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from enum import Enum

from sqlalchemy import (
    String, Integer, BigInteger, Text, Index, DateTime, Enum as SQLEnum
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin
from .account import NEAR_AMOUNT, USD_AMOUNT


class DonationType(Enum):
    """Kinds of Potlock donations."""
    DIRECT = "DIRECT"
    POT = "POT"
    POT_PROJECT = "POT_PROJECT"
    CAMPAIGN = "CAMPAIGN"


class Donation(BaseModel, TimestampMixin):
    """Donation fact keyed by the originating transaction hash."""

    __tablename__ = "donations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    transaction_hash: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        comment="Receipt/transaction hash, the idempotency key"
    )

    type: Mapped[DonationType] = mapped_column(SQLEnum(DonationType), comment="Donation kind")

    # Parties
    donor_id: Mapped[str] = mapped_column(String(64), comment="Donor account")
    recipient_id: Mapped[Optional[str]] = mapped_column(String(64), comment="Recipient account")
    project_id: Mapped[Optional[str]] = mapped_column(String(64), comment="Project inside a pot")
    pot_id: Mapped[Optional[str]] = mapped_column(String(64), comment="Pot")
    campaign_id: Mapped[Optional[str]] = mapped_column(String(64), comment="Campaign")

    # Amounts
    ft_id: Mapped[str] = mapped_column(String(64), default="near", comment="Token id")
    amount_near: Mapped[Decimal] = mapped_column(NEAR_AMOUNT)
    amount_usd: Mapped[Decimal] = mapped_column(USD_AMOUNT, comment="USD value at event time")
    net_amount_near: Mapped[Optional[Decimal]] = mapped_column(NEAR_AMOUNT, comment="Amount after fees")
    protocol_fee_near: Mapped[Decimal] = mapped_column(NEAR_AMOUNT, default=Decimal(0))
    protocol_fee_usd: Mapped[Decimal] = mapped_column(USD_AMOUNT, default=Decimal(0))

    referrer_id: Mapped[Optional[str]] = mapped_column(String(64))
    referrer_fee_near: Mapped[Decimal] = mapped_column(NEAR_AMOUNT, default=Decimal(0))
    referrer_fee_usd: Mapped[Decimal] = mapped_column(USD_AMOUNT, default=Decimal(0))

    chef_id: Mapped[Optional[str]] = mapped_column(String(64), comment="Pot chef")
    chef_fee_near: Mapped[Optional[Decimal]] = mapped_column(NEAR_AMOUNT)

    message: Mapped[Optional[str]] = mapped_column(Text)

    # Chain position
    block_height: Mapped[int] = mapped_column(BigInteger)
    donated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), comment="Event time")

    __table_args__ = (
        Index("idx_donation_donor", "donor_id", "donated_at"),
        Index("idx_donation_recipient", "recipient_id", "donated_at"),
        Index("idx_donation_type", "type", "donated_at"),
        Index("idx_donation_pot", "pot_id"),
        Index("idx_donation_campaign", "campaign_id"),
        Index("idx_donation_referrer", "referrer_id"),
        Index("idx_donation_block_height", "block_height"),
    )

    def __repr__(self) -> str:
        return f"<Donation(type={self.type.value}, donor={self.donor_id}, tx={self.transaction_hash[:8]}...)>"
