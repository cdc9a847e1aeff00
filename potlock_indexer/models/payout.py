"""
PotPayout model - disbursement from a pot to a recipient.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Integer, BigInteger, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin
from .account import NEAR_AMOUNT, USD_AMOUNT


class PotPayout(BaseModel, TimestampMixin):
    """Payout fact keyed by the originating transaction hash."""

    __tablename__ = "pot_payouts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    transaction_hash: Mapped[str] = mapped_column(String(64), unique=True)
    pot_id: Mapped[Optional[str]] = mapped_column(String(64))
    recipient_id: Mapped[str] = mapped_column(String(64))

    ft_id: Mapped[str] = mapped_column(String(64), default="near")
    amount_near: Mapped[Decimal] = mapped_column(NEAR_AMOUNT)
    amount_usd: Mapped[Decimal] = mapped_column(USD_AMOUNT)

    block_height: Mapped[int] = mapped_column(BigInteger)
    paid_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("idx_payout_recipient", "recipient_id", "paid_at"),
        Index("idx_payout_pot", "pot_id"),
    )

    def __repr__(self) -> str:
        return f"<PotPayout(pot={self.pot_id}, recipient={self.recipient_id}, tx={self.transaction_hash[:8]}...)>"
