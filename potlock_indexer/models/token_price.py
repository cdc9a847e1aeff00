"""
TokenPrice model - minute-granularity fiat price history.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, Integer, DECIMAL, DateTime, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel


class TokenPrice(BaseModel):
    """USD price of a token observed at a minute-truncated instant."""

    __tablename__ = "token_prices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    token_id: Mapped[str] = mapped_column(String(64))
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    price_usd: Mapped[Decimal] = mapped_column(DECIMAL(20, 8))
    source: Mapped[str] = mapped_column(String(32), default="coingecko")

    __table_args__ = (
        UniqueConstraint("token_id", "timestamp", name="uq_token_price_minute"),
        Index("idx_token_price_lookup", "token_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<TokenPrice(token={self.token_id}, at={self.timestamp}, usd={self.price_usd})>"
