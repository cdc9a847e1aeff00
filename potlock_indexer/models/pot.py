"""
Pot and Campaign models - donation destinations created on first reference.
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class Pot(BaseModel, TimestampMixin):
    """Quadratic-funding pot contract."""

    __tablename__ = "pots"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, comment="Pot contract account")

    def __repr__(self) -> str:
        return f"<Pot(id={self.id})>"


class Campaign(BaseModel, TimestampMixin):
    """Campaign referenced by campaign donations."""

    __tablename__ = "campaigns"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, comment="Campaign id")

    def __repr__(self) -> str:
        return f"<Campaign(id={self.id})>"
