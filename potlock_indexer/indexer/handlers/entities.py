"""
Create-or-touch helpers shared by the event handlers.
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from potlock_indexer.models import Account, Campaign, Pot


async def upsert_account(db: AsyncSession, account_id: str, seen_at: datetime) -> Account:
    """Create the account on first appearance, otherwise touch its activity time."""
    account = await db.get(Account, account_id)
    if account is None:
        account = Account(id=account_id, first_seen_at=seen_at, last_activity_at=seen_at)
        db.add(account)
        await db.flush()
    else:
        account.last_activity_at = seen_at
    return account


async def touch_pot(db: AsyncSession, pot_id: str, seen_at: datetime) -> None:
    pot = await db.get(Pot, pot_id)
    if pot is None:
        db.add(Pot(id=pot_id, created_at=seen_at, updated_at=seen_at))
        await db.flush()
    else:
        pot.updated_at = seen_at


async def touch_campaign(db: AsyncSession, campaign_id: str, seen_at: datetime) -> None:
    campaign = await db.get(Campaign, campaign_id)
    if campaign is None:
        db.add(Campaign(id=campaign_id, created_at=seen_at, updated_at=seen_at))
        await db.flush()
    else:
        campaign.updated_at = seen_at


async def row_exists(db: AsyncSession, model, transaction_hash: str) -> bool:
    """Check whether an event row keyed by transaction hash is already stored."""
    result = await db.execute(
        select(model.id).where(model.transaction_hash == transaction_hash).limit(1)
    )
    return result.scalar_one_or_none() is not None
