"""
Event handler for donation events.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from potlock_indexer.core.database import get_async_session
from potlock_indexer.core.exceptions import DatabaseError, DuplicateEventError
from potlock_indexer.models import Account, Donation
from potlock_indexer.services.event_parser import (
    ParsedDonation, DONOR_BUCKETS, RECIPIENT_BUCKETS
)
from potlock_indexer.services.price_service import PriceService, yocto_to_near, ZERO

from .entities import upsert_account, touch_pot, touch_campaign, row_exists


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DonationValues:
    """Native and USD amounts of one donation, valued at event time."""
    amount_near: Decimal
    amount_usd: Decimal
    protocol_fee_near: Decimal
    protocol_fee_usd: Decimal
    referrer_fee_near: Decimal
    referrer_fee_usd: Decimal
    net_amount_near: Optional[Decimal]
    chef_fee_near: Optional[Decimal]


class DonationHandlers:
    """
    Persists donations and applies their account aggregate deltas.

    A donation and its increments are written in one transaction, and the
    increments only run after the donation row was inserted, so reprocessing a
    block never counts a donation twice.
    """

    def __init__(self, price_service: PriceService, stats):
        """Initialize donation handlers."""
        self.price_service = price_service
        self.stats = stats
        self.logger = logger.bind(service="donation_handlers")

    async def save_donation(self, parsed: ParsedDonation, block_time: datetime) -> bool:
        """
        Store a parsed donation.

        Args:
            parsed: Donation decoded from the receipt logs
            block_time: Timestamp of the containing block, used when the event has none

        Returns:
            True when stored, False when it was already indexed

        Raises:
            DatabaseError: If the store fails for any other reason
        """
        donated_at = parsed.donated_at or block_time
        values = await self._value_donation(parsed, donated_at)

        try:
            async with get_async_session() as db:
                if await row_exists(db, Donation, parsed.transaction_hash):
                    raise DuplicateEventError(parsed.transaction_hash)

                await self._upsert_related(db, parsed, donated_at)

                db.add(self._build_donation(parsed, values, donated_at))
                await db.flush()

                await self._update_account_aggregates(db, parsed, values, donated_at)

        except DuplicateEventError:
            self._skip_duplicate(parsed)
            return False

        except IntegrityError as e:
            if await self._already_indexed(parsed.transaction_hash):
                self._skip_duplicate(parsed)
                return False
            self.logger.error(
                "Failed to save donation",
                tx_hash=parsed.transaction_hash,
                error=str(e.orig)
            )
            raise DatabaseError(
                f"Failed to save donation {parsed.transaction_hash}: {e.orig}",
                {"transaction_hash": parsed.transaction_hash}
            ) from e

        self.stats.donations_saved += 1
        self.logger.info(
            "Donation saved",
            type=parsed.type.value,
            donor=parsed.donor_id,
            target=parsed.target_id,
            amount_near=str(values.amount_near),
            amount_usd=str(values.amount_usd),
            tx_hash=parsed.transaction_hash,
            height=parsed.block_height
        )
        return True

    async def _value_donation(self, parsed: ParsedDonation, donated_at: datetime) -> DonationValues:
        """Convert every amount at event time; fees are priced independently."""
        price_service = self.price_service

        return DonationValues(
            amount_near=yocto_to_near(parsed.amount),
            amount_usd=await price_service.value_at(parsed.amount, donated_at),
            protocol_fee_near=yocto_to_near(parsed.protocol_fee),
            protocol_fee_usd=(
                await price_service.value_at(parsed.protocol_fee, donated_at)
                if parsed.protocol_fee else ZERO
            ),
            referrer_fee_near=yocto_to_near(parsed.referrer_fee),
            referrer_fee_usd=(
                await price_service.value_at(parsed.referrer_fee, donated_at)
                if parsed.referrer_fee else ZERO
            ),
            net_amount_near=yocto_to_near(parsed.net_amount) if parsed.net_amount is not None else None,
            chef_fee_near=yocto_to_near(parsed.chef_fee) if parsed.chef_fee is not None else None,
        )

    async def _upsert_related(self, db: AsyncSession, parsed: ParsedDonation, donated_at: datetime) -> None:
        await upsert_account(db, parsed.donor_id, donated_at)
        if parsed.recipient_id:
            await upsert_account(db, parsed.recipient_id, donated_at)
        if parsed.referrer_id:
            await upsert_account(db, parsed.referrer_id, donated_at)
        if parsed.pot_id:
            await touch_pot(db, parsed.pot_id, donated_at)
        if parsed.campaign_id:
            await touch_campaign(db, parsed.campaign_id, donated_at)

    @staticmethod
    def _build_donation(parsed: ParsedDonation, values: DonationValues, donated_at: datetime) -> Donation:
        return Donation(
            transaction_hash=parsed.transaction_hash,
            type=parsed.type,
            donor_id=parsed.donor_id,
            recipient_id=parsed.recipient_id,
            project_id=parsed.project_id,
            pot_id=parsed.pot_id,
            campaign_id=parsed.campaign_id,
            ft_id=parsed.ft_id,
            amount_near=values.amount_near,
            amount_usd=values.amount_usd,
            net_amount_near=values.net_amount_near,
            protocol_fee_near=values.protocol_fee_near,
            protocol_fee_usd=values.protocol_fee_usd,
            referrer_id=parsed.referrer_id,
            referrer_fee_near=values.referrer_fee_near,
            referrer_fee_usd=values.referrer_fee_usd,
            chef_id=parsed.chef_id,
            chef_fee_near=values.chef_fee_near,
            message=parsed.message,
            block_height=parsed.block_height,
            donated_at=donated_at,
        )

    async def _update_account_aggregates(
        self,
        db: AsyncSession,
        parsed: ParsedDonation,
        values: DonationValues,
        donated_at: datetime
    ) -> None:
        referrer_fee_charged = values.referrer_fee_near > ZERO

        donor_bucket = DONOR_BUCKETS[parsed.type]
        donor_values = {
            "total_donated_usd": Account.total_donated_usd + values.amount_usd,
            "total_donated_near": Account.total_donated_near + values.amount_near,
            "donations_sent_count": Account.donations_sent_count + 1,
            "first_donation_date": func.coalesce(Account.first_donation_date, donated_at),
            "last_donation_date": donated_at,
            **_bucket_increment(donor_bucket, "donated", "sent", values.amount_usd),
        }
        if referrer_fee_charged:
            donor_values["referral_fees_paid_usd"] = Account.referral_fees_paid_usd + values.referrer_fee_usd
            donor_values["referral_fees_paid_near"] = Account.referral_fees_paid_near + values.referrer_fee_near

        await self._increment(db, parsed.donor_id, donor_values)

        if parsed.recipient_id:
            recipient_values = {
                "total_received_usd": Account.total_received_usd + values.amount_usd,
                "total_received_near": Account.total_received_near + values.amount_near,
                "donations_received_count": Account.donations_received_count + 1,
            }
            recipient_bucket = RECIPIENT_BUCKETS[parsed.type]
            if recipient_bucket:
                recipient_values.update(
                    _bucket_increment(recipient_bucket, "received", "received", values.amount_usd)
                )
            await self._increment(db, parsed.recipient_id, recipient_values)

        if parsed.referrer_id and referrer_fee_charged:
            await self._increment(db, parsed.referrer_id, {
                "referral_fees_earned_usd": Account.referral_fees_earned_usd + values.referrer_fee_usd,
                "referral_fees_earned_near": Account.referral_fees_earned_near + values.referrer_fee_near,
            })

    @staticmethod
    async def _increment(db: AsyncSession, account_id: str, values: dict) -> None:
        await db.execute(
            update(Account)
            .where(Account.id == account_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    async def _already_indexed(self, transaction_hash: str) -> bool:
        async with get_async_session() as db:
            return await row_exists(db, Donation, transaction_hash)

    def _skip_duplicate(self, parsed: ParsedDonation) -> None:
        self.stats.duplicates_skipped += 1
        self.logger.debug(
            "Donation already indexed, skipping",
            tx_hash=parsed.transaction_hash,
            height=parsed.block_height
        )


def _bucket_increment(bucket: str, amount_verb: str, count_verb: str, amount_usd: Decimal) -> dict:
    """Increments for one of the direct/pot/campaign column groups."""
    amount_column = getattr(Account, f"{bucket}_{amount_verb}_usd")
    count_column = getattr(Account, f"{bucket}_{count_verb}_count")
    return {
        amount_column.key: amount_column + amount_usd,
        count_column.key: count_column + 1,
    }
