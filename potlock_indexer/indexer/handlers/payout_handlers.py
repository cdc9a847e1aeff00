"""
Event handler for pot payout events.
"""

from datetime import datetime

import structlog
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from potlock_indexer.core.database import get_async_session
from potlock_indexer.core.exceptions import DatabaseError, DuplicateEventError
from potlock_indexer.models import Account, PotPayout
from potlock_indexer.services.event_parser import ParsedPayout
from potlock_indexer.services.price_service import PriceService, yocto_to_near

from .entities import upsert_account, touch_pot, row_exists


logger = structlog.get_logger(__name__)


class PayoutHandlers:
    """
    Persists pot payouts; same duplicate discipline as donations.
    """

    def __init__(self, price_service: PriceService, stats):
        """Initialize payout handlers."""
        self.price_service = price_service
        self.stats = stats
        self.logger = logger.bind(service="payout_handlers")

    async def save_payout(self, parsed: ParsedPayout, block_time: datetime) -> bool:
        """Store a parsed payout, returning False when it was already indexed."""
        paid_at = parsed.paid_at or block_time
        amount_near = yocto_to_near(parsed.amount)
        amount_usd = await self.price_service.value_at(parsed.amount, paid_at)

        try:
            async with get_async_session() as db:
                if await row_exists(db, PotPayout, parsed.transaction_hash):
                    raise DuplicateEventError(parsed.transaction_hash, entity="payout")

                await upsert_account(db, parsed.recipient_id, paid_at)
                if parsed.pot_id:
                    await touch_pot(db, parsed.pot_id, paid_at)

                db.add(PotPayout(
                    transaction_hash=parsed.transaction_hash,
                    pot_id=parsed.pot_id,
                    recipient_id=parsed.recipient_id,
                    ft_id=parsed.ft_id,
                    amount_near=amount_near,
                    amount_usd=amount_usd,
                    block_height=parsed.block_height,
                    paid_at=paid_at,
                ))
                await db.flush()

                await db.execute(
                    update(Account)
                    .where(Account.id == parsed.recipient_id)
                    .values(
                        total_received_usd=Account.total_received_usd + amount_usd,
                        total_received_near=Account.total_received_near + amount_near,
                        pot_received_usd=Account.pot_received_usd + amount_usd,
                        pot_received_count=Account.pot_received_count + 1,
                    )
                    .execution_options(synchronize_session=False)
                )

        except DuplicateEventError:
            self._skip_duplicate(parsed)
            return False

        except IntegrityError as e:
            async with get_async_session() as db:
                already_indexed = await row_exists(db, PotPayout, parsed.transaction_hash)
            if already_indexed:
                self._skip_duplicate(parsed)
                return False
            self.logger.error("Failed to save payout", tx_hash=parsed.transaction_hash, error=str(e.orig))
            raise DatabaseError(
                f"Failed to save payout {parsed.transaction_hash}: {e.orig}",
                {"transaction_hash": parsed.transaction_hash}
            ) from e

        self.stats.payouts_saved += 1
        self.logger.info(
            "Pot payout saved",
            pot=parsed.pot_id,
            recipient=parsed.recipient_id,
            amount_near=str(amount_near),
            amount_usd=str(amount_usd),
            tx_hash=parsed.transaction_hash
        )
        return True

    def _skip_duplicate(self, parsed: ParsedPayout) -> None:
        self.stats.duplicates_skipped += 1
        self.logger.debug("Payout already indexed, skipping", tx_hash=parsed.transaction_hash)
