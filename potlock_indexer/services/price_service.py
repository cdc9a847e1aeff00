"""
Price service for valuing NEAR amounts in USD.

Current prices come from CoinGecko behind a short in-process cache and are
written through to the token_prices table, which also serves historical
lookups for past events. Pricing failures never raise: the service degrades to
older prices and finally to zero.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, localcontext
from typing import Optional

import aiohttp
import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from potlock_indexer.core.config import NearConfig, Settings, settings as default_settings
from potlock_indexer.core.database import get_async_session
from potlock_indexer.core.exceptions import ExternalServiceError
from potlock_indexer.models.token_price import TokenPrice


logger = structlog.get_logger(__name__)

ZERO = Decimal(0)


def yocto_to_near(amount: Optional[str]) -> Decimal:
    """Convert a yoctoNEAR decimal string to NEAR without going through floats."""
    if not amount:
        return ZERO
    with localcontext() as ctx:
        ctx.prec = 80
        return Decimal(amount) / Decimal(NearConfig.YOCTO_PER_NEAR)


def truncate_to_minute(moment: datetime) -> datetime:
    return moment.replace(second=0, microsecond=0)


@dataclass
class PriceCache:
    """Last successfully fetched price, owned by one PriceService."""
    price: Optional[Decimal] = None
    fetched_at: float = 0.0

    def is_fresh(self, max_age: float, now: float) -> bool:
        return self.price is not None and now - self.fetched_at < max_age


class PriceService:
    """Service resolving NEAR amounts to USD at a given instant."""

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or default_settings
        self.token_id = self.config.price_token_id
        self.cache_duration = self.config.price_cache_seconds
        self.cache = PriceCache()
        self.logger = logger.bind(service="price_service")

    async def value_at(self, amount: Optional[str], at_time: Optional[datetime] = None) -> Decimal:
        """
        Get the USD value of a yoctoNEAR amount.

        Args:
            amount: yoctoNEAR as a decimal string
            at_time: Event time; the current price is used when omitted

        Returns:
            USD value, zero when no price is known
        """
        near_amount = yocto_to_near(amount)
        if near_amount == ZERO:
            return ZERO

        if at_time is not None:
            price = await self.get_historical_price(at_time)
        else:
            price = await self.get_current_price()

        return near_amount * price

    async def get_current_price(self) -> Decimal:
        """Get the current USD price, preferring the cache."""
        now = time.time()
        if self.cache.is_fresh(self.cache_duration, now):
            return self.cache.price

        try:
            price = await self._fetch_remote_price()
        except ExternalServiceError as e:
            self.logger.error("Failed to fetch token price", token=self.token_id, error=e.message)
            return await self._fallback_price()

        self.cache = PriceCache(price=price, fetched_at=now)
        self.logger.info("Token price updated", token=self.token_id, price_usd=str(price))
        await self._save_price(price, datetime.now(timezone.utc))
        return price

    async def get_historical_price(self, at_time: datetime) -> Decimal:
        """Get the latest persisted price at or before an instant."""
        try:
            async with get_async_session() as db:
                result = await db.execute(
                    select(TokenPrice.price_usd)
                    .where(TokenPrice.token_id == self.token_id)
                    .where(TokenPrice.timestamp <= at_time)
                    .order_by(TokenPrice.timestamp.desc())
                    .limit(1)
                )
                price = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            self.logger.error("Failed to read historical price", at=at_time.isoformat(), error=str(e))
            price = None

        if price is not None:
            return Decimal(price)

        return await self.get_current_price()

    async def _fetch_remote_price(self) -> Decimal:
        """Fetch the USD price from CoinGecko."""
        url = f"{self.config.price_api_url}/simple/price"
        params = {"ids": self.token_id, "vs_currencies": "usd"}
        timeout = aiohttp.ClientTimeout(total=self.config.price_api_timeout)

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url, params=params) as response:
                    if response.status != 200:
                        raise ExternalServiceError(
                            f"Price API returned HTTP {response.status}",
                            {"status": response.status}
                        )
                    data = await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise ExternalServiceError("Price API timeout") from e
        except (aiohttp.ClientError, ValueError) as e:
            raise ExternalServiceError(f"Price API request failed: {e}") from e

        quote = (data.get(self.token_id) or {}).get("usd") if isinstance(data, dict) else None
        try:
            price = Decimal(str(quote)) if quote is not None else None
        except InvalidOperation:
            price = None

        if price is None or not price.is_finite() or price <= ZERO:
            raise ExternalServiceError("Price API returned no usable quote", {"response": data})

        return price

    async def _fallback_price(self) -> Decimal:
        if self.cache.price is not None:
            self.logger.warning("Using stale cached price", price_usd=str(self.cache.price))
            return self.cache.price

        latest = await self._latest_saved_price()
        if latest is not None:
            self.logger.warning("Using latest stored price", price_usd=str(latest))
            return latest

        self.logger.warning("No price available, valuing at zero", token=self.token_id)
        return ZERO

    async def _latest_saved_price(self) -> Optional[Decimal]:
        try:
            async with get_async_session() as db:
                result = await db.execute(
                    select(TokenPrice.price_usd)
                    .where(TokenPrice.token_id == self.token_id)
                    .order_by(TokenPrice.timestamp.desc())
                    .limit(1)
                )
                price = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            self.logger.error("Failed to read latest stored price", error=str(e))
            return None

        return Decimal(price) if price is not None else None

    async def _save_price(self, price: Decimal, observed_at: datetime) -> None:
        """Upsert the price under the minute it was observed in."""
        minute = truncate_to_minute(observed_at)
        try:
            async with get_async_session() as db:
                result = await db.execute(
                    select(TokenPrice)
                    .where(TokenPrice.token_id == self.token_id)
                    .where(TokenPrice.timestamp == minute)
                )
                row = result.scalar_one_or_none()
                if row is None:
                    db.add(TokenPrice(
                        token_id=self.token_id,
                        timestamp=minute,
                        price_usd=price,
                        source="coingecko"
                    ))
                else:
                    row.price_usd = price
        except SQLAlchemyError as e:
            self.logger.error("Failed to save price", minute=minute.isoformat(), error=str(e))
