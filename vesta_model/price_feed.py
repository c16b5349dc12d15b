"""
Price feed for simulations.

Prices are 18-decimal integers per asset. A price is refused when it was never
set, was marked invalid, or is older than the configured staleness window.
"""

import logging
from dataclasses import dataclass

from .errors import PreconditionError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class PriceRecord:
    price: int
    updated_at: int
    valid: bool = True


class PriceFeed:
    """Simple per-asset price feed driven by the virtual clock."""

    def __init__(self, clock, staleness):
        self.clock = clock
        self.staleness = staleness
        self.records = {}

    def set_price(self, asset, price):
        """Sets a new price for an asset and marks it valid."""
        if price <= 0:
            raise ValidationError("Price must be greater than zero")
        self.records[asset] = PriceRecord(price=int(price), updated_at=self.clock.now())
        logger.debug("Price of %r set to %s", asset, price)

    def invalidate(self, asset):
        """Marks the current price of an asset as unusable (oracle failure)."""
        if asset in self.records:
            self.records[asset].valid = False
            logger.warning("Price of %r marked invalid", asset)

    def is_fresh(self, asset):
        record = self.records.get(asset)
        return (record is not None and record.valid
                and self.clock.now() - record.updated_at <= self.staleness)

    def fetch_price(self, asset):
        """
        Returns the current price of an asset.

        Raises:
            PreconditionError: If the price is missing, invalid or stale
        """
        record = self.records.get(asset)
        if record is None:
            raise PreconditionError(f"No price for {asset!r}")
        if not record.valid:
            raise PreconditionError(f"Price of {asset!r} is invalid")
        if self.clock.now() - record.updated_at > self.staleness:
            raise PreconditionError(f"Price of {asset!r} is stale")
        return record.price
