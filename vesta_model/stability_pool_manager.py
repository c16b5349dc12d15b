"""
Routes collateral assets to their stability pools.
"""

import logging

from .access import Role
from .errors import PreconditionError, ValidationError

logger = logging.getLogger(__name__)


class StabilityPoolManager:

    def __init__(self, access_control):
        self.access_control = access_control
        self.stability_pools = {}  # asset -> StabilityPool

    def add_stability_pool(self, asset, pool, caller):
        self.access_control.require_role(Role.ADMIN, caller)
        if asset in self.stability_pools:
            raise ValidationError(f"Stability pool for {asset!r} already registered")
        if self.is_stability_pool(pool):
            raise ValidationError(f"{pool!r} is already registered for another asset")
        self.stability_pools[asset] = pool
        logger.info("Stability pool registered for %r", asset)

    def remove_stability_pool(self, asset, caller):
        self.access_control.require_role(Role.ADMIN, caller)
        if asset not in self.stability_pools:
            raise ValidationError(f"No stability pool for {asset!r}")
        del self.stability_pools[asset]
        logger.info("Stability pool removed for %r", asset)

    def resolve(self, asset):
        """Returns the asset's pool, or None so callers can check before acting."""
        return self.stability_pools.get(asset)

    def get_asset_stability_pool(self, asset):
        pool = self.stability_pools.get(asset)
        if pool is None:
            raise PreconditionError(f"No stability pool for {asset!r}")
        return pool

    def is_stability_pool(self, pool):
        return any(registered is pool for registered in self.stability_pools.values())

    def assets(self):
        return list(self.stability_pools)
