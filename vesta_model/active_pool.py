"""
Active Pool Model for the Vesta protocol.

The ActivePool holds the collateral and tracks the VST debt of every active
position, per collateral asset. When a position is liquidated its collateral and
debt move from here to the Stability Pool, the Default Pool, the Collateral
Surplus Pool, or the liquidator, depending on how the liquidation is resolved.
"""

import logging

from .errors import InvariantViolation

logger = logging.getLogger(__name__)


class ActivePool:
    """
    Tracks collateral and debt of active positions.

    Collateral is held as real token balances of this object in the asset's
    collateral token; coll_balance mirrors them per asset.
    """

    def __init__(self, collateral_tokens):
        # asset -> collateral Token, shared with the other pools
        self.collateral_tokens = collateral_tokens

        # asset -> collateral held
        self.coll_balance = {}

        # asset -> VST debt of active positions
        self.vst_debt = {}

    def get_asset_balance(self, asset):
        """Returns the collateral held for the given asset."""
        return self.coll_balance.get(asset, 0)

    def get_vst_debt(self, asset):
        """Returns the VST debt recorded for the given asset."""
        return self.vst_debt.get(asset, 0)

    def receive_coll(self, asset, amount):
        """Records collateral that has already been transferred to this pool."""
        _check_amount(amount)
        self.coll_balance[asset] = self.get_asset_balance(asset) + amount

    def send_asset(self, asset, recipient, amount):
        """
        Sends collateral to an account or to another pool.

        Pools receiving collateral are notified through their receive_coll method.
        """
        _check_amount(amount)
        if amount == 0:
            return
        balance = self.get_asset_balance(asset)
        if amount > balance:
            raise InvariantViolation(f"ActivePool: sending {amount} of {asset!r} but only holds {balance}")

        self.coll_balance[asset] = balance - amount
        self.collateral_tokens[asset].transfer(self, recipient, amount)
        if hasattr(recipient, "receive_coll"):
            recipient.receive_coll(asset, amount)

        logger.debug("ActivePool sent %s %s to %r", amount, asset, recipient)

    def increase_vst_debt(self, asset, amount):
        _check_amount(amount)
        self.vst_debt[asset] = self.get_vst_debt(asset) + amount

    def decrease_vst_debt(self, asset, amount):
        _check_amount(amount)
        debt = self.get_vst_debt(asset)
        if amount > debt:
            raise InvariantViolation(f"ActivePool: decreasing debt of {asset!r} by {amount} below zero")
        self.vst_debt[asset] = debt - amount


def _check_amount(amount):
    if amount < 0:
        raise InvariantViolation(f"Negative pool amount: {amount}")
