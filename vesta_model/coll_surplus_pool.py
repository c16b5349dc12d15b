"""
Collateral Surplus Pool Model for the Vesta protocol.

This module holds collateral owed back to owners of liquidated positions whose
collateral was worth more than their debt plus the liquidation bonus. Owners
claim it later through BorrowerOperations.
"""

import logging

from .errors import InvariantViolation, PreconditionError

logger = logging.getLogger(__name__)


class CollSurplusPool:
    """
    Tracks claimable surplus collateral per (asset, account).
    """

    def __init__(self, collateral_tokens):
        self.collateral_tokens = collateral_tokens

        # asset -> total surplus collateral held
        self.coll_balance = {}

        # (asset, account) -> claimable collateral
        self.balances = {}

    def get_asset_balance(self, asset):
        """Returns the total surplus collateral held for an asset."""
        return self.coll_balance.get(asset, 0)

    def get_collateral(self, asset, account):
        """Returns the claimable collateral balance of an account."""
        return self.balances.get((asset, account), 0)

    def receive_coll(self, asset, amount):
        if amount < 0:
            raise InvariantViolation(f"Invalid collateral amount: {amount}")
        self.coll_balance[asset] = self.get_asset_balance(asset) + amount

    def account_surplus(self, asset, account, amount):
        """
        Records a surplus collateral amount for an account.
        Called during liquidations, after the collateral itself was sent here.
        """
        if amount <= 0:
            raise InvariantViolation(f"Invalid surplus amount: {amount}")
        key = (asset, account)
        self.balances[key] = self.balances.get(key, 0) + amount
        logger.debug("Surplus of %s %s recorded for %r", amount, asset, account)

    def claim_coll(self, asset, account):
        """
        Pays out an account's surplus collateral.

        Returns:
            The amount claimed

        Raises:
            PreconditionError: If nothing is claimable
        """
        key = (asset, account)
        claimable_coll = self.balances.get(key, 0)
        if claimable_coll <= 0:
            raise PreconditionError("No collateral available to claim")

        balance = self.get_asset_balance(asset)
        if claimable_coll > balance:
            raise InvariantViolation(f"Surplus pool holds {balance} of {asset!r}, owes {claimable_coll}")

        self.balances[key] = 0
        self.coll_balance[asset] = balance - claimable_coll
        self.collateral_tokens[asset].transfer(self, account, claimable_coll)
        return claimable_coll
