"""
Default Pool Model for the Vesta protocol.

The DefaultPool holds the collateral and VST debt of liquidated positions that
the Stability Pool could not absorb. Both are owed to the remaining active
positions and move back to the Active Pool as those positions are touched.
"""

from .errors import InvariantViolation


class DefaultPool:
    """Holds redistributed collateral and debt per asset."""

    def __init__(self, collateral_tokens, active_pool=None):
        self.collateral_tokens = collateral_tokens

        # asset -> collateral awaiting redistribution
        self.coll_balance = {}

        # asset -> VST debt awaiting redistribution
        self.vst_debt = {}

        self.active_pool = active_pool

    def get_asset_balance(self, asset):
        return self.coll_balance.get(asset, 0)

    def get_vst_debt(self, asset):
        return self.vst_debt.get(asset, 0)

    def receive_coll(self, asset, amount):
        """
        Receives collateral into the Default Pool.
        Called by the Active Pool when a liquidated position's collateral is redistributed.
        """
        if amount < 0:
            raise InvariantViolation(f"Invalid collateral amount: {amount}")
        self.coll_balance[asset] = self.get_asset_balance(asset) + amount

    def send_asset_to_active_pool(self, asset, amount):
        """
        Sends collateral back to the Active Pool when a position claims its pending rewards.
        """
        if amount == 0:
            return
        balance = self.get_asset_balance(asset)
        if amount < 0 or amount > balance:
            raise InvariantViolation(f"Invalid collateral amount: {amount} (balance {balance})")

        self.coll_balance[asset] = balance - amount
        self.collateral_tokens[asset].transfer(self, self.active_pool, amount)
        self.active_pool.receive_coll(asset, amount)

    def increase_vst_debt(self, asset, amount):
        if amount < 0:
            raise InvariantViolation(f"Invalid debt amount: {amount}")
        self.vst_debt[asset] = self.get_vst_debt(asset) + amount

    def decrease_vst_debt(self, asset, amount):
        debt = self.get_vst_debt(asset)
        if amount < 0 or amount > debt:
            raise InvariantViolation(f"Invalid debt amount: {amount} (debt {debt})")
        self.vst_debt[asset] = debt - amount
