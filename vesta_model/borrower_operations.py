"""
Borrower front door for the Vesta protocol model.

Opens, adjusts and closes positions and lets owners claim collateral left over
from liquidations. Borrowing fees are not charged.
"""

import logging

from .errors import PreconditionError, ValidationError
from .liquity_math import compute_cr
from .trove_manager import Status

logger = logging.getLogger(__name__)


class BorrowerOperations:
    """
    Moves collateral and VST between borrowers and the pools and keeps the
    TroveManager in sync.
    """

    def __init__(self, trove_manager, collateral_registry, price_feed, active_pool,
                 coll_surplus_pool, vst_token, collateral_tokens):
        self.trove_manager = trove_manager
        self.collateral_registry = collateral_registry
        self.price_feed = price_feed
        self.active_pool = active_pool
        self.coll_surplus_pool = coll_surplus_pool
        self.vst_token = vst_token
        self.collateral_tokens = collateral_tokens

    def __repr__(self):
        return "BorrowerOperations"

    def open_trove(self, asset, owner, coll, debt):
        """
        Opens a position: coll is taken from the owner, debt is minted to them.

        Args:
            asset: Collateral identifier
            owner: Borrower
            coll: Collateral deposited
            debt: VST borrowed, at least the asset's minimum net debt

        Returns:
            The new ICR
        """
        params = self.collateral_registry.get(asset)
        price = self.price_feed.fetch_price(asset)

        if coll <= 0:
            raise ValidationError("Collateral must be greater than zero")
        if debt < params.min_net_debt or debt <= 0:
            raise ValidationError(f"Debt must be at least {params.min_net_debt}")
        if self.trove_manager.is_active(asset, owner):
            raise PreconditionError(f"Trove of {owner!r} for {asset!r} is already active")
        self._require_coll_balance(asset, owner, coll)

        icr = compute_cr(coll, debt, price)
        self._require_valid_new_position(asset, price, params, icr, coll, debt)

        self.trove_manager.create_trove(asset, owner, coll, debt)
        self._pull_coll(asset, owner, coll)
        self.active_pool.increase_vst_debt(asset, debt)
        self.vst_token.mint(owner, debt, caller=self)

        logger.info("Trove opened for %r on %r: coll=%s debt=%s", owner, asset, coll, debt)
        return icr

    def add_coll(self, asset, owner, amount):
        self._require_positive(amount)
        self._require_coll_balance(asset, owner, amount)
        self.trove_manager.apply_pending_rewards(asset, owner)
        self.trove_manager.adjust_trove(asset, owner, coll_change=amount)
        self._pull_coll(asset, owner, amount)

    def withdraw_coll(self, asset, owner, amount):
        self._require_positive(amount)
        self.trove_manager.apply_pending_rewards(asset, owner)
        trove = self.trove_manager.get_trove(asset, owner)
        if amount >= trove.coll:
            raise ValidationError("Cannot withdraw all collateral, close the trove instead")
        self._require_valid_adjustment(asset, trove.coll - amount, trove.debt, -amount, 0)
        self.trove_manager.adjust_trove(asset, owner, coll_change=-amount)
        self.active_pool.send_asset(asset, owner, amount)

    def withdraw_debt(self, asset, owner, amount):
        self._require_positive(amount)
        self.trove_manager.apply_pending_rewards(asset, owner)
        trove = self.trove_manager.get_trove(asset, owner)
        self._require_valid_adjustment(asset, trove.coll, trove.debt + amount, 0, amount)
        self.trove_manager.adjust_trove(asset, owner, debt_change=amount)
        self.active_pool.increase_vst_debt(asset, amount)
        self.vst_token.mint(owner, amount, caller=self)

    def repay_debt(self, asset, owner, amount):
        self._require_positive(amount)
        self.trove_manager.apply_pending_rewards(asset, owner)
        trove = self.trove_manager.get_trove(asset, owner)
        params = self.collateral_registry.get(asset)
        if trove.debt - amount < params.min_net_debt or amount >= trove.debt:
            raise ValidationError(f"Remaining debt must be at least {params.min_net_debt}")
        if self.vst_token.balance_of(owner) < amount:
            raise PreconditionError("Insufficient VST balance to repay")
        self.trove_manager.adjust_trove(asset, owner, debt_change=-amount)
        self.active_pool.decrease_vst_debt(asset, amount)
        self.vst_token.burn(owner, amount, caller=self)

    def close_trove(self, asset, owner):
        """Repays the entire debt and returns all collateral to the owner."""
        price = self.price_feed.fetch_price(asset)
        if not self.trove_manager.is_active(asset, owner):
            raise PreconditionError(f"Trove of {owner!r} for {asset!r} does not exist or is closed")
        if self.trove_manager.check_recovery_mode(asset, price):
            raise PreconditionError("Operation not permitted during Recovery Mode")
        if self.trove_manager.get_trove_owners_count(asset) <= 1:
            raise PreconditionError("Only one trove in the system")

        debt, coll, _, _ = self.trove_manager.get_entire_debt_and_coll(asset, owner)
        if self.vst_token.balance_of(owner) < debt:
            raise PreconditionError("Insufficient VST balance to repay the whole debt")

        self.trove_manager.apply_pending_rewards(asset, owner)
        self.trove_manager.remove_stake(asset, owner)
        self.trove_manager.close_trove(asset, owner, Status.CLOSED_BY_OWNER)

        self.active_pool.decrease_vst_debt(asset, debt)
        self.vst_token.burn(owner, debt, caller=self)
        self.active_pool.send_asset(asset, owner, coll)
        logger.info("Trove of %r on %r closed by owner", owner, asset)
        return coll

    def claim_collateral(self, asset, owner):
        """Sends the owner any surplus collateral left from liquidations."""
        return self.coll_surplus_pool.claim_coll(asset, owner)

    # --- Checks ---

    def _require_valid_new_position(self, asset, price, params, icr, coll, debt):
        if self.trove_manager.check_recovery_mode(asset, price):
            if icr < params.ccr:
                raise PreconditionError("In Recovery Mode new troves must have ICR >= CCR")
            return
        if icr < params.mcr:
            raise PreconditionError("An operation that would result in ICR < MCR is not permitted")
        new_tcr = compute_cr(self.trove_manager.get_entire_system_coll(asset) + coll,
                             self.trove_manager.get_entire_system_debt(asset) + debt, price)
        if new_tcr < params.ccr:
            raise PreconditionError("An operation that would result in TCR < CCR is not permitted")

    def _require_valid_adjustment(self, asset, new_coll, new_debt, coll_change, debt_change):
        params = self.collateral_registry.get(asset)
        price = self.price_feed.fetch_price(asset)
        new_icr = compute_cr(new_coll, new_debt, price)
        if self.trove_manager.check_recovery_mode(asset, price):
            if coll_change < 0:
                raise PreconditionError("Collateral withdrawal not permitted in Recovery Mode")
            if debt_change > 0 and new_icr < params.ccr:
                raise PreconditionError("In Recovery Mode new debt requires ICR >= CCR")
            return
        if new_icr < params.mcr:
            raise PreconditionError("An operation that would result in ICR < MCR is not permitted")
        new_tcr = compute_cr(self.trove_manager.get_entire_system_coll(asset) + coll_change,
                             self.trove_manager.get_entire_system_debt(asset) + debt_change, price)
        if new_tcr < params.ccr:
            raise PreconditionError("An operation that would result in TCR < CCR is not permitted")

    def _require_coll_balance(self, asset, owner, amount):
        balance = self.collateral_tokens[asset].balance_of(owner)
        if balance < amount:
            raise PreconditionError(f"Collateral balance {balance} is below {amount}")

    def _pull_coll(self, asset, owner, amount):
        self.collateral_tokens[asset].transfer(owner, self.active_pool, amount)
        self.active_pool.receive_coll(asset, amount)

    @staticmethod
    def _require_positive(amount):
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero")
