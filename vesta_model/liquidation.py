"""
Liquidation engine for the Vesta protocol.

A position whose ICR is below MCR (below CCR while the asset is in Recovery
Mode) can be liquidated by anyone. Its collateral is split four ways:

1. Gas compensation for the caller: coll / percent_divisor, at least the flat
   debt gas compensation converted to collateral, at most the whole collateral.
2. A surplus for the owner, when the ICR exceeds 100% plus the bonus rate:
   coll_to_liquidate * (ICR - 100% - bonus) / ICR. It is claimable later from
   the Collateral Surplus Pool.
3. The Stability Pool's share, proportional to the debt it absorbs.
4. The rest, redistributed with the unabsorbed debt over the remaining positions.

The four parts always add up to the position's entire collateral.
"""

import logging
from dataclasses import dataclass, fields

from .errors import NothingToLiquidateError, NotLiquidatableError
from .liquity_math import DECIMAL_PRECISION, compute_cr
from .trove_manager import Status

logger = logging.getLogger(__name__)


@dataclass
class LiquidationValues:
    """
    Outcome of liquidating one position, or the totals of a batch.
    """
    entire_trove_debt: int = 0  # Debt including pending redistribution
    entire_trove_coll: int = 0  # Collateral including pending redistribution
    coll_gas_compensation: int = 0  # Collateral paid to the liquidator
    debt_to_offset: int = 0  # Debt absorbed by the Stability Pool
    coll_to_send_to_sp: int = 0  # Collateral paid to Stability Pool depositors
    debt_to_redistribute: int = 0  # Debt spread over the remaining positions
    coll_to_redistribute: int = 0  # Collateral spread over the remaining positions
    coll_surplus: int = 0  # Collateral returned to the owner
    liquidated_count: int = 0

    def add(self, other):
        for f in fields(self):
            setattr(self, f.name, getattr(self, f.name) + getattr(other, f.name))


def get_coll_gas_compensation(entire_coll, price, params):
    """
    Collateral paid to the liquidator.

    The greater of coll / percent_divisor and the flat debt gas compensation
    valued in collateral, capped at the position's collateral.
    """
    proportional = entire_coll // params.percent_divisor
    flat_floor = params.debt_gas_compensation * DECIMAL_PRECISION // price
    return min(entire_coll, max(proportional, flat_floor))


def get_bonus_rate(params):
    """Margin over 100% ICR that goes to the liquidation instead of the owner."""
    return min(params.bonus, params.bonus_to_sp)


def get_offset_and_redistribution_vals(entire_trove_debt, entire_trove_coll, icr, price,
                                       vst_in_sp_for_offsets, params):
    """
    Splits a position's collateral and debt between the parties of a liquidation.

    The owner keeps nothing while the ICR is at or below 100% plus the bonus
    rate, the lower of bonus and bonus_to_sp. The same rate applies whether the
    debt is offset, redistributed or split between the two.

    Args:
        entire_trove_debt: Debt including pending redistribution gains
        entire_trove_coll: Collateral including pending redistribution gains
        icr: The position's current ICR
        price: Collateral price
        vst_in_sp_for_offsets: VST still available in the Stability Pool
        params: CollateralParameters of the asset

    Returns:
        LiquidationValues for the position
    """
    values = LiquidationValues(
        entire_trove_debt=entire_trove_debt,
        entire_trove_coll=entire_trove_coll,
        liquidated_count=1,
    )

    values.coll_gas_compensation = get_coll_gas_compensation(entire_trove_coll, price, params)
    coll_to_liquidate = entire_trove_coll - values.coll_gas_compensation

    values.debt_to_offset = min(entire_trove_debt, vst_in_sp_for_offsets)
    values.debt_to_redistribute = entire_trove_debt - values.debt_to_offset

    bonus_rate = get_bonus_rate(params)

    if icr > DECIMAL_PRECISION + bonus_rate:
        values.coll_surplus = coll_to_liquidate * (icr - DECIMAL_PRECISION - bonus_rate) // icr

    coll_remaining = coll_to_liquidate - values.coll_surplus
    values.coll_to_send_to_sp = coll_remaining * values.debt_to_offset // entire_trove_debt
    values.coll_to_redistribute = coll_remaining - values.coll_to_send_to_sp

    return values


class LiquidationEngine:
    """
    Liquidates undercollateralized positions of any registered asset.

    The engine itself is the account holding the LIQUIDATION_ENGINE role, which
    lets it call StabilityPool.offset.
    """

    def __init__(self, trove_manager, stability_pool_manager, collateral_registry, price_feed,
                 active_pool, coll_surplus_pool):
        self.trove_manager = trove_manager
        self.stability_pool_manager = stability_pool_manager
        self.collateral_registry = collateral_registry
        self.price_feed = price_feed
        self.active_pool = active_pool
        self.coll_surplus_pool = coll_surplus_pool

    def __repr__(self):
        return "LiquidationEngine"

    def liquidate(self, asset, owner, caller):
        """
        Liquidates a single position.

        Args:
            asset: Collateral identifier
            owner: Owner of the position
            caller: Account receiving the gas compensation

        Returns:
            LiquidationValues of the liquidation

        Raises:
            NothingToLiquidateError: If the position is not active, has no debt, or is the last one
            NotLiquidatableError: If the ICR is at or above the applicable threshold
        """
        params = self.collateral_registry.get(asset)
        price = self.price_feed.fetch_price(asset)

        if self.trove_manager.get_trove_status(asset, owner) != Status.ACTIVE:
            raise NothingToLiquidateError(f"Nothing to liquidate: trove of {owner!r} is not active")
        debt, _, _, _ = self.trove_manager.get_entire_debt_and_coll(asset, owner)
        if debt == 0:
            raise NothingToLiquidateError(f"Nothing to liquidate: trove of {owner!r} has no debt")
        if self.trove_manager.get_trove_owners_count(asset) <= 1:
            raise NothingToLiquidateError("Nothing to liquidate: only one trove in the system")

        icr = self.trove_manager.get_current_icr(asset, owner, price)
        recovery_mode = self.trove_manager.check_recovery_mode(asset, price)
        threshold = params.ccr if recovery_mode else params.mcr
        if icr >= threshold:
            raise NotLiquidatableError(
                f"Trove of {owner!r} is not liquidatable: ICR {icr} >= {threshold}")

        stability_pool = self.stability_pool_manager.resolve(asset)
        vst_in_sp = stability_pool.get_total_vst_deposits() if stability_pool else 0

        values = self._liquidate(asset, owner, icr, price, vst_in_sp, params)
        self._apply_liquidation(asset, values, stability_pool, caller)

        logger.info("Liquidated %r trove of %r: debt=%s offset=%s redistributed=%s surplus=%s",
                    asset, owner, values.entire_trove_debt, values.debt_to_offset,
                    values.debt_to_redistribute, values.coll_surplus)
        return values

    def batch_liquidate_troves(self, asset, owners, caller):
        """
        Liquidates every eligible position from a list; ineligible ones are skipped.

        Recovery Mode is re-evaluated after each position from running system
        totals, so a batch can leave Recovery Mode part way through. Pool
        transfers happen once, for the totals.

        Returns:
            LiquidationValues holding the totals of the batch

        Raises:
            NothingToLiquidateError: If no position was liquidated
        """
        params = self.collateral_registry.get(asset)
        price = self.price_feed.fetch_price(asset)

        stability_pool = self.stability_pool_manager.resolve(asset)
        vst_in_sp = stability_pool.get_total_vst_deposits() if stability_pool else 0

        entire_system_debt = self.trove_manager.get_entire_system_debt(asset)
        entire_system_coll = self.trove_manager.get_entire_system_coll(asset)
        recovery_mode = compute_cr(entire_system_coll, entire_system_debt, price) < params.ccr

        totals = LiquidationValues()
        for owner in owners:
            if self.trove_manager.get_trove_status(asset, owner) != Status.ACTIVE:
                continue
            if self.trove_manager.get_trove_owners_count(asset) <= 1:
                break

            icr = self.trove_manager.get_current_icr(asset, owner, price)
            threshold = params.ccr if recovery_mode else params.mcr
            if icr >= threshold:
                continue

            values = self._liquidate(asset, owner, icr, price, vst_in_sp, params)
            vst_in_sp -= values.debt_to_offset
            totals.add(values)

            entire_system_debt -= values.debt_to_offset
            entire_system_coll -= (values.coll_to_send_to_sp + values.coll_gas_compensation
                                   + values.coll_surplus)
            recovery_mode = compute_cr(entire_system_coll, entire_system_debt, price) < params.ccr

        if totals.liquidated_count == 0:
            raise NothingToLiquidateError("Nothing to liquidate")

        self._apply_liquidation(asset, totals, stability_pool, caller)

        logger.info("Batch liquidated %s %r troves: debt=%s offset=%s redistributed=%s",
                    totals.liquidated_count, asset, totals.entire_trove_debt,
                    totals.debt_to_offset, totals.debt_to_redistribute)
        return totals

    def liquidate_troves(self, asset, n, caller):
        """Tries the n positions with the lowest collateral ratio."""
        candidates = list(reversed(self.trove_manager.sorted_troves.owners(asset)))[:n]
        return self.batch_liquidate_troves(asset, candidates, caller)

    def _liquidate(self, asset, owner, icr, price, vst_in_sp, params):
        """Computes the split for one position and closes it. Pool transfers are left to the caller."""
        self.trove_manager.apply_pending_rewards(asset, owner)
        trove = self.trove_manager.get_trove(asset, owner)

        values = get_offset_and_redistribution_vals(trove.debt, trove.coll, icr, price, vst_in_sp, params)

        self.trove_manager.remove_stake(asset, owner)
        self.trove_manager.close_trove(asset, owner, Status.CLOSED_BY_LIQUIDATION)

        if values.coll_surplus > 0:
            self.coll_surplus_pool.account_surplus(asset, owner, values.coll_surplus)

        return values

    def _apply_liquidation(self, asset, totals, stability_pool, caller):
        if totals.debt_to_offset > 0:
            stability_pool.offset(totals.debt_to_offset, totals.coll_to_send_to_sp, caller=self)

        self.trove_manager.redistribute_debt_and_coll(asset, totals.debt_to_redistribute,
                                                      totals.coll_to_redistribute)

        if totals.coll_surplus > 0:
            self.active_pool.send_asset(asset, self.coll_surplus_pool, totals.coll_surplus)

        self.trove_manager.update_system_snapshots_exclude_coll_remainder(asset, totals.coll_gas_compensation)

        self.active_pool.send_asset(asset, caller, totals.coll_gas_compensation)
