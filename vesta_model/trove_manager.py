"""
Trove Manager Model for the Vesta protocol.

This module keeps the ledger of positions ("troves") per collateral asset:
their collateral, debt and stake, the redistribution accumulator that spreads
liquidated debt and collateral over the remaining positions, and the
collateralization ratios derived from them.

Redistribution is lazy. A liquidation only bumps the per-unit-stake totals
L_ASSET and L_VST_DEBT; each position picks up its share the next time it is
touched, through apply_pending_rewards. Until then the share is included
virtually in every ICR computation.
"""

import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, Tuple

from .errors import InvariantViolation, PreconditionError, ValidationError
from .liquity_math import DECIMAL_PRECISION, compute_cr, compute_nominal_cr

logger = logging.getLogger(__name__)


class Status(Enum):
    """
    Lifecycle state of a trove.
    """
    NON_EXISTENT = 0  # Never opened
    ACTIVE = 1  # Holds collateral and debt
    CLOSED_BY_OWNER = 2  # Debt repaid and collateral withdrawn by the owner
    CLOSED_BY_LIQUIDATION = 3  # Seized because its ICR fell below the threshold
    CLOSED_BY_REDEMPTION = 4  # Emptied by redemptions


@dataclass
class Trove:
    """
    A borrower position for one collateral asset.

    coll and debt are the stored values; pending redistribution gains are not
    included until apply_pending_rewards runs.
    """
    coll: int = 0
    debt: int = 0
    stake: int = 0
    status: Status = Status.NON_EXISTENT


@dataclass
class RewardSnapshot:
    """Values of L_ASSET and L_VST_DEBT when the trove was last touched."""
    asset: int = 0
    vst_debt: int = 0


@dataclass
class AssetLedger:
    """All trove-related state of a single collateral asset."""
    troves: Dict[object, Trove] = field(default_factory=dict)
    reward_snapshots: Dict[object, RewardSnapshot] = field(default_factory=dict)

    total_stakes: int = 0
    # Taken after the latest liquidation, used to compute new stakes
    total_stakes_snapshot: int = 0
    total_collateral_snapshot: int = 0

    # Accumulated rewards per unit staked
    L_ASSET: int = 0
    L_VST_DEBT: int = 0

    # Remainders of the last redistribution division, carried into the next one
    last_asset_error_redistribution: int = 0
    last_vst_debt_error_redistribution: int = 0


def pending_gains(stake: int, snapshot: RewardSnapshot, l_asset: int, l_vst_debt: int) -> Tuple[int, int]:
    """
    Redistribution gains a position has earned since its snapshot.

    Args:
        stake: The position's stake
        snapshot: Accumulator values recorded when the position was last touched
        l_asset: Current collateral reward per unit staked
        l_vst_debt: Current debt reward per unit staked

    Returns:
        Tuple of (collateral gain, debt gain)
    """
    if stake == 0:
        return 0, 0
    coll_gain = stake * (l_asset - snapshot.asset) // DECIMAL_PRECISION
    debt_gain = stake * (l_vst_debt - snapshot.vst_debt) // DECIMAL_PRECISION
    return coll_gain, debt_gain


class TroveManager:
    """
    Position ledger per collateral asset.

    Works with:
    - ActivePool: holds collateral and debt of active troves
    - DefaultPool: holds redistributed collateral and debt not yet applied
    - SortedTroves: ordering index, kept in sync on open/adjust/close
    - CollateralRegistry: MCR and CCR per asset
    """

    def __init__(self, collateral_registry, active_pool, default_pool, sorted_troves):
        self.collateral_registry = collateral_registry
        self.active_pool = active_pool
        self.default_pool = default_pool
        self.sorted_troves = sorted_troves

        self.ledgers = {}  # asset -> AssetLedger

    def ledger(self, asset) -> AssetLedger:
        ledger = self.ledgers.get(asset)
        if ledger is None:
            ledger = self.ledgers[asset] = AssetLedger()
        return ledger

    # --- Getters ---

    def get_trove(self, asset, owner) -> Trove:
        """Returns the stored trove, or an empty NON_EXISTENT one."""
        return self.ledger(asset).troves.get(owner, Trove())

    def get_trove_status(self, asset, owner):
        return self.get_trove(asset, owner).status

    def is_active(self, asset, owner):
        return self.get_trove_status(asset, owner) == Status.ACTIVE

    def get_trove_owners_count(self, asset):
        return self.sorted_troves.get_size(asset)

    def get_total_stakes(self, asset):
        return self.ledger(asset).total_stakes

    def get_reward_snapshot(self, asset, owner) -> RewardSnapshot:
        return self.ledger(asset).reward_snapshots.get(owner, RewardSnapshot())

    def get_pending_rewards(self, asset, owner):
        """Returns (collateral gain, debt gain) not yet applied to an active trove."""
        trove = self.get_trove(asset, owner)
        if trove.status != Status.ACTIVE:
            return 0, 0
        ledger = self.ledger(asset)
        return pending_gains(trove.stake, self.get_reward_snapshot(asset, owner),
                             ledger.L_ASSET, ledger.L_VST_DEBT)

    def has_pending_rewards(self, asset, owner):
        if not self.is_active(asset, owner):
            return False
        return self.get_reward_snapshot(asset, owner).asset < self.ledger(asset).L_ASSET

    def get_entire_debt_and_coll(self, asset, owner):
        """
        Stored values plus pending redistribution gains.

        Returns:
            Tuple of (debt, coll, pending debt gain, pending coll gain)
        """
        trove = self.get_trove(asset, owner)
        pending_coll, pending_debt = self.get_pending_rewards(asset, owner)
        return trove.debt + pending_debt, trove.coll + pending_coll, pending_debt, pending_coll

    def get_nominal_icr(self, asset, owner):
        debt, coll, _, _ = self.get_entire_debt_and_coll(asset, owner)
        return compute_nominal_cr(coll, debt)

    def get_current_icr(self, asset, owner, price):
        """
        Calculates the Individual Collateralization Ratio of a trove at a price.

        Pending redistribution gains are included without being applied.

        Args:
            asset: Collateral identifier
            owner: Trove owner
            price: 18-decimal price of the collateral

        Returns:
            ICR as an 18-decimal ratio
        """
        debt, coll, _, _ = self.get_entire_debt_and_coll(asset, owner)
        return compute_cr(coll, debt, price)

    def get_entire_system_coll(self, asset):
        return self.active_pool.get_asset_balance(asset) + self.default_pool.get_asset_balance(asset)

    def get_entire_system_debt(self, asset):
        return self.active_pool.get_vst_debt(asset) + self.default_pool.get_vst_debt(asset)

    def get_tcr(self, asset, price):
        """Total collateralization ratio of an asset."""
        return compute_cr(self.get_entire_system_coll(asset), self.get_entire_system_debt(asset), price)

    def check_recovery_mode(self, asset, price):
        """True when the asset's TCR is below its CCR."""
        return self.get_tcr(asset, price) < self.collateral_registry.get(asset).ccr

    # --- Position lifecycle ---

    def create_trove(self, asset, owner, coll, debt):
        """
        Records a new active trove. Pool balances are moved by the caller.
        """
        if self.is_active(asset, owner):
            raise PreconditionError(f"Trove of {owner!r} for {asset!r} is already active")
        if coll <= 0 or debt <= 0:
            raise ValidationError("Trove needs positive collateral and debt")

        ledger = self.ledger(asset)
        ledger.troves[owner] = Trove(coll=coll, debt=debt, status=Status.ACTIVE)
        self.update_trove_reward_snapshots(asset, owner)
        self.update_stake_and_total_stakes(asset, owner)
        self.sorted_troves.insert(asset, owner, compute_nominal_cr(coll, debt))
        logger.debug("Trove opened: %r %r coll=%s debt=%s", asset, owner, coll, debt)

    def adjust_trove(self, asset, owner, coll_change=0, debt_change=0):
        """
        Applies signed collateral and debt changes to an active trove.
        Pending rewards must have been applied first.
        """
        trove = self._require_active(asset, owner)
        new_coll = trove.coll + coll_change
        new_debt = trove.debt + debt_change
        if new_coll <= 0 or new_debt <= 0:
            raise ValidationError("Adjustment would leave the trove without collateral or debt")

        trove.coll = new_coll
        trove.debt = new_debt
        self.update_stake_and_total_stakes(asset, owner)
        self.sorted_troves.re_insert(asset, owner, compute_nominal_cr(new_coll, new_debt))

    def close_trove(self, asset, owner, status):
        """
        Marks a trove as closed, zeroes it and removes it from the ordering index.

        The stake must have been removed beforehand.
        """
        if status in (Status.NON_EXISTENT, Status.ACTIVE):
            raise InvariantViolation(f"Cannot close a trove with status {status}")

        trove = self._require_active(asset, owner)
        if self.sorted_troves.get_size(asset) <= 1:
            raise PreconditionError("Only one trove in the system")

        trove.status = status
        trove.coll = 0
        trove.debt = 0
        snapshot = self.get_reward_snapshot(asset, owner)
        snapshot.asset = 0
        snapshot.vst_debt = 0
        self.sorted_troves.remove(asset, owner)
        logger.debug("Trove closed: %r %r (%s)", asset, owner, status.name)

    # --- Redistribution rewards ---

    def apply_pending_rewards(self, asset, owner):
        """
        Folds pending redistribution gains into the stored trove and moves the
        matching collateral and debt from the Default Pool to the Active Pool.

        Returns:
            Tuple of (collateral gain, debt gain) applied
        """
        trove = self._require_active(asset, owner)
        coll_gain, debt_gain = self.get_pending_rewards(asset, owner)

        if coll_gain or debt_gain:
            trove.coll += coll_gain
            trove.debt += debt_gain
            self.move_pending_trove_rewards_to_active_pool(asset, debt_gain, coll_gain)

        self.update_trove_reward_snapshots(asset, owner)
        return coll_gain, debt_gain

    def move_pending_trove_rewards_to_active_pool(self, asset, vst_debt, coll):
        if vst_debt > 0:
            self.default_pool.decrease_vst_debt(asset, vst_debt)
            self.active_pool.increase_vst_debt(asset, vst_debt)
        if coll > 0:
            self.default_pool.send_asset_to_active_pool(asset, coll)

    def update_trove_reward_snapshots(self, asset, owner):
        ledger = self.ledger(asset)
        ledger.reward_snapshots[owner] = RewardSnapshot(asset=ledger.L_ASSET, vst_debt=ledger.L_VST_DEBT)

    def redistribute_debt_and_coll(self, asset, debt, coll):
        """
        Spreads debt and collateral over all active troves of an asset.

        Collateral is moved from the Active Pool to the Default Pool; the per unit
        staked rewards carry the division remainders forward so repeated
        redistributions do not lose value to rounding.

        Args:
            asset: Collateral identifier
            debt: VST debt to redistribute
            coll: Collateral to redistribute
        """
        if debt == 0:
            return

        ledger = self.ledger(asset)
        if ledger.total_stakes == 0:
            raise InvariantViolation(f"Cannot redistribute {asset!r} debt with zero total stakes")

        asset_numerator = coll * DECIMAL_PRECISION + ledger.last_asset_error_redistribution
        vst_numerator = debt * DECIMAL_PRECISION + ledger.last_vst_debt_error_redistribution

        asset_reward_per_unit_staked = asset_numerator // ledger.total_stakes
        vst_reward_per_unit_staked = vst_numerator // ledger.total_stakes

        ledger.last_asset_error_redistribution = asset_numerator - asset_reward_per_unit_staked * ledger.total_stakes
        ledger.last_vst_debt_error_redistribution = vst_numerator - vst_reward_per_unit_staked * ledger.total_stakes

        ledger.L_ASSET += asset_reward_per_unit_staked
        ledger.L_VST_DEBT += vst_reward_per_unit_staked

        self.active_pool.decrease_vst_debt(asset, debt)
        self.default_pool.increase_vst_debt(asset, debt)
        self.active_pool.send_asset(asset, self.default_pool, coll)

        logger.info("Redistributed %s debt and %s collateral of %r over %s stake",
                    debt, coll, asset, ledger.total_stakes)

    # --- Stakes ---

    def compute_new_stake(self, asset, coll):
        ledger = self.ledger(asset)
        if ledger.total_collateral_snapshot == 0:
            return coll
        if ledger.total_stakes_snapshot == 0:
            raise InvariantViolation("Collateral snapshot without stakes")
        return coll * ledger.total_stakes_snapshot // ledger.total_collateral_snapshot

    def update_stake_and_total_stakes(self, asset, owner):
        ledger = self.ledger(asset)
        trove = ledger.troves[owner]
        new_stake = self.compute_new_stake(asset, trove.coll)
        ledger.total_stakes = ledger.total_stakes - trove.stake + new_stake
        trove.stake = new_stake
        return new_stake

    def remove_stake(self, asset, owner):
        ledger = self.ledger(asset)
        trove = ledger.troves[owner]
        ledger.total_stakes -= trove.stake
        trove.stake = 0

    def update_system_snapshots_exclude_coll_remainder(self, asset, coll_remainder):
        """
        Records total stakes and total collateral after a liquidation.

        coll_remainder is collateral still in the Active Pool that no trove owns
        (the liquidator's gas compensation before it is paid out).
        """
        ledger = self.ledger(asset)
        ledger.total_stakes_snapshot = ledger.total_stakes
        active_coll = self.active_pool.get_asset_balance(asset)
        default_coll = self.default_pool.get_asset_balance(asset)
        ledger.total_collateral_snapshot = active_coll - coll_remainder + default_coll

    def _require_active(self, asset, owner) -> Trove:
        trove = self.ledger(asset).troves.get(owner)
        if trove is None or trove.status != Status.ACTIVE:
            raise PreconditionError(f"Trove of {owner!r} for {asset!r} does not exist or is closed")
        return trove
