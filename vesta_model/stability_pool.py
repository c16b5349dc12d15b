"""
Stability Pool Model for the Vesta protocol.

One StabilityPool exists per collateral asset. It holds VST deposits, absorbs the
debt of liquidated positions and pays depositors the seized collateral plus
reward-token (VSTA) emissions.

Depositor balances are never iterated. Each deposit keeps a snapshot of the pool
accumulators taken at its last change:

- P: running product; a deposit's current value is initial * P / P_snapshot
- S: running sum of collateral gain per unit staked, weighted by P
- G: running sum of reward gain per unit staked, weighted by P
- scale: bumped by one each time P is multiplied by SCALE_FACTOR to keep precision
- epoch: bumped when a liquidation empties the pool; older deposits are worth zero

S and G are stored per (epoch, scale). A gain that straddles one scale change is
picked up from the next scale's sum divided by SCALE_FACTOR.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from .access import Role
from .config import SCALE_FACTOR
from .errors import (InsufficientBalanceError, InvariantViolation, PreconditionError,
                     ValidationError)
from .liquity_math import DECIMAL_PRECISION

logger = logging.getLogger(__name__)


@dataclass
class Snapshots:
    """Pool accumulators recorded when a deposit was last changed."""
    S: int = 0
    P: int = 0
    G: int = 0
    scale: int = 0
    epoch: int = 0


class SnapshotEra(Enum):
    """How a deposit snapshot relates to the pool's current (epoch, scale)."""
    CURRENT_SCALE = 0  # Same epoch and scale
    ONE_SCALE_BEHIND = 1  # Same epoch, P was rescaled once since
    EXPIRED = 2  # Older epoch or two scales behind; the deposit is worth nothing


class StabilityPool:
    """
    Holds VST deposits for one collateral asset and offsets liquidated debt.
    """

    def __init__(self, asset, vst_token, collateral_token, active_pool, access_control,
                 community_issuance=None, trove_manager=None, price_feed=None,
                 collateral_registry=None):
        self.asset = asset

        # Tracker for VST held in the pool
        self.total_vst_deposits = 0

        # Collateral gained from liquidations, not yet paid out
        self.asset_balance = 0

        # depositor -> initial value of the current deposit
        self.deposits = {}
        self.deposit_snapshots = {}

        self.P = DECIMAL_PRECISION
        self.current_scale = 0
        self.current_epoch = 0

        # epoch -> scale -> sum
        self.epoch_to_scale_to_sum = {0: {0: 0}}
        self.epoch_to_scale_to_G = {0: {0: 0}}

        # Remainders of the last divisions, carried into the next ones
        self.last_vsta_error = 0
        self.last_asset_error_offset = 0
        self.last_vst_loss_error_offset = 0

        # External contracts
        self.vst_token = vst_token
        self.collateral_token = collateral_token
        self.active_pool = active_pool
        self.access_control = access_control
        self.community_issuance = community_issuance
        self.trove_manager = trove_manager
        self.price_feed = price_feed
        self.collateral_registry = collateral_registry

    def __repr__(self):
        return f"StabilityPool({self.asset!r})"

    # --- Getters ---

    def get_asset_balance(self):
        """Returns the collateral held by the pool."""
        return self.asset_balance

    def get_total_vst_deposits(self):
        """Returns the total VST deposits in the pool."""
        return self.total_vst_deposits

    def get_deposit(self, depositor):
        return self.deposits.get(depositor, 0)

    def get_deposit_snapshot(self, depositor):
        return self.deposit_snapshots.get(depositor)

    def get_depositor_asset_gain(self, depositor):
        """Collateral earned by a depositor since their last deposit change."""
        initial_deposit = self.deposits.get(depositor, 0)
        if initial_deposit == 0:
            return 0
        snapshots = self.deposit_snapshots[depositor]
        return self._get_gain_from_snapshots(initial_deposit, snapshots, self.epoch_to_scale_to_sum,
                                             snapshots.S)

    def get_depositor_vsta_gain(self, depositor):
        """Reward tokens earned by a depositor since their last deposit change."""
        initial_deposit = self.deposits.get(depositor, 0)
        if initial_deposit == 0:
            return 0
        snapshots = self.deposit_snapshots[depositor]
        return self._get_gain_from_snapshots(initial_deposit, snapshots, self.epoch_to_scale_to_G,
                                             snapshots.G)

    def get_compounded_vst_deposit(self, depositor):
        """Current value of a deposit after the losses of every offset since its snapshot."""
        initial_deposit = self.deposits.get(depositor, 0)
        if initial_deposit == 0:
            return 0
        return self._get_compounded_stake_from_snapshots(initial_deposit, self.deposit_snapshots[depositor])

    def snapshot_era(self, snapshots):
        if snapshots.epoch < self.current_epoch:
            return SnapshotEra.EXPIRED
        scale_diff = self.current_scale - snapshots.scale
        if scale_diff == 0:
            return SnapshotEra.CURRENT_SCALE
        if scale_diff == 1:
            return SnapshotEra.ONE_SCALE_BEHIND
        return SnapshotEra.EXPIRED

    # --- Depositor operations ---

    def provide_to_sp(self, depositor, amount):
        """
        Deposits VST into the pool.

        Pending collateral and reward gains are paid out, then the deposit restarts
        from its compounded value plus amount.

        Args:
            depositor: Account providing VST
            amount: VST to deposit

        Returns:
            The new compounded deposit
        """
        self._require_non_zero_amount(amount)
        balance = self.vst_token.balance_of(depositor)
        if balance < amount:
            raise InsufficientBalanceError(f"VST balance {balance} is below the deposit amount {amount}")

        self.trigger_vsta_issuance()

        depositor_asset_gain = self.get_depositor_asset_gain(depositor)
        compounded_vst_deposit = self.get_compounded_vst_deposit(depositor)

        self._pay_out_vsta_gains(depositor)

        self.vst_token.transfer(depositor, self, amount)
        self.total_vst_deposits += amount

        new_deposit = compounded_vst_deposit + amount
        self._update_deposit_and_snapshots(depositor, new_deposit)
        self._send_asset_gain_to_depositor(depositor, depositor_asset_gain)

        logger.debug("%r: %r provided %s VST, deposit now %s", self, depositor, amount, new_deposit)
        return new_deposit

    def withdraw_from_sp(self, depositor, amount):
        """
        Withdraws VST from the pool.

        Refused while any position of the asset sits below MCR, so depositors
        cannot leave ahead of a pending liquidation.

        Args:
            depositor: Account withdrawing
            amount: VST to withdraw, at most the compounded deposit

        Returns:
            The VST amount withdrawn
        """
        self._require_non_zero_amount(amount)
        initial_deposit = self.deposits.get(depositor, 0)
        if initial_deposit == 0:
            raise PreconditionError("User must have a non-zero deposit")

        compounded_vst_deposit = self.get_compounded_vst_deposit(depositor)
        if amount > compounded_vst_deposit:
            raise ValidationError(
                f"Withdrawal of {amount} exceeds compounded deposit {compounded_vst_deposit}")

        self._require_no_under_collateralized_troves()

        self.trigger_vsta_issuance()

        depositor_asset_gain = self.get_depositor_asset_gain(depositor)
        self._pay_out_vsta_gains(depositor)

        self._send_vst_to_depositor(depositor, amount)

        new_deposit = compounded_vst_deposit - amount
        self._update_deposit_and_snapshots(depositor, new_deposit)
        self._send_asset_gain_to_depositor(depositor, depositor_asset_gain)

        logger.debug("%r: %r withdrew %s VST, deposit now %s", self, depositor, amount, new_deposit)
        return amount

    def claim_gains(self, depositor):
        """
        Pays out collateral and reward gains without moving any VST.

        Returns:
            Tuple of (collateral paid, reward tokens paid)
        """
        if self.deposits.get(depositor, 0) == 0:
            raise PreconditionError("User must have a non-zero deposit")

        self.trigger_vsta_issuance()

        depositor_asset_gain = self.get_depositor_asset_gain(depositor)
        compounded_vst_deposit = self.get_compounded_vst_deposit(depositor)
        vsta_paid = self._pay_out_vsta_gains(depositor)

        self._update_deposit_and_snapshots(depositor, compounded_vst_deposit)
        self._send_asset_gain_to_depositor(depositor, depositor_asset_gain)
        return depositor_asset_gain, vsta_paid

    # --- Liquidation functions ---

    def offset(self, debt_to_offset, coll_to_add, caller):
        """
        Cancels liquidated debt against the pool's deposits and takes the collateral.

        Every deposit shrinks by the same fraction debt_to_offset / total deposits
        and earns the same collateral per unit staked.

        Args:
            debt_to_offset: VST debt absorbed, at most the total deposits
            coll_to_add: Collateral sent to the pool in exchange
            caller: Must hold the LIQUIDATION_ENGINE role
        """
        self.access_control.require_role(Role.LIQUIDATION_ENGINE, caller)

        total_vst = self.total_vst_deposits
        if total_vst == 0 or debt_to_offset == 0:
            return
        if debt_to_offset > total_vst:
            raise InvariantViolation(f"Offset of {debt_to_offset} exceeds pool deposits {total_vst}")

        self.trigger_vsta_issuance()

        asset_gain_per_unit_staked, vst_loss_per_unit_staked = self._compute_rewards_per_unit_staked(
            coll_to_add, debt_to_offset, total_vst)

        self._update_reward_sum_and_product(asset_gain_per_unit_staked, vst_loss_per_unit_staked)

        self._move_offset_coll_and_debt(coll_to_add, debt_to_offset)
        logger.debug("%r offset %s debt for %s collateral", self, debt_to_offset, coll_to_add)

    def receive_coll(self, asset, amount):
        """Records collateral sent by the Active Pool during an offset."""
        if asset != self.asset:
            raise InvariantViolation(f"{self!r} received collateral of {asset!r}")
        self.asset_balance += amount

    # --- Internals ---

    def _compute_rewards_per_unit_staked(self, coll_to_add, debt_to_offset, total_vst_deposits):
        """
        Collateral gain and VST loss per unit staked, with division remainders
        carried between calls.

        The VST loss is rounded up so depositors never claim more VST than the pool holds.
        """
        asset_numerator = coll_to_add * DECIMAL_PRECISION + self.last_asset_error_offset

        if debt_to_offset > total_vst_deposits:
            raise InvariantViolation("Debt to offset exceeds total deposits")

        if debt_to_offset == total_vst_deposits:
            vst_loss_per_unit_staked = DECIMAL_PRECISION
            self.last_vst_loss_error_offset = 0
        else:
            vst_loss_numerator = debt_to_offset * DECIMAL_PRECISION - self.last_vst_loss_error_offset
            vst_loss_per_unit_staked = vst_loss_numerator // total_vst_deposits + 1
            self.last_vst_loss_error_offset = vst_loss_per_unit_staked * total_vst_deposits - vst_loss_numerator

        asset_gain_per_unit_staked = asset_numerator // total_vst_deposits
        self.last_asset_error_offset = asset_numerator - asset_gain_per_unit_staked * total_vst_deposits

        return asset_gain_per_unit_staked, vst_loss_per_unit_staked

    def _update_reward_sum_and_product(self, asset_gain_per_unit_staked, vst_loss_per_unit_staked):
        current_P = self.P

        if vst_loss_per_unit_staked > DECIMAL_PRECISION:
            raise InvariantViolation(f"Loss per unit staked {vst_loss_per_unit_staked} exceeds 1")
        new_product_factor = DECIMAL_PRECISION - vst_loss_per_unit_staked

        epoch = self.current_epoch
        scale = self.current_scale
        current_S = self.epoch_to_scale_to_sum[epoch].get(scale, 0)

        # Gains are weighted by P so that deposits snapshotted at any P can read them back
        marginal_asset_gain = asset_gain_per_unit_staked * current_P
        self.epoch_to_scale_to_sum[epoch][scale] = current_S + marginal_asset_gain

        if new_product_factor == 0:
            self.current_epoch = epoch + 1
            self.current_scale = 0
            self.epoch_to_scale_to_sum[self.current_epoch] = {0: 0}
            self.epoch_to_scale_to_G[self.current_epoch] = {0: 0}
            new_P = DECIMAL_PRECISION
            logger.warning("%r emptied by offset, epoch is now %s", self, self.current_epoch)
        elif current_P * new_product_factor // DECIMAL_PRECISION < SCALE_FACTOR:
            new_P = current_P * new_product_factor * SCALE_FACTOR // DECIMAL_PRECISION
            self.current_scale = scale + 1
            self.epoch_to_scale_to_sum[epoch].setdefault(self.current_scale, 0)
            self.epoch_to_scale_to_G[epoch].setdefault(self.current_scale, 0)
            logger.warning("%r product rescaled, scale is now %s", self, self.current_scale)
        else:
            new_P = current_P * new_product_factor // DECIMAL_PRECISION

        if new_P <= 0:
            raise InvariantViolation("P underflowed to zero")

        self.P = new_P

    def _move_offset_coll_and_debt(self, coll_to_add, debt_to_offset):
        self.active_pool.decrease_vst_debt(self.asset, debt_to_offset)
        self.total_vst_deposits -= debt_to_offset
        self.vst_token.burn(self, debt_to_offset, caller=self)
        self.active_pool.send_asset(self.asset, self, coll_to_add)

    def trigger_vsta_issuance(self):
        """Pulls newly issued reward tokens into G. Returns the amount issued."""
        if self.community_issuance is None:
            return 0
        vsta_issuance = self.community_issuance.issue_vsta(self)
        self._update_G(vsta_issuance)
        return vsta_issuance

    def _update_G(self, vsta_issuance):
        """Adds newly issued reward tokens to G, split over the current deposits."""
        total_vst = self.total_vst_deposits
        if total_vst == 0 or vsta_issuance == 0:
            return

        vsta_numerator = vsta_issuance * DECIMAL_PRECISION + self.last_vsta_error
        vsta_per_unit_staked = vsta_numerator // total_vst
        self.last_vsta_error = vsta_numerator - vsta_per_unit_staked * total_vst

        marginal_vsta_gain = vsta_per_unit_staked * self.P
        scales = self.epoch_to_scale_to_G[self.current_epoch]
        scales[self.current_scale] = scales.get(self.current_scale, 0) + marginal_vsta_gain

    def _get_gain_from_snapshots(self, initial_deposit, snapshots, epoch_to_scale_to_sum, sum_snapshot):
        scales = epoch_to_scale_to_sum.get(snapshots.epoch, {})
        first_portion = scales.get(snapshots.scale, 0) - sum_snapshot
        second_portion = scales.get(snapshots.scale + 1, 0) // SCALE_FACTOR
        return initial_deposit * (first_portion + second_portion) // snapshots.P // DECIMAL_PRECISION

    def _get_compounded_stake_from_snapshots(self, initial_stake, snapshots):
        era = self.snapshot_era(snapshots)
        if era == SnapshotEra.EXPIRED:
            return 0

        compounded_stake = initial_stake * self.P // snapshots.P
        if era == SnapshotEra.ONE_SCALE_BEHIND:
            compounded_stake = compounded_stake // SCALE_FACTOR

        # Anything below a billionth of the initial deposit is rounding noise
        if compounded_stake < initial_stake // 10 ** 9:
            return 0
        return compounded_stake

    def _update_deposit_and_snapshots(self, depositor, new_value):
        if new_value == 0:
            self.deposits.pop(depositor, None)
            self.deposit_snapshots.pop(depositor, None)
            return

        self.deposits[depositor] = new_value
        epoch = self.current_epoch
        scale = self.current_scale
        self.deposit_snapshots[depositor] = Snapshots(
            S=self.epoch_to_scale_to_sum[epoch].get(scale, 0),
            P=self.P,
            G=self.epoch_to_scale_to_G[epoch].get(scale, 0),
            scale=scale,
            epoch=epoch,
        )

    def _pay_out_vsta_gains(self, depositor):
        if self.community_issuance is None:
            return 0
        depositor_vsta_gain = self.get_depositor_vsta_gain(depositor)
        if depositor_vsta_gain > 0:
            self.community_issuance.send_vsta(self, depositor, depositor_vsta_gain)
        return depositor_vsta_gain

    def _send_asset_gain_to_depositor(self, depositor, amount):
        if amount == 0:
            return
        if amount > self.asset_balance:
            raise InvariantViolation(f"{self!r} owes {amount} collateral but holds {self.asset_balance}")
        self.asset_balance -= amount
        self.collateral_token.transfer(self, depositor, amount)

    def _send_vst_to_depositor(self, depositor, amount):
        if amount == 0:
            return
        self.total_vst_deposits -= amount
        self.vst_token.transfer(self, depositor, amount)

    def _require_no_under_collateralized_troves(self):
        if self.trove_manager is None or self.price_feed is None:
            return
        lowest = self.trove_manager.sorted_troves.get_last(self.asset)
        if lowest is None:
            return
        price = self.price_feed.fetch_price(self.asset)
        icr = self.trove_manager.get_current_icr(self.asset, lowest, price)
        if icr < self.collateral_registry.get(self.asset).mcr:
            raise PreconditionError("Cannot withdraw while there are troves with ICR < MCR")

    @staticmethod
    def _require_non_zero_amount(amount):
        if amount <= 0:
            raise ValidationError("Amount must be non-zero")
