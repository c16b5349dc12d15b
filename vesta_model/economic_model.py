"""
Economic Model for the Vesta protocol.

This main module wires the individual components into one protocol instance
(one "universe": independent instances share no state) and provides the
simulation tooling used to study liquidations under random price paths.

Every mutating call runs under the lock of the asset it touches; the token
ledgers and the clock shared across assets lock their own updates. If an internal
accounting check fails (InvariantViolation) the instance halts and refuses any
further mutation.
"""

import logging
import threading
from contextlib import contextmanager

import numpy as np
import matplotlib.pyplot as plt

from .access import AccessControl, Role
from .active_pool import ActivePool
from .borrower_operations import BorrowerOperations
from .coll_surplus_pool import CollSurplusPool
from .collateral_registry import CollateralRegistry
from .community_issuance import CommunityIssuance
from .config import Clock, ProtocolConfig, ONE_DAY, ONE_HOUR
from .default_pool import DefaultPool
from .errors import (InvariantViolation, NothingToLiquidateError, SystemHaltedError,
                     ValidationError)
from .liquidation import LiquidationEngine
from .liquity_math import DECIMAL_PRECISION
from .price_feed import PriceFeed
from .sorted_troves import SortedTroves
from .stability_pool import StabilityPool
from .stability_pool_manager import StabilityPoolManager
from .tokens import StableToken, Token
from .trove_manager import Status, TroveManager

logger = logging.getLogger(__name__)


class VestaProtocol:
    """
    Complete economic model of the Vesta protocol.
    Combines all components and provides simulation capabilities.
    """

    def __init__(self, config=None, admin="admin", treasury="treasury", vsta_supply=0, start_time=0):
        self.config = config or ProtocolConfig()
        self.clock = Clock(start_time)
        self.admin = admin
        self.treasury = treasury

        # Authorization
        self.access_control = AccessControl(admin=admin)
        self.access_control.grant_role(Role.TREASURY, treasury)

        # Tokens
        self.collateral_tokens = {}  # asset -> Token
        self.vst_token = StableToken("VST")
        self.vsta_token = Token("VSTA")
        if vsta_supply > 0:
            self.vsta_token.mint(treasury, vsta_supply)

        # Configuration and oracle
        self.collateral_registry = CollateralRegistry(self.access_control, self.config)
        self.price_feed = PriceFeed(self.clock, self.config.price_staleness)

        # Pools
        self.active_pool = ActivePool(self.collateral_tokens)
        self.default_pool = DefaultPool(self.collateral_tokens, self.active_pool)
        self.coll_surplus_pool = CollSurplusPool(self.collateral_tokens)

        # Position ledger
        self.sorted_troves = SortedTroves()
        self.trove_manager = TroveManager(self.collateral_registry, self.active_pool,
                                          self.default_pool, self.sorted_troves)

        # Stability pools and rewards
        self.stability_pool_manager = StabilityPoolManager(self.access_control)
        self.community_issuance = CommunityIssuance(self.vsta_token, self.stability_pool_manager,
                                                    self.access_control, self.clock,
                                                    self.config.issuance_factor)

        # Front doors
        self.liquidation_engine = LiquidationEngine(self.trove_manager, self.stability_pool_manager,
                                                    self.collateral_registry, self.price_feed,
                                                    self.active_pool, self.coll_surplus_pool)
        self.access_control.grant_role(Role.LIQUIDATION_ENGINE, self.liquidation_engine)

        self.borrower_operations = BorrowerOperations(self.trove_manager, self.collateral_registry,
                                                      self.price_feed, self.active_pool,
                                                      self.coll_surplus_pool, self.vst_token,
                                                      self.collateral_tokens)
        self.vst_token.add_minter(self.borrower_operations)

        # Concurrency and failure state
        self._locks = {}
        self._locks_guard = threading.Lock()
        self.halted = False

        # History tracking for simulations
        self.history = {}

    # --- Guards ---

    def _lock_for(self, asset):
        with self._locks_guard:
            lock = self._locks.get(asset)
            if lock is None:
                lock = self._locks[asset] = threading.RLock()
            return lock

    @contextmanager
    def _guarded(self, *assets):
        """Serializes mutations per asset and halts on accounting failures."""
        if self.halted:
            raise SystemHaltedError("System is halted")
        # Sorted acquisition keeps two-asset operations deadlock free
        locks = [self._lock_for(asset) for asset in sorted(set(assets), key=repr)]
        for lock in locks:
            lock.acquire()
        try:
            if self.halted:
                raise SystemHaltedError("System is halted")
            yield
        except InvariantViolation:
            self.halted = True
            logger.critical("Invariant violated, halting the system", exc_info=True)
            raise
        finally:
            for lock in reversed(locks):
                lock.release()

    # --- Administration ---

    def add_collateral(self, asset, price, reward_supply=0, caller=None):
        """
        Registers a new collateral asset.

        Creates its collateral token and stability pool, fills default
        parameters, sets the initial price and optionally funds rewards.

        Args:
            asset: Collateral identifier
            price: Initial 18-decimal price
            reward_supply: VSTA taken from the treasury for the new pool
            caller: Account holding ADMIN, defaults to the protocol admin

        Returns:
            The new StabilityPool
        """
        caller = self.admin if caller is None else caller
        with self._guarded(asset):
            self.access_control.require_role(Role.ADMIN, caller)
            if self.stability_pool_manager.resolve(asset) is not None:
                raise ValidationError(f"Collateral {asset!r} is already registered")
            if price <= 0:
                raise ValidationError("Price must be greater than zero")
            if reward_supply > self.vsta_token.balance_of(self.treasury):
                raise ValidationError("Treasury cannot cover the reward supply")

            self.collateral_tokens[asset] = Token(asset)
            self.collateral_registry.sanitize_parameters(asset)

            stability_pool = StabilityPool(asset, self.vst_token, self.collateral_tokens[asset],
                                           self.active_pool, self.access_control,
                                           community_issuance=self.community_issuance,
                                           trove_manager=self.trove_manager,
                                           price_feed=self.price_feed,
                                           collateral_registry=self.collateral_registry)
            self.stability_pool_manager.add_stability_pool(asset, stability_pool, caller)
            self.vst_token.add_minter(stability_pool)
            self.price_feed.set_price(asset, price)

            if reward_supply > 0:
                self.community_issuance.add_fund_to_stability_pool(stability_pool, reward_supply,
                                                                   self.treasury)

            logger.info("Collateral %r added at price %s with %s VSTA", asset, price, reward_supply)
            return stability_pool

    def mint_collateral(self, asset, account, amount):
        """Credits collateral tokens to an account (simulation faucet)."""
        self.collateral_tokens[asset].mint(account, amount)

    def stability_pool(self, asset):
        return self.stability_pool_manager.get_asset_stability_pool(asset)

    # --- Borrowers ---

    def open_trove(self, asset, owner, coll, debt):
        with self._guarded(asset):
            return self.borrower_operations.open_trove(asset, owner, coll, debt)

    def add_coll(self, asset, owner, amount):
        with self._guarded(asset):
            self.borrower_operations.add_coll(asset, owner, amount)

    def withdraw_coll(self, asset, owner, amount):
        with self._guarded(asset):
            self.borrower_operations.withdraw_coll(asset, owner, amount)

    def withdraw_debt(self, asset, owner, amount):
        with self._guarded(asset):
            self.borrower_operations.withdraw_debt(asset, owner, amount)

    def repay_debt(self, asset, owner, amount):
        with self._guarded(asset):
            self.borrower_operations.repay_debt(asset, owner, amount)

    def close_trove(self, asset, owner):
        with self._guarded(asset):
            return self.borrower_operations.close_trove(asset, owner)

    def claim_collateral(self, asset, owner):
        with self._guarded(asset):
            return self.borrower_operations.claim_collateral(asset, owner)

    # --- Stability pool ---

    def provide_to_stability_pool(self, asset, depositor, amount):
        with self._guarded(asset):
            return self.stability_pool(asset).provide_to_sp(depositor, amount)

    def withdraw_from_stability_pool(self, asset, depositor, amount):
        with self._guarded(asset):
            return self.stability_pool(asset).withdraw_from_sp(depositor, amount)

    def claim_stability_pool_gains(self, asset, depositor):
        with self._guarded(asset):
            return self.stability_pool(asset).claim_gains(depositor)

    # --- Rewards ---

    def fund_stability_pool(self, asset, amount, caller=None):
        caller = self.treasury if caller is None else caller
        with self._guarded(asset):
            self.community_issuance.add_fund_to_stability_pool(self.stability_pool(asset), amount, caller)

    def defund_stability_pool(self, asset, amount, caller=None):
        caller = self.treasury if caller is None else caller
        with self._guarded(asset):
            self.community_issuance.remove_fund_from_stability_pool(self.stability_pool(asset), amount, caller)

    def transfer_stability_pool_fund(self, from_asset, to_asset, amount, caller=None):
        caller = self.treasury if caller is None else caller
        with self._guarded(from_asset, to_asset):
            self.community_issuance.transfer_fund_to_another_stability_pool(
                self.stability_pool(from_asset), self.stability_pool(to_asset), amount, caller)

    # --- Liquidations ---

    def liquidate(self, asset, owner, liquidator):
        with self._guarded(asset):
            return self.liquidation_engine.liquidate(asset, owner, liquidator)

    def batch_liquidate_troves(self, asset, owners, liquidator):
        with self._guarded(asset):
            return self.liquidation_engine.batch_liquidate_troves(asset, owners, liquidator)

    def liquidate_troves(self, asset, n, liquidator):
        with self._guarded(asset):
            return self.liquidation_engine.liquidate_troves(asset, n, liquidator)

    # --- Market ---

    def update_price(self, asset, new_price):
        with self._guarded(asset):
            self.price_feed.set_price(asset, new_price)

    def update_time(self, seconds):
        """Advances the virtual clock by the given number of seconds."""
        if self.halted:
            raise SystemHaltedError("System is halted")
        return self.clock.advance(seconds)

    def get_system_state(self, asset):
        """
        Returns the current state of one collateral asset.

        Returns:
            Dictionary with system state; amounts are 18-decimal integers
        """
        price = self.price_feed.fetch_price(asset)
        stability_pool = self.stability_pool(asset)

        total_coll = self.trove_manager.get_entire_system_coll(asset)
        total_debt = self.trove_manager.get_entire_system_debt(asset)
        tcr = total_coll * price / total_debt / DECIMAL_PRECISION if total_debt > 0 else float('inf')

        ledger = self.trove_manager.ledger(asset)
        active_troves = sum(1 for trove in ledger.troves.values() if trove.status == Status.ACTIVE)

        return {
            'time': self.clock.now(),
            'price': price,
            'active_coll': self.active_pool.get_asset_balance(asset),
            'active_debt': self.active_pool.get_vst_debt(asset),
            'default_coll': self.default_pool.get_asset_balance(asset),
            'default_debt': self.default_pool.get_vst_debt(asset),
            'stability_coll': stability_pool.get_asset_balance(),
            'stability_vst': stability_pool.get_total_vst_deposits(),
            'surplus_coll': self.coll_surplus_pool.get_asset_balance(asset),
            'total_coll': total_coll,
            'total_debt': total_debt,
            'tcr': tcr,
            'recovery_mode': self.trove_manager.check_recovery_mode(asset, price),
            'active_troves': active_troves,
            'vsta_issued': self.community_issuance.get_total_issued(stability_pool),
        }

    def _update_history(self, asset):
        """Updates history tracking for simulations."""
        state = self.get_system_state(asset)
        for key, value in state.items():
            self.history.setdefault(key, []).append(value)

    def simulate_market_scenario(self, asset, days, price_volatility=0.02, plot_results=True,
                                 seed=None, liquidator="liquidator", save_path=None):
        """
        Runs a simulation with random price movements over the specified period.

        The price follows a log-normal walk in hourly steps. After each step every
        eligible position is liquidated, lowest collateral ratio first.

        Args:
            asset: Collateral to simulate
            days: Number of days to simulate
            price_volatility: Daily price volatility (standard deviation of log returns)
            plot_results: Whether to plot the results
            seed: Seed for the random generator
            liquidator: Account receiving gas compensation
            save_path: Where to save the figure instead of showing it

        Returns:
            Dictionary with simulation results
        """
        steps = days * 24  # hourly steps

        self.history = {}
        self._update_history(asset)

        rng = np.random.default_rng(seed)
        hourly_volatility = price_volatility / np.sqrt(24)  # Scale to hourly
        log_returns = rng.normal(0, hourly_volatility, steps)

        price = self.price_feed.fetch_price(asset) / DECIMAL_PRECISION
        liquidations = 0

        for i in range(steps):
            self.update_time(ONE_HOUR)
            price *= np.exp(log_returns[i])
            self.update_price(asset, int(price * DECIMAL_PRECISION))

            liquidations += self._liquidate_eligible(asset, liquidator)
            self._update_history(asset)

        if plot_results:
            self.plot_history(asset, save_path=save_path)

        final_state = self.get_system_state(asset)
        return {
            'final_price': final_state['price'],
            'final_system_debt': final_state['total_debt'],
            'final_collateral': final_state['total_coll'],
            'active_troves': final_state['active_troves'],
            'liquidations': liquidations,
            'final_tcr': final_state['tcr'],
            'vsta_issued': final_state['vsta_issued'],
        }

    def _liquidate_eligible(self, asset, liquidator):
        count = self.trove_manager.get_trove_owners_count(asset)
        try:
            totals = self.liquidate_troves(asset, count, liquidator)
        except NothingToLiquidateError:
            return 0
        return totals.liquidated_count

    def plot_history(self, asset, save_path=None):
        """Plots the recorded history of a simulation run."""
        time_points = (np.array(self.history['time']) - self.history['time'][0]) / ONE_DAY
        scale = float(DECIMAL_PRECISION)

        fig, axs = plt.subplots(5, 1, figsize=(12, 20), sharex=True)

        axs[0].plot(time_points, np.array(self.history['price'], dtype=float) / scale)
        axs[0].set_title(f'{asset} Price')
        axs[0].set_ylabel('USD')

        axs[1].plot(time_points, np.array(self.history['total_debt'], dtype=float) / scale)
        axs[1].set_title('Total System Debt')
        axs[1].set_ylabel('VST')

        axs[2].plot(time_points, np.array(self.history['stability_vst'], dtype=float) / scale)
        axs[2].set_title('Stability Pool Deposits')
        axs[2].set_ylabel('VST')

        axs[3].plot(time_points, self.history['active_troves'])
        axs[3].set_title('Active Troves')
        axs[3].set_ylabel('Count')

        axs[4].plot(time_points, self.history['tcr'])
        axs[4].axhline(self.collateral_registry.get(asset).ccr / scale, color='red', linestyle='--')
        axs[4].set_title('Total Collateralization Ratio')
        axs[4].set_ylabel('Ratio')
        axs[4].set_xlabel('Days')

        plt.tight_layout()
        if save_path:
            fig.savefig(save_path)
            plt.close(fig)
        else:
            plt.show()
        return fig
