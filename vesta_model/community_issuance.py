"""
Reward (VSTA) issuance to the stability pools.

Each funded stability pool has its own schedule: a supply cap, the time the
schedule started and the amount issued so far. The cumulative fraction of the
cap issued after t seconds is

    f(t) = 1 - ISSUANCE_FACTOR ** floor(t / 60)

where ISSUANCE_FACTOR is chosen so that f(halving_period) == 0.5. Issuance is
pulled by the pools on every deposit change and liquidation; nothing runs on a
timer.
"""

import logging
from dataclasses import dataclass

from .access import Role
from .errors import InsufficientBalanceError, InvariantViolation, ValidationError
from .liquity_math import DECIMAL_PRECISION, SECONDS_IN_ONE_MINUTE, dec_pow

logger = logging.getLogger(__name__)


@dataclass
class IssuanceSchedule:
    supply_cap: int
    deployment_time: int
    total_issued: int = 0

    @property
    def remaining(self):
        return self.supply_cap - self.total_issued


class CommunityIssuance:
    """
    Holds the reward tokens earmarked for the stability pools and releases them
    along each pool's decay curve.
    """

    def __init__(self, vsta_token, stability_pool_manager, access_control, clock, issuance_factor):
        self.vsta_token = vsta_token
        self.stability_pool_manager = stability_pool_manager
        self.access_control = access_control
        self.clock = clock
        self.issuance_factor = issuance_factor

        self.schedules = {}  # stability pool -> IssuanceSchedule

    def __repr__(self):
        return "CommunityIssuance"

    # --- Getters ---

    def get_supply_cap(self, pool):
        schedule = self.schedules.get(pool)
        return schedule.supply_cap if schedule else 0

    def get_deployment_time(self, pool):
        schedule = self.schedules.get(pool)
        return schedule.deployment_time if schedule else 0

    def get_total_issued(self, pool):
        schedule = self.schedules.get(pool)
        return schedule.total_issued if schedule else 0

    def is_active(self, pool):
        return pool in self.schedules

    def get_cumulative_issuance_fraction(self, pool):
        """
        Fraction of the pool's cap that should have been issued by now.

        Returns:
            18-decimal fraction in [0, 1]; 0 for a pool without a schedule
        """
        schedule = self.schedules.get(pool)
        if schedule is None:
            return 0
        return self._issuance_fraction(self.clock.now() - schedule.deployment_time)

    def compute_issuance(self, pool):
        """Reward tokens that issue_vsta would release now, without releasing them."""
        schedule = self.schedules.get(pool)
        if schedule is None or schedule.total_issued >= schedule.supply_cap:
            return 0

        fraction = self._issuance_fraction(self.clock.now() - schedule.deployment_time)
        cumulative_issued = schedule.supply_cap * fraction // DECIMAL_PRECISION
        issuance = cumulative_issued - schedule.total_issued
        return max(0, min(issuance, schedule.remaining))

    # --- Pool-facing operations ---

    def issue_vsta(self, pool):
        """
        Releases the reward tokens a pool has earned since its last call.

        Args:
            pool: The calling stability pool

        Returns:
            Amount newly issued, never more than the cap left over
        """
        self._require_stability_pool(pool)
        issuance = self.compute_issuance(pool)
        if issuance == 0:
            return 0

        schedule = self.schedules[pool]
        schedule.total_issued += issuance
        if schedule.total_issued > schedule.supply_cap:
            raise InvariantViolation(f"{pool!r} issued {schedule.total_issued} over cap {schedule.supply_cap}")

        logger.debug("%r issued %s VSTA (total %s)", pool, issuance, schedule.total_issued)
        return issuance

    def send_vsta(self, pool, account, amount):
        """Pays earned reward tokens to a depositor of pool."""
        self._require_stability_pool(pool)
        self.vsta_token.transfer(self, account, amount)

    # --- Treasury operations ---

    def add_fund_to_stability_pool(self, pool, amount, caller):
        """
        Earmarks reward tokens for a stability pool.

        A pool without a schedule starts one now. A pool with a schedule first
        releases what it has earned, then grows its cap; the start time is kept so
        the decay curve continues where it was.

        Args:
            pool: Registered stability pool
            amount: Reward tokens taken from caller
            caller: Account holding the TREASURY role
        """
        self.access_control.require_role(Role.TREASURY, caller)
        self._require_stability_pool(pool)
        self._require_positive(amount)
        balance = self.vsta_token.balance_of(caller)
        if balance < amount:
            raise InsufficientBalanceError(f"Treasury holds {balance} VSTA, cannot fund {amount}")

        self._add_fund(pool, amount)
        self.vsta_token.transfer(caller, self, amount)

    def remove_fund_from_stability_pool(self, pool, amount, caller):
        """
        Takes back reward tokens a pool has not issued yet.

        Removing exactly the unissued remainder clears the pool's schedule.
        """
        self.access_control.require_role(Role.TREASURY, caller)
        self._require_stability_pool(pool)
        self._require_removable(pool, amount)

        self._remove_fund(pool, amount)
        self.vsta_token.transfer(self, caller, amount)

    def transfer_fund_to_another_stability_pool(self, from_pool, to_pool, amount, caller):
        """
        Moves unissued reward tokens from one pool's schedule to another's.

        Both sides are validated before anything changes.
        """
        self.access_control.require_role(Role.TREASURY, caller)
        self._require_stability_pool(from_pool)
        self._require_stability_pool(to_pool)
        if from_pool is to_pool:
            raise ValidationError("Source and destination pools must differ")
        self._require_removable(from_pool, amount)

        self._remove_fund(from_pool, amount)
        self._add_fund(to_pool, amount)

    # --- Internals ---

    def _add_fund(self, pool, amount):
        schedule = self.schedules.get(pool)
        if schedule is None:
            self.schedules[pool] = IssuanceSchedule(supply_cap=amount, deployment_time=self.clock.now())
        else:
            pool.trigger_vsta_issuance()
            schedule.supply_cap += amount
        logger.info("%r funded with %s VSTA, cap now %s", pool, amount, self.get_supply_cap(pool))

    def _remove_fund(self, pool, amount):
        pool.trigger_vsta_issuance()
        schedule = self.schedules[pool]
        if amount == schedule.remaining:
            del self.schedules[pool]
            logger.info("%r defunded by %s VSTA, schedule cleared", pool, amount)
        else:
            schedule.supply_cap -= amount
            logger.info("%r defunded by %s VSTA, cap now %s", pool, amount, schedule.supply_cap)

    def _require_removable(self, pool, amount):
        self._require_positive(amount)
        schedule = self.schedules.get(pool)
        if schedule is None:
            raise ValidationError(f"{pool!r} has no issuance schedule")
        # Tokens the pool is about to issue are already earned by its depositors
        available = schedule.remaining - self.compute_issuance(pool)
        if amount > available:
            raise ValidationError(f"Cannot remove {amount} VSTA, only {available} left unissued")

    def _require_stability_pool(self, pool):
        if not self.stability_pool_manager.is_stability_pool(pool):
            raise ValidationError(f"{pool!r} is not a registered stability pool")

    @staticmethod
    def _require_positive(amount):
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero")

    def _issuance_fraction(self, elapsed_seconds):
        minutes = max(0, elapsed_seconds) // SECONDS_IN_ONE_MINUTE
        fraction = DECIMAL_PRECISION - dec_pow(self.issuance_factor, minutes)
        if fraction > DECIMAL_PRECISION:
            raise InvariantViolation("Issuance fraction above one")
        return fraction
