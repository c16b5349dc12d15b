"""
Collateral parameter registry for the Vesta protocol model.

Every collateral asset carries its own set of risk parameters (ratios, gas
compensation, fee floors and liquidation bonus rates). Setters are restricted to
the ADMIN role and reject out-of-range values instead of clamping them.
"""

import logging
from dataclasses import dataclass, replace

from .access import Role
from .errors import ValidationError
from .liquity_math import DECIMAL_PRECISION, dec
from .config import PER_MILLE

logger = logging.getLogger(__name__)

# Absolute bounds, inclusive
MCR_MIN = 1010000000000000000  # 101%
MCR_MAX = dec(100)  # 10,000%
CCR_MIN = 1200000000000000000  # 120%
CCR_MAX = dec(100)
GAS_COMPENSATION_MIN = dec(1)
GAS_COMPENSATION_MAX = dec(200)
MIN_NET_DEBT_MIN = 0
MIN_NET_DEBT_MAX = dec(1800)
PERCENT_DIVISOR_MIN = 2
PERCENT_DIVISOR_MAX = 200
BORROWING_FEE_FLOOR_MIN = 0
BORROWING_FEE_FLOOR_MAX = 50 * PER_MILLE  # 5%
MAX_BORROWING_FEE_MIN = 0
MAX_BORROWING_FEE_MAX = 200 * PER_MILLE  # 20%
REDEMPTION_FEE_FLOOR_MIN = 3 * PER_MILLE  # 0.3%
REDEMPTION_FEE_FLOOR_MAX = 100 * PER_MILLE  # 10%
BONUS_MIN = 0
BONUS_MAX = 200 * PER_MILLE  # 20%


def apply_decimal_precision(per_mille):
    """Converts a per-mille integer (50 -> 5%) to 18-decimal fixed point."""
    return per_mille * PER_MILLE


@dataclass
class CollateralParameters:
    """Risk parameters of a single collateral asset."""
    mcr: int = 0
    ccr: int = 0
    debt_gas_compensation: int = 0
    min_net_debt: int = 0
    percent_divisor: int = 0
    borrowing_fee_floor: int = 0
    max_borrowing_fee: int = 0
    redemption_fee_floor: int = 0
    bonus: int = 0
    bonus_to_sp: int = 0
    is_configured: bool = False


def _check_range(name, value, low, high):
    if value < low or value > high:
        raise ValidationError(f"{name} out of range: {value} not in [{low}, {high}]")


class CollateralRegistry:
    """
    Holds CollateralParameters per asset.

    The registry is injected into every component that reads risk parameters, so
    independent instances never share configuration.
    """

    def __init__(self, access_control, config):
        self.access_control = access_control
        self.config = config
        self._parameters = {}
        self._default_parameters()

    def is_registered(self, asset):
        return asset in self._parameters and self._parameters[asset].is_configured

    def get(self, asset) -> CollateralParameters:
        """
        Returns the parameters of a configured asset.

        Raises:
            ValidationError: If the asset was never configured
        """
        params = self._parameters.get(asset)
        if params is None or not params.is_configured:
            raise ValidationError(f"Unknown collateral asset: {asset!r}")
        return params

    def assets(self):
        return [asset for asset, params in self._parameters.items() if params.is_configured]

    # --- Bulk configuration ---

    def sanitize_parameters(self, asset):
        """Fills protocol defaults for an asset that was never configured; otherwise a no-op."""
        if self.is_registered(asset):
            return False
        self._store(asset, self._default_parameters())
        logger.info("Collateral %r initialised with default parameters", asset)
        return True

    def set_as_default(self, asset, caller):
        """Resets every parameter of the asset to the protocol defaults."""
        self.access_control.require_role(Role.ADMIN, caller)
        self._store(asset, self._default_parameters())
        logger.info("Collateral %r reset to default parameters", asset)

    def set_collateral_parameters(self, asset, caller, mcr, ccr, debt_gas_compensation, min_net_debt,
                                  percent_divisor, borrowing_fee_floor, max_borrowing_fee,
                                  redemption_fee_floor, bonus=None, bonus_to_sp=None):
        """
        Sets all parameters of an asset at once. Nothing is stored unless every value is valid.

        Args:
            asset: Collateral identifier
            caller: Account performing the change, must hold ADMIN
            mcr, ccr: 18-decimal ratios
            debt_gas_compensation, min_net_debt: Amounts in debt-token units (18 decimals)
            percent_divisor: Integer divisor for proportional gas compensation
            borrowing_fee_floor, max_borrowing_fee, redemption_fee_floor: Per-mille integers
            bonus, bonus_to_sp: Per-mille integers; defaults are used when omitted
        """
        self.access_control.require_role(Role.ADMIN, caller)
        defaults = self.config
        candidate = CollateralParameters(
            mcr=mcr,
            ccr=ccr,
            debt_gas_compensation=debt_gas_compensation,
            min_net_debt=min_net_debt,
            percent_divisor=percent_divisor,
            borrowing_fee_floor=apply_decimal_precision(borrowing_fee_floor),
            max_borrowing_fee=apply_decimal_precision(max_borrowing_fee),
            redemption_fee_floor=apply_decimal_precision(redemption_fee_floor),
            bonus=defaults.bonus if bonus is None else apply_decimal_precision(bonus),
            bonus_to_sp=defaults.bonus_to_sp if bonus_to_sp is None else apply_decimal_precision(bonus_to_sp),
            is_configured=True,
        )
        self._validate(candidate)
        self._store(asset, candidate)
        logger.info("Collateral %r parameters updated", asset)

    # --- Single setters ---

    def set_mcr(self, asset, caller, mcr):
        self._set(asset, caller, mcr=mcr)

    def set_ccr(self, asset, caller, ccr):
        self._set(asset, caller, ccr=ccr)

    def set_debt_gas_compensation(self, asset, caller, amount):
        self._set(asset, caller, debt_gas_compensation=amount)

    def set_min_net_debt(self, asset, caller, amount):
        self._set(asset, caller, min_net_debt=amount)

    def set_percent_divisor(self, asset, caller, divisor):
        self._set(asset, caller, percent_divisor=divisor)

    def set_borrowing_fee_floor(self, asset, caller, per_mille):
        self._set(asset, caller, borrowing_fee_floor=apply_decimal_precision(per_mille))

    def set_max_borrowing_fee(self, asset, caller, per_mille):
        self._set(asset, caller, max_borrowing_fee=apply_decimal_precision(per_mille))

    def set_redemption_fee_floor(self, asset, caller, per_mille):
        self._set(asset, caller, redemption_fee_floor=apply_decimal_precision(per_mille))

    def set_bonus(self, asset, caller, per_mille):
        self._set(asset, caller, bonus=apply_decimal_precision(per_mille))

    def set_bonus_to_sp(self, asset, caller, per_mille):
        self._set(asset, caller, bonus_to_sp=apply_decimal_precision(per_mille))

    # --- Internals ---

    def _set(self, asset, caller, **changes):
        self.access_control.require_role(Role.ADMIN, caller)
        candidate = replace(self.get(asset), **changes)
        self._validate(candidate)
        self._store(asset, candidate)
        for name, value in changes.items():
            logger.info("Collateral %r: %s set to %s", asset, name, value)

    def _default_parameters(self):
        """
        Builds the configured defaults, held to the same bounds as the setters.

        Raises:
            ValidationError: If a default is out of range
        """
        params = CollateralParameters(is_configured=True, **self.config.default_collateral_parameters())
        self._validate(params)
        return params

    def _store(self, asset, params):
        self._parameters[asset] = params

    @staticmethod
    def _validate(params):
        _check_range("MCR", params.mcr, MCR_MIN, MCR_MAX)
        _check_range("CCR", params.ccr, CCR_MIN, CCR_MAX)
        _check_range("Debt gas compensation", params.debt_gas_compensation,
                     GAS_COMPENSATION_MIN, GAS_COMPENSATION_MAX)
        _check_range("Min net debt", params.min_net_debt, MIN_NET_DEBT_MIN, MIN_NET_DEBT_MAX)
        _check_range("Percent divisor", params.percent_divisor, PERCENT_DIVISOR_MIN, PERCENT_DIVISOR_MAX)
        _check_range("Borrowing fee floor", params.borrowing_fee_floor,
                     BORROWING_FEE_FLOOR_MIN, BORROWING_FEE_FLOOR_MAX)
        _check_range("Max borrowing fee", params.max_borrowing_fee,
                     MAX_BORROWING_FEE_MIN, MAX_BORROWING_FEE_MAX)
        _check_range("Redemption fee floor", params.redemption_fee_floor,
                     REDEMPTION_FEE_FLOOR_MIN, REDEMPTION_FEE_FLOOR_MAX)
        _check_range("Bonus", params.bonus, BONUS_MIN, BONUS_MAX)
        _check_range("Bonus to stability pool", params.bonus_to_sp, BONUS_MIN, BONUS_MAX)
        if params.ccr < params.mcr:
            raise ValidationError("CCR must not be below MCR")
        if params.mcr <= DECIMAL_PRECISION:
            raise ValidationError("MCR must exceed 100%")
