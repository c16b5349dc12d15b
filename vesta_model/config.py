"""
Configuration and virtual time for the Vesta protocol model.

ProtocolConfig bundles the protocol-wide constants and the default collateral
parameters applied to a newly registered asset. Clock is the single source of
time for every component.
"""

import json
import threading
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Optional

from .errors import ValidationError
from .liquity_math import DECIMAL_PRECISION, dec, issuance_factor

ONE_MINUTE = 60
ONE_HOUR = 60 * ONE_MINUTE
ONE_DAY = 24 * ONE_HOUR
ONE_WEEK = 7 * ONE_DAY
ONE_YEAR = 365 * ONE_DAY

# 2**(-1/525600): halves the remaining supply once per 365-day year
ONE_YEAR_ISSUANCE_FACTOR = 999998681227695000

# Stability pool scale step; P is multiplied by this when it drops below it
SCALE_FACTOR = 10 ** 9

# Per-mille units used by the fee setters (50 -> 5%)
PER_MILLE = DECIMAL_PRECISION // 1000


@dataclass
class ProtocolConfig:
    """Protocol-wide settings shared by every collateral universe."""

    # Reward issuance
    halving_period: int = ONE_YEAR  # Seconds until half of a pool's cap is issued

    # Price feed
    price_staleness: int = 4 * ONE_HOUR  # A price older than this is refused

    # Default collateral parameters (18-decimal fixed point unless noted)
    mcr: int = 1100000000000000000  # 110%
    ccr: int = 1500000000000000000  # 150%
    debt_gas_compensation: int = dec(30)  # Flat floor, in debt-token units
    min_net_debt: int = dec(300)
    percent_divisor: int = 200  # 0.5% of collateral as gas compensation
    borrowing_fee_floor: int = 5 * PER_MILLE  # 0.5%
    max_borrowing_fee: int = 50 * PER_MILLE  # 5%
    redemption_fee_floor: int = 5 * PER_MILLE  # 0.5%
    bonus: int = 100 * PER_MILLE  # 10%
    bonus_to_sp: int = 100 * PER_MILLE  # 10%; the lower of the two bonuses is applied

    def __post_init__(self):
        self.validate()

    @property
    def issuance_factor(self):
        """Per-minute decay factor of the reward schedule."""
        if self.halving_period == ONE_YEAR:
            return ONE_YEAR_ISSUANCE_FACTOR
        return issuance_factor(self.halving_period)

    def validate(self) -> None:
        """Rejects settings that the rest of the model cannot work with."""
        if self.halving_period < ONE_MINUTE:
            raise ValidationError("Halving period must be at least one minute")
        if self.price_staleness <= 0:
            raise ValidationError("Price staleness window must be positive")
        if self.ccr < self.mcr:
            raise ValidationError("CCR must not be below MCR")
        if self.percent_divisor <= 0:
            raise ValidationError("Percent divisor must be positive")

    def default_collateral_parameters(self) -> dict:
        return {
            "mcr": self.mcr,
            "ccr": self.ccr,
            "debt_gas_compensation": self.debt_gas_compensation,
            "min_net_debt": self.min_net_debt,
            "percent_divisor": self.percent_divisor,
            "borrowing_fee_floor": self.borrowing_fee_floor,
            "max_borrowing_fee": self.max_borrowing_fee,
            "redemption_fee_floor": self.redemption_fee_floor,
            "bonus": self.bonus,
            "bonus_to_sp": self.bonus_to_sp,
        }

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict):
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValidationError(f"Unknown configuration keys: {sorted(unknown)}")
        return cls(**data)

    @classmethod
    def from_json(cls, file_path: str, overrides: Optional[dict] = None):
        """
        Load configuration from a JSON file.

        Args:
            file_path: Path to a JSON object whose keys are ProtocolConfig fields
            overrides: Optional values applied on top of the file

        Returns:
            ProtocolConfig
        """
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)

        data.update(overrides or {})
        return cls.from_dict(data)


class Clock:
    """Monotonic virtual clock measured in whole seconds."""

    def __init__(self, start=0):
        self._now = int(start)
        self._lock = threading.Lock()

    def now(self):
        return self._now

    def advance(self, seconds):
        if seconds < 0:
            raise ValidationError("Time cannot move backwards")
        with self._lock:
            self._now += int(seconds)
            return self._now

    def set(self, timestamp):
        with self._lock:
            if timestamp < self._now:
                raise ValidationError("Time cannot move backwards")
            self._now = int(timestamp)
            return self._now
