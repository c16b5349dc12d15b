"""Vesta Protocol Economic Model

Python model of a multi-collateral stablecoin:
- Per-asset positions (troves) with lazy redistribution of liquidated debt
- Stability pools tracked with the product-sum algorithm
- Decaying reward issuance to the stability pools
- Liquidation engine splitting seized collateral between liquidator, owner,
  stability pool and redistribution
"""

__version__ = "0.1.0"

from .access import AccessControl, Role
from .config import Clock, ProtocolConfig
from .collateral_registry import CollateralParameters, CollateralRegistry
from .community_issuance import CommunityIssuance
from .economic_model import VestaProtocol
from .errors import (
    InsufficientBalanceError,
    InvariantViolation,
    NothingToLiquidateError,
    NotLiquidatableError,
    PreconditionError,
    ProtocolError,
    SystemHaltedError,
    UnauthorizedError,
    ValidationError,
)
from .liquidation import LiquidationEngine, LiquidationValues
from .stability_pool import SnapshotEra, StabilityPool
from .stability_pool_manager import StabilityPoolManager
from .trove_manager import Status, TroveManager, pending_gains

__all__ = [
    "AccessControl",
    "Role",
    "Clock",
    "ProtocolConfig",
    "CollateralParameters",
    "CollateralRegistry",
    "CommunityIssuance",
    "VestaProtocol",
    "InsufficientBalanceError",
    "InvariantViolation",
    "NothingToLiquidateError",
    "NotLiquidatableError",
    "PreconditionError",
    "ProtocolError",
    "SystemHaltedError",
    "UnauthorizedError",
    "ValidationError",
    "LiquidationEngine",
    "LiquidationValues",
    "SnapshotEra",
    "StabilityPool",
    "StabilityPoolManager",
    "Status",
    "TroveManager",
    "pending_gains",
]
