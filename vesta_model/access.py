"""
Role-based authorization shared by every component.
"""

import logging
from enum import Enum

from .errors import UnauthorizedError

logger = logging.getLogger(__name__)


class Role(Enum):
    ADMIN = "admin"  # Parameter and registry changes
    TREASURY = "treasury"  # Funds reward schedules
    LIQUIDATION_ENGINE = "liquidation_engine"  # Offsets debt against stability pools


class AccessControl:
    """Maps roles to the set of accounts holding them."""

    def __init__(self, admin=None):
        self._members = {role: set() for role in Role}
        if admin is not None:
            self._members[Role.ADMIN].add(admin)

    def grant_role(self, role, account):
        self._members[role].add(account)
        logger.debug("Granted %s to %r", role.value, account)

    def revoke_role(self, role, account):
        self._members[role].discard(account)
        logger.debug("Revoked %s from %r", role.value, account)

    def has_role(self, role, account):
        return account in self._members[role]

    def require_role(self, role, account):
        """Raises UnauthorizedError unless account holds role."""
        if not self.has_role(role, account):
            raise UnauthorizedError(f"Caller {account!r} is missing role {role.value}")
