"""
Fungible token ledgers for the Vesta protocol model.

Token models the reward token and the collateral tokens; StableToken is the
protocol's debt token (VST) and only lets registered minters create or destroy
supply. Accounts are any hashable value, including the pool objects themselves.

VST and VSTA balances are touched by operations on every collateral asset, so
each ledger serializes its own updates.
"""

import logging
import threading

from .errors import InsufficientBalanceError, UnauthorizedError, ValidationError

logger = logging.getLogger(__name__)


class Token:
    """Plain fungible token with balances and allowances."""

    def __init__(self, symbol):
        self.symbol = symbol
        self.total_supply = 0
        self.balances = {}
        self.allowances = {}  # (owner, spender) -> amount
        self._lock = threading.RLock()

    def balance_of(self, account):
        """Returns the token balance of the given account."""
        return self.balances.get(account, 0)

    def allowance(self, owner, spender):
        return self.allowances.get((owner, spender), 0)

    def approve(self, owner, spender, amount):
        if amount < 0:
            raise ValidationError("Allowance must not be negative")
        with self._lock:
            self.allowances[(owner, spender)] = amount
        return True

    def transfer(self, sender, recipient, amount):
        """
        Transfers tokens from sender to recipient.

        Args:
            sender: Account sending the tokens
            recipient: Account receiving the tokens
            amount: Amount of tokens to transfer

        Returns:
            True if successful
        """
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero")

        with self._lock:
            sender_balance = self.balances.get(sender, 0)
            if sender_balance < amount:
                raise InsufficientBalanceError(
                    f"Insufficient {self.symbol} balance: {sender_balance} < {amount}")

            self.balances[sender] = sender_balance - amount
            self.balances[recipient] = self.balances.get(recipient, 0) + amount
        return True

    def transfer_from(self, spender, owner, recipient, amount):
        """Moves tokens on behalf of owner, consuming spender's allowance."""
        with self._lock:
            allowed = self.allowance(owner, spender)
            if allowed < amount:
                raise InsufficientBalanceError(f"Insufficient {self.symbol} allowance: {allowed} < {amount}")
            self.transfer(owner, recipient, amount)
            self.allowances[(owner, spender)] = allowed - amount
        return True

    def mint(self, recipient, amount):
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero")
        with self._lock:
            self.balances[recipient] = self.balances.get(recipient, 0) + amount
            self.total_supply += amount
        return True

    def burn(self, from_account, amount):
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero")

        with self._lock:
            from_balance = self.balances.get(from_account, 0)
            if from_balance < amount:
                raise InsufficientBalanceError(
                    f"Insufficient {self.symbol} balance to burn: {from_balance} < {amount}")

            self.balances[from_account] = from_balance - amount
            self.total_supply -= amount
        return True


class StableToken(Token):
    """
    The protocol's stable debt token.

    Minting and burning are reserved to registered minters (borrower operations,
    stability pools and the liquidation engine).
    """

    def __init__(self, symbol="VST"):
        super().__init__(symbol)
        self.minters = set()

    def add_minter(self, minter):
        self.minters.add(minter)

    def remove_minter(self, minter):
        self.minters.discard(minter)

    def mint(self, recipient, amount, caller=None):
        self._require_minter(caller)
        return super().mint(recipient, amount)

    def burn(self, from_account, amount, caller=None):
        self._require_minter(caller)
        return super().burn(from_account, amount)

    def _require_minter(self, caller):
        if caller not in self.minters:
            raise UnauthorizedError(f"{caller!r} is not allowed to mint or burn {self.symbol}")
