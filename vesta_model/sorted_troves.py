"""
Ordered index of positions per asset.

Positions are ranked by nominal ICR (collateral / debt, price independent),
highest first, the way the on-chain doubly linked list orders them. The index is
kept as a sorted Python list; ties keep insertion order.
"""

import bisect

from .errors import InvariantViolation


class SortedTroves:

    def __init__(self):
        # asset -> list of (-nicr, seq, owner), ascending
        self._entries = {}
        # (asset, owner) -> key stored in _entries
        self._keys = {}
        self._seq = 0

    def insert(self, asset, owner, nicr):
        if (asset, owner) in self._keys:
            raise InvariantViolation(f"Position {owner!r} already in index for {asset!r}")
        self._seq += 1
        key = (-nicr, self._seq, owner)
        bisect.insort(self._entries.setdefault(asset, []), key)
        self._keys[(asset, owner)] = key

    def remove(self, asset, owner):
        key = self._keys.pop((asset, owner), None)
        if key is None:
            raise InvariantViolation(f"Position {owner!r} not in index for {asset!r}")
        entries = self._entries[asset]
        entries.pop(bisect.bisect_left(entries, key))

    def re_insert(self, asset, owner, new_nicr):
        self.remove(asset, owner)
        self.insert(asset, owner, new_nicr)

    def contains(self, asset, owner):
        return (asset, owner) in self._keys

    def get_size(self, asset):
        return len(self._entries.get(asset, []))

    def get_first(self, asset):
        """Owner with the highest nominal ICR, or None."""
        entries = self._entries.get(asset)
        return entries[0][2] if entries else None

    def get_last(self, asset):
        """Owner with the lowest nominal ICR, or None."""
        entries = self._entries.get(asset)
        return entries[-1][2] if entries else None

    def owners(self, asset):
        """Owners from highest to lowest nominal ICR."""
        return [entry[2] for entry in self._entries.get(asset, [])]

    def rank(self, asset, owner):
        """Zero-based position of owner, 0 being the highest nominal ICR."""
        key = self._keys.get((asset, owner))
        if key is None:
            return None
        return bisect.bisect_left(self._entries[asset], key)
