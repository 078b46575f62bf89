"""
Set of watched accounts shared by the trigger sources and the execution engine.
"""

import threading
from typing import FrozenSet, Set

from web3 import Web3


class AccountLedger:
    """
    Thread-safe watch set.

    Accounts are only ever removed after a confirmed liquidation; an account
    that recovers may become liquidatable again later and stays monitored.
    """

    def __init__(self) -> None:
        self._accounts: Set[str] = set()
        self._lock = threading.Lock()

    @staticmethod
    def normalize(address: str) -> str:
        return Web3.to_checksum_address(address)

    def add(self, address: str) -> bool:
        """Insert an account. Returns True if it was not already watched."""
        address = self.normalize(address)
        with self._lock:
            if address in self._accounts:
                return False
            self._accounts.add(address)
            return True

    def remove(self, address: str) -> bool:
        """Remove an account. Returns True if it was watched."""
        address = self.normalize(address)
        with self._lock:
            if address not in self._accounts:
                return False
            self._accounts.discard(address)
            return True

    def snapshot(self) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._accounts)

    def __contains__(self, address: object) -> bool:
        if not isinstance(address, str):
            return False
        address = self.normalize(address)
        with self._lock:
            return address in self._accounts

    def __len__(self) -> int:
        with self._lock:
            return len(self._accounts)
