"""Asset movement capabilities used by pools.

The pool never touches balances directly. It pulls deposits and pushes
withdrawals through an :class:`AssetTransfer`, which hides whether the asset
is the native coin or a token.

:class:`Bank` is an in-memory ledger of balances per (asset, account) used
by tests, the HTTP service and simulations. Addresses can register a receive
hook that runs whenever native coin arrives, which is how contracts that
reject funds or call back into the pool are modelled.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

from privacy_pool.exceptions import FailedInnerCall, InsufficientBalance, PrivacyPoolError
from privacy_pool.utils.encoding import NATIVE_ASSET, normalize_address

logger = logging.getLogger(__name__)

# hook(sender, amount), may raise to reject the transfer
ReceiveHook = Callable[[str, int], None]


class AssetTransfer(ABC):
    """Moves one asset between accounts and the pool."""

    asset: str

    @abstractmethod
    def pull(self, sender: str, amount: int) -> None:
        """Move ``amount`` from ``sender`` into the pool."""

    @abstractmethod
    def push(self, recipient: str, amount: int) -> None:
        """
        Move ``amount`` from the pool to ``recipient``.

        All-or-nothing: either the full amount arrives or ``FailedInnerCall``
        is raised. A zero amount is a no-op.
        """

    @abstractmethod
    def snapshot(self) -> Any:
        """Capture balances so an aborted operation can restore them."""

    @abstractmethod
    def restore(self, snapshot: Any) -> None:
        """Restore balances captured by :meth:`snapshot`."""


class Bank:
    """In-memory balances for any number of assets."""

    def __init__(self):
        self.balances: Dict[Tuple[str, str], int] = {}
        self.total_supplies: Dict[str, int] = {}
        self._hooks: Dict[str, ReceiveHook] = {}

    def mint(self, asset: str, account: str, amount: int) -> None:
        asset, account = normalize_address(asset), normalize_address(account)
        key = (asset, account)
        self.balances[key] = self.balances.get(key, 0) + amount
        self.total_supplies[asset] = self.total_supplies.get(asset, 0) + amount

    def balance_of(self, asset: str, account: str) -> int:
        return self.balances.get((normalize_address(asset), normalize_address(account)), 0)

    def total_supply(self, asset: str) -> int:
        return self.total_supplies.get(normalize_address(asset), 0)

    def register_receiver(self, address: str, hook: Optional[ReceiveHook]) -> None:
        """Install (or with None, remove) the native receive hook of an address."""
        address = normalize_address(address)
        if hook is None:
            self._hooks.pop(address, None)
        else:
            self._hooks[address] = hook

    def transfer(self, asset: str, sender: str, recipient: str, amount: int) -> None:
        """
        Move funds between two accounts.

        Raises:
            InsufficientBalance: If ``sender`` cannot cover ``amount``
            FailedInnerCall: If the recipient's receive hook rejects the funds
        """
        if amount < 0:
            raise ValueError("Amount must be non-negative")
        if amount == 0:
            return

        asset = normalize_address(asset)
        sender, recipient = normalize_address(sender), normalize_address(recipient)
        source, target = (asset, sender), (asset, recipient)

        if self.balances.get(source, 0) < amount:
            raise InsufficientBalance(f"{sender} holds less than {amount} of {asset}")

        self.balances[source] -= amount
        self.balances[target] = self.balances.get(target, 0) + amount

        hook = self._hooks.get(recipient) if asset == NATIVE_ASSET else None
        if hook is None:
            return

        try:
            hook(sender, amount)
        except PrivacyPoolError as e:
            self.balances[target] -= amount
            self.balances[source] += amount
            raise FailedInnerCall(f"Transfer to {recipient} failed: {e}") from e
        except Exception as e:
            self.balances[target] -= amount
            self.balances[source] += amount
            raise FailedInnerCall(f"Transfer to {recipient} reverted: {e}") from e

    def snapshot(self) -> Dict[Tuple[str, str], int]:
        return dict(self.balances)

    def restore(self, snapshot: Dict[Tuple[str, str], int]) -> None:
        self.balances = dict(snapshot)


class BankTransfer(AssetTransfer):
    """:class:`AssetTransfer` for one asset held by one pool in a :class:`Bank`."""

    def __init__(self, bank: Bank, asset: str, pool_address: str):
        self.bank = bank
        self.asset = normalize_address(asset)
        self.pool_address = normalize_address(pool_address)

    @property
    def is_native(self) -> bool:
        return self.asset == NATIVE_ASSET

    def pull(self, sender: str, amount: int) -> None:
        self.bank.transfer(self.asset, sender, self.pool_address, amount)

    def push(self, recipient: str, amount: int) -> None:
        try:
            self.bank.transfer(self.asset, self.pool_address, recipient, amount)
        except InsufficientBalance as e:
            raise FailedInnerCall(str(e)) from e

    def balance(self) -> int:
        return self.bank.balance_of(self.asset, self.pool_address)

    def snapshot(self) -> Dict[Tuple[str, str], int]:
        return self.bank.snapshot()

    def restore(self, snapshot: Dict[Tuple[str, str], int]) -> None:
        self.bank.restore(snapshot)
