"""Registry of pools, grouped by asset and denomination.

Every (asset, power) pair owns an ordered group of pools with denomination
``10**power``. A new pool is only added to a group once the deposit tree of
the latest pool in that group is full.
"""

import logging
import time
from typing import Callable, Dict, List, Optional, Tuple

from privacy_pool.config import Settings, get_settings
from privacy_pool.core.access_list import AccessType, SubsetTree
from privacy_pool.core.events import PoolCreatedEvent
from privacy_pool.core.merkle_tree import Hasher, MerkleTree
from privacy_pool.core.pool import PrivacyPool
from privacy_pool.core.transfer import Bank
from privacy_pool.crypto.groth16 import Groth16Verifier, ProofVerifier
from privacy_pool.crypto.poseidon import poseidon
from privacy_pool.exceptions import PoolInputNotAllowed, PreviousPoolTreeLimitNotReached, ZeroAddress
from privacy_pool.utils.encoding import NATIVE_ASSET, abi_encode, bytes_to_hex, is_zero_address, normalize_address
from privacy_pool.utils.hash import keccak256

logger = logging.getLogger(__name__)

MAX_POWER = 77


class PoolRegistry:
    """
    Creates and indexes pools.

    Pools created here hold their funds in ``bank`` under a deterministic
    address derived from the registry address, the asset, the power and the
    pool's position in its group.
    """

    def __init__(
        self,
        bank: Bank,
        verifier: ProofVerifier,
        hasher: Optional[Hasher] = poseidon,
        depth: int = MerkleTree.DEFAULT_DEPTH,
        seed: str = MerkleTree.DEFAULT_SEED,
        subset_seed: str = SubsetTree.DEFAULT_SEED,
        max_power: int = MAX_POWER,
        clock: Callable[[], float] = time.time,
        address: str = "0x" + "f0" * 20,
    ):
        if hasher is None:
            raise ZeroAddress("Hasher is not set")
        self.bank = bank
        self.verifier = verifier
        self.hasher = hasher
        self.depth = depth
        self.seed = seed
        self.subset_seed = subset_seed
        self.max_power = max_power
        self.clock = clock
        self.address = normalize_address(address)

        self.pool_groups: Dict[Tuple[str, int], List[PrivacyPool]] = {}
        self.events: List[PoolCreatedEvent] = []
        self._listeners: List[Callable[[PoolCreatedEvent], None]] = []

    @classmethod
    def from_settings(
        cls,
        bank: Bank,
        settings: Optional[Settings] = None,
        verifier: Optional[ProofVerifier] = None,
        **kwargs,
    ) -> "PoolRegistry":
        """
        Create a registry from configured tree parameters.

        Args:
            bank: Ledger the pools hold funds in
            settings: Settings to use, defaults to ``get_settings()``
            verifier: Proof verifier; loaded from ``verification_key_path``
                when omitted

        Raises:
            ValueError: If no verifier is given and no key path is configured
        """
        settings = settings or get_settings()
        if verifier is None:
            if not settings.verification_key_path:
                raise ValueError("No verifier given and verification_key_path is not set")
            verifier = Groth16Verifier.from_json(settings.verification_key_path)
        return cls(
            bank,
            verifier,
            depth=settings.tree_depth,
            seed=settings.commitment_tree_seed,
            subset_seed=settings.subset_tree_seed,
            max_power=settings.max_power,
            **kwargs,
        )

    def subset_tree(self, access_type: AccessType = AccessType.BLOCKLIST) -> SubsetTree:
        """An empty subset tree shaped like the deposit trees of this registry."""
        return SubsetTree(access_type, hasher=self.hasher, depth=self.depth, seed=self.subset_seed)

    def _pool_address(self, asset: str, power: int, position: int) -> str:
        digest = keccak256(abi_encode(("address", "address", "uint8", "uint256"), [self.address, asset, power, position]))
        return bytes_to_hex(digest[-20:])

    def _check_input(self, asset: str, power: int) -> None:
        if not 0 <= power <= self.max_power:
            raise PoolInputNotAllowed(f"Power {power} is outside 0..{self.max_power}")
        if asset != NATIVE_ASSET and self.bank.total_supply(asset) == 0:
            raise PoolInputNotAllowed(f"Asset {asset} has no supply")

    def create_pool(self, asset: str, power: int) -> PrivacyPool:
        """
        Create the next pool of the (asset, power) group.

        Args:
            asset: Asset address, ``NATIVE_ASSET`` for the native coin
            power: Denomination exponent, the pool takes deposits of 10**power

        Returns:
            PrivacyPool: The new pool

        Raises:
            ZeroAddress: If the asset is the zero address
            PoolInputNotAllowed: If the power is too large or the token has no supply
            PreviousPoolTreeLimitNotReached: If the latest pool of the group still has room
        """
        if is_zero_address(asset):
            raise ZeroAddress("Asset is the zero address")
        asset = normalize_address(asset)
        self._check_input(asset, power)

        group = self.pool_groups.setdefault((asset, power), [])
        if group:
            tree = group[-1].tree
            if tree.next_index < tree.capacity:
                raise PreviousPoolTreeLimitNotReached(
                    f"Latest pool holds {tree.next_index} of {tree.capacity} deposits"
                )

        pool = PrivacyPool.with_bank(
            self.bank,
            asset=asset,
            denomination=10**power,
            verifier=self.verifier,
            address=self._pool_address(asset, power, len(group)),
            hasher=self.hasher,
            depth=self.depth,
            seed=self.seed,
            clock=self.clock,
        )
        group.append(pool)

        event = PoolCreatedEvent(pool=pool.address, asset=asset, denomination=pool.denomination)
        self.events.append(event)
        for listener in list(self._listeners):
            listener(event)

        logger.info("Created pool %s for %s at 10**%d (#%d)", pool.address, asset, power, len(group))
        return pool

    def subscribe(self, listener: Callable[[PoolCreatedEvent], None]) -> None:
        self._listeners.append(listener)

    def pool_group(self, asset: str, power: int) -> List[PrivacyPool]:
        """All pools of an (asset, power) group, oldest first."""
        return list(self.pool_groups.get((normalize_address(asset), power), []))

    def pool_group_length(self, asset: str, power: int) -> int:
        return len(self.pool_groups.get((normalize_address(asset), power), []))

    def latest_pool(self, asset: str, power: int) -> Optional[PrivacyPool]:
        """The pool currently accepting deposits for a group, if any."""
        group = self.pool_groups.get((normalize_address(asset), power))
        return group[-1] if group else None
