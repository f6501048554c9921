"""Records emitted by pools and the registry."""

from dataclasses import dataclass

from privacy_pool.utils.encoding import field_to_hex


@dataclass(frozen=True)
class DepositEvent:
    """Emitted once per inserted commitment."""

    raw_commitment: int
    commitment: int
    asset: str
    denomination: int
    index: int

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "raw_commitment": field_to_hex(self.raw_commitment),
            "commitment": field_to_hex(self.commitment),
            "asset": self.asset,
            "denomination": self.denomination,
            "index": self.index,
        }


@dataclass(frozen=True)
class WithdrawalEvent:
    """Emitted once per settled withdrawal. ``fee`` is the fee named in the proof."""

    recipient: str
    relayer: str
    subset_root: int
    nullifier: int
    fee: int

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "recipient": self.recipient,
            "relayer": self.relayer,
            "subset_root": field_to_hex(self.subset_root),
            "nullifier": field_to_hex(self.nullifier),
            "fee": self.fee,
        }


@dataclass(frozen=True)
class PoolCreatedEvent:
    """Emitted by the registry for every new pool."""

    pool: str
    asset: str
    denomination: int

    def to_dict(self) -> dict:
        return {"pool": self.pool, "asset": self.asset, "denomination": self.denomination}
