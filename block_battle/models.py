"""
Domain Models
=============
Typed snapshot of a Block Battle bet account.

All amounts are integer lamports. Converting to SOL is a display concern
and only happens in the console reporter.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import base58


IDENTITY_SIZE = 32


class Stage(Enum):
    """Lifecycle stage stored in the account's status byte."""
    OPEN = 0
    REVEALED = 1
    CANCELLED = 2

    @property
    def label(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class Identity:
    """A 32-byte ledger public key."""
    raw: bytes

    def __post_init__(self):
        if len(self.raw) != IDENTITY_SIZE:
            raise ValueError(f"Identity must be {IDENTITY_SIZE} bytes, got {len(self.raw)}")

    @classmethod
    def from_base58(cls, text: str) -> "Identity":
        try:
            raw = base58.b58decode(text.strip())
        except ValueError as e:
            raise ValueError(f"Invalid base58 identity {text!r}: {e}") from e
        return cls(raw)

    def to_base58(self) -> str:
        return base58.b58encode(self.raw).decode("ascii")

    def short(self, n: int = 8) -> str:
        """Abbreviated form for log lines."""
        return self.to_base58()[:n] + "..."

    def __str__(self) -> str:
        return self.to_base58()

    def __repr__(self) -> str:
        return f"Identity({self.to_base58()})"


@dataclass(frozen=True)
class PoolRecord:
    """
    Decoded bet account.

    winner_selection is only expected when stage is REVEALED. The decoder
    does not enforce that; the classifier reports it as an anomaly.
    """
    creator: Identity
    arbiter: Identity
    min_deposit: int  # lamports
    total_pool: int  # lamports
    lock_time: int  # unix seconds, signed
    winner_selection: Optional[int]
    stage: Stage
    participant_count: int
    is_automatic: bool
    # PDA bump seed; structural only
    bump: int = field(default=0, compare=False, repr=False)

    @property
    def is_open(self) -> bool:
        return self.stage is Stage.OPEN


@dataclass(frozen=True)
class PoolEntry:
    """A decoded record together with the account address it was read from."""
    address: str
    record: PoolRecord


@dataclass(frozen=True)
class Participation:
    """A caller's seat in one pool: the door they picked and whether they claimed."""
    chosen_door: int
    has_claimed: bool = False


def is_valid_door(door: int, total_doors: int) -> bool:
    """Doors are numbered 1..total_doors."""
    return 1 <= door <= total_doors
