"""
Bet Account Decoder
===================
Raw account bytes -> PoolRecord. Pure, no I/O.

Layout (little-endian):
    discriminator(8) + creator(32) + arbiter(32) + min_deposit(u64) +
    total_pool(u64) + lock_time(i64) + winner_block(Option<u8>) +
    status(u8) + player_count(u8) + bump(u8) + is_automatic(u8)

winner_block is 1 byte when absent and 2 bytes when present, so every
offset after it depends on the presence tag.
"""

import hashlib
import logging
import struct
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from .models import IDENTITY_SIZE, Identity, PoolEntry, PoolRecord, Stage

logger = logging.getLogger(__name__)


DISCRIMINATOR_SIZE = 8

# Anchor account tag: sha256("account:<AccountName>")[:8]
BET_ACCOUNT_DISCRIMINATOR = hashlib.sha256(b"account:BetAccount").digest()[:DISCRIMINATOR_SIZE]

CREATOR_OFFSET = DISCRIMINATOR_SIZE
ARBITER_OFFSET = CREATOR_OFFSET + IDENTITY_SIZE
MIN_DEPOSIT_OFFSET = ARBITER_OFFSET + IDENTITY_SIZE
TOTAL_POOL_OFFSET = MIN_DEPOSIT_OFFSET + 8
LOCK_TIME_OFFSET = TOTAL_POOL_OFFSET + 8
WINNER_TAG_OFFSET = LOCK_TIME_OFFSET + 8

# Bytes after the winner value: status, player_count, bump, is_automatic
TAIL_SIZE = 4

# Shortest valid account: winner absent
MIN_RECORD_SIZE = WINNER_TAG_OFFSET + 1 + TAIL_SIZE

# Status byte offset for records with no winner. Open records never carry a
# winner, so this offset is fixed for them and only for them. Any query that
# is not restricted to Open must decode through the presence tag instead.
OPEN_STAGE_OFFSET = WINNER_TAG_OFFSET + 1
assert OPEN_STAGE_OFFSET == 97, "stage filter offset drifted from the account layout"


class DecodeError(ValueError):
    """Raised when account bytes do not match the bet account layout."""

    def __init__(self, reason: str, offset: Optional[int] = None):
        self.reason = reason
        self.offset = offset
        if offset is None:
            super().__init__(reason)
        else:
            super().__init__(f"{reason} (offset {offset})")


class ByteCursor:
    """Sequential little-endian reader over a byte buffer."""

    def __init__(self, data: bytes, offset: int = 0):
        self.data = bytes(data)
        self.offset = offset

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset

    def read_fixed(self, size: int) -> bytes:
        if size > self.remaining:
            raise DecodeError(f"truncated: need {size} bytes, have {self.remaining}", self.offset)
        chunk = self.data[self.offset:self.offset + size]
        self.offset += size
        return chunk

    def read_u8(self) -> int:
        return self.read_fixed(1)[0]

    def read_u64(self) -> int:
        return struct.unpack("<Q", self.read_fixed(8))[0]

    def read_i64(self) -> int:
        return struct.unpack("<q", self.read_fixed(8))[0]

    def read_bool(self) -> bool:
        """Strict bool: only 0 and 1 are accepted."""
        at = self.offset
        value = self.read_u8()
        if value not in (0, 1):
            raise DecodeError(f"invalid bool byte {value}", at)
        return value == 1

    def read_option_u8(self) -> Optional[int]:
        """Option<u8>: presence tag, then the value only if the tag is 1."""
        at = self.offset
        tag = self.read_u8()
        if tag == 0:
            return None
        if tag == 1:
            return self.read_u8()
        raise DecodeError(f"invalid option presence tag {tag}", at)

    def read_identity(self) -> Identity:
        return Identity(self.read_fixed(IDENTITY_SIZE))


def decode_pool_record(data: bytes, discriminator: bytes = BET_ACCOUNT_DISCRIMINATOR) -> PoolRecord:
    """
    Decode one bet account.

    Args:
        data: Raw account data as returned by the ledger
        discriminator: Expected 8-byte account tag

    Returns:
        PoolRecord

    Raises:
        DecodeError: short buffer, wrong discriminator, or an out-of-range
            option tag, status byte or is_automatic byte.

    Trailing bytes past is_automatic are ignored.
    """
    if len(data) < MIN_RECORD_SIZE:
        raise DecodeError(f"buffer too short: {len(data)} < {MIN_RECORD_SIZE}")

    cursor = ByteCursor(data)

    tag = cursor.read_fixed(DISCRIMINATOR_SIZE)
    if tag != discriminator:
        raise DecodeError(f"discriminator mismatch: {tag.hex()} != {discriminator.hex()}", 0)

    creator = cursor.read_identity()
    arbiter = cursor.read_identity()
    min_deposit = cursor.read_u64()
    total_pool = cursor.read_u64()
    lock_time = cursor.read_i64()
    winner_selection = cursor.read_option_u8()

    stage_at = cursor.offset
    stage_byte = cursor.read_u8()
    try:
        stage = Stage(stage_byte)
    except ValueError:
        raise DecodeError(f"invalid stage byte {stage_byte}", stage_at) from None

    participant_count = cursor.read_u8()
    bump = cursor.read_u8()
    is_automatic = cursor.read_bool()

    return PoolRecord(
        creator=creator,
        arbiter=arbiter,
        min_deposit=min_deposit,
        total_pool=total_pool,
        lock_time=lock_time,
        winner_selection=winner_selection,
        stage=stage,
        participant_count=participant_count,
        is_automatic=is_automatic,
        bump=bump,
    )


def encode_pool_record(record: PoolRecord, discriminator: bytes = BET_ACCOUNT_DISCRIMINATOR) -> bytes:
    """Serialize a record in the on-chain layout. Inverse of decode_pool_record."""
    parts = [
        discriminator,
        record.creator.raw,
        record.arbiter.raw,
        struct.pack("<QQq", record.min_deposit, record.total_pool, record.lock_time),
    ]
    if record.winner_selection is None:
        parts.append(b"\x00")
    else:
        parts.append(bytes([1, record.winner_selection]))
    parts.append(bytes([
        record.stage.value,
        record.participant_count,
        record.bump,
        1 if record.is_automatic else 0,
    ]))
    return b"".join(parts)


@dataclass
class DecodeFailure:
    """One account that could not be decoded."""
    address: str
    reason: str

    def to_dict(self) -> dict:
        return {"address": self.address, "reason": self.reason}


@dataclass
class DecodeBatch:
    """Outcome of decoding a batch: what decoded, and what was skipped."""
    entries: List[PoolEntry] = field(default_factory=list)
    failures: List[DecodeFailure] = field(default_factory=list)

    @property
    def failure_count(self) -> int:
        return len(self.failures)


def decode_batch(accounts: Iterable[Tuple[str, bytes]],
                 discriminator: bytes = BET_ACCOUNT_DISCRIMINATOR) -> DecodeBatch:
    """
    Decode (address, data) pairs independently.

    A bad record never aborts the batch: it is logged and recorded as a
    DecodeFailure.
    """
    batch = DecodeBatch()
    for address, data in accounts:
        try:
            record = decode_pool_record(data, discriminator)
        except DecodeError as e:
            logger.warning(f"Skipping account {address}: {e}")
            batch.failures.append(DecodeFailure(address=address, reason=str(e)))
            continue
        batch.entries.append(PoolEntry(address=address, record=record))
    return batch
