"""
Pool Projector
==============
Bulk views over Block Battle accounts:

1. Open pools (cached): memcmp stage == Open, cap, decode, re-filter, sort
2. Pools created by a wallet (uncached): memcmp on creator, full decode
3. A single pool by address

Decode failures are skipped and counted, never fatal. A FetchError aborts
the call and leaves the cache as it was.
"""

import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from .cache import CacheEntry, QueryCache
from .config import ProjectorConfig, load_config
from .decoder import (
    CREATOR_OFFSET,
    OPEN_STAGE_OFFSET,
    DecodeBatch,
    DecodeError,
    decode_batch,
    decode_pool_record,
)
from .models import Identity, PoolEntry, Stage
from .rpc import FetchError, MemcmpFilter, SolanaRpcClient

logger = logging.getLogger(__name__)


def open_pools_filter() -> MemcmpFilter:
    """
    stage byte == 0 at the fixed no-winner offset.

    Only sound because an Open pool never has a winner, so its presence tag
    is always 0 and the status byte always sits at OPEN_STAGE_OFFSET.
    """
    return MemcmpFilter(offset=OPEN_STAGE_OFFSET, data=bytes([Stage.OPEN.value]))


def creator_filter(creator: Identity) -> MemcmpFilter:
    return MemcmpFilter(offset=CREATOR_OFFSET, data=creator.raw)


def sort_open_pools(entries: List[PoolEntry]) -> List[PoolEntry]:
    """Most recent lock_time first; address breaks ties."""
    by_address = sorted(entries, key=lambda e: e.address)
    return sorted(by_address, key=lambda e: e.record.lock_time, reverse=True)


def sort_created_pools(entries: List[PoolEntry]) -> List[PoolEntry]:
    """Open pools first, then by player count (highest first)."""
    return sorted(
        entries,
        key=lambda e: (0 if e.record.is_open else 1, -e.record.participant_count, e.address),
    )


class PoolProjector:
    """
    Reads pools through a fetcher and keeps the open-pools listing cached.

    The fetcher needs fetch_accounts(program_id, filters) and
    fetch_account(address); SolanaRpcClient is the default.

    Safe to share between threads: the cache slot and the counters each
    sit behind their own lock. Timings come from the injected clock.
    """

    def __init__(
        self,
        config: ProjectorConfig = None,
        fetcher=None,
        cache: Optional[QueryCache] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or load_config()
        self.fetcher = fetcher or SolanaRpcClient(self.config)
        self.cache = cache or QueryCache(self.config.cache_ttl_seconds)
        self.clock = clock

        self.stats: Dict[str, float] = {
            "bulk_loads": 0,
            "cache_hits": 0,
            "cache_misses": 0,
            "accounts_fetched": 0,
            "accounts_decoded": 0,
            "decode_failures": 0,
            "skipped_not_open": 0,
            "last_duration_ms": 0.0,
        }
        self.last_batch: Optional[DecodeBatch] = None
        # Figures for the most recent load_open_pools call only
        self.last_load: Dict = self._load_report(from_cache=False)
        self._lock = threading.RLock()

    @staticmethod
    def _load_report(from_cache: bool, accounts_fetched: int = 0,
                     decode_failures: int = 0, duration_ms: float = 0.0) -> Dict:
        return {
            "from_cache": from_cache,
            "accounts_fetched": accounts_fetched,
            "decode_failures": decode_failures,
            "duration_ms": duration_ms,
        }

    def load_open_pools(self, force_refresh: bool = False) -> List[PoolEntry]:
        """
        Open pools, newest lock_time first.

        Args:
            force_refresh: Skip the cache check entirely and refetch.

        Raises:
            FetchError: the fetcher failed; the cache is left untouched.
        """
        if not force_refresh:
            entry = self.cache.get(self.clock())
            if entry is not None:
                with self._lock:
                    self.stats["cache_hits"] += 1
                    self.last_load = self._load_report(from_cache=True)
                logger.debug(f"Returning {len(entry)} open pools from cache")
                return list(entry.records)

        with self._lock:
            self.stats["cache_misses"] += 1
        start = self.clock()

        raw = self.fetcher.fetch_accounts(self.config.program_id, [open_pools_filter()])
        limited = raw[:self.config.max_results]
        if len(raw) > len(limited):
            logger.info(f"Capped {len(raw)} accounts to {len(limited)}")

        batch = decode_batch((a.address, a.data) for a in limited)

        open_entries = [e for e in batch.entries if e.record.stage is Stage.OPEN]
        skipped = len(batch.entries) - len(open_entries)
        if skipped:
            logger.warning(f"Dropped {skipped} non-open accounts that passed the stage filter")

        result = sort_open_pools(open_entries)
        captured_at = self.clock()
        self.cache.put(CacheEntry(records=tuple(result), captured_at=captured_at))

        duration_ms = (captured_at - start) * 1000
        with self._lock:
            self.last_batch = batch
            self.last_load = self._load_report(
                from_cache=False,
                accounts_fetched=len(limited),
                decode_failures=batch.failure_count,
                duration_ms=duration_ms,
            )
            self.stats["bulk_loads"] += 1
            self.stats["accounts_fetched"] += len(limited)
            self.stats["accounts_decoded"] += len(batch.entries)
            self.stats["decode_failures"] += batch.failure_count
            self.stats["skipped_not_open"] += skipped
            self.stats["last_duration_ms"] = duration_ms

        logger.info(
            f"Loaded {len(result)} open pools from {len(limited)} accounts "
            f"({batch.failure_count} undecodable) in {duration_ms:.0f}ms"
        )
        return result

    def find_created_pools(self, creator: Identity) -> List[PoolEntry]:
        """
        Every pool created by `creator`, any stage.

        Decodes through the presence tag: no fixed stage offset is assumed.
        """
        raw = self.fetcher.fetch_accounts(self.config.program_id, [creator_filter(creator)])
        batch = decode_batch((a.address, a.data) for a in raw)
        with self._lock:
            self.last_batch = batch
            self.stats["decode_failures"] += batch.failure_count

        # node-side filter is not trusted
        mine = [e for e in batch.entries if e.record.creator == creator]
        logger.info(f"Found {len(mine)} pools created by {creator.short()}")
        return sort_created_pools(mine)

    def load_pool(self, address: str) -> PoolEntry:
        """
        Fetch and decode one pool.

        Raises:
            FetchError: RPC failure or no such account
            DecodeError: account exists but is not a valid bet account
        """
        account = self.fetcher.fetch_account(address)
        if account is None:
            raise FetchError(f"Account {address} not found")
        try:
            record = decode_pool_record(account.data)
        except DecodeError as e:
            logger.warning(f"Account {address} is not a bet account: {e}")
            raise
        return PoolEntry(address=address, record=record)

    def invalidate_cache(self):
        self.cache.invalidate()
