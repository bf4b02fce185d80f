"""
Block Battle Pool Projector

Read-only client for Block Battle bet accounts.
Decodes raw account bytes, classifies what a wallet can do with a pool,
and caches the open-pools listing for a short time.

Pipeline:
- Fetch: getProgramAccounts with a stage == Open memcmp filter
- Decode: per-record, malformed accounts are skipped and counted
- Sort: lock_time descending, address ascending on ties
- Cache: single slot, TTL + manual invalidation
"""

__version__ = "0.1.0"
