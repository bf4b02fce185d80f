#!/usr/bin/env python3
"""
Block Battle Pool Projector - Main Runner

Read-only views over Block Battle bet accounts.

Usage:
    python run_projector.py                          # List open pools
    python run_projector.py --refresh                # Bypass the cache
    python run_projector.py --pool ADDRESS           # Show one pool
    python run_projector.py --pool ADDRESS --caller PUBKEY --door 7
    python run_projector.py --creator PUBKEY         # Pools created by a wallet

Nothing here signs or sends transactions.
"""

import argparse
import logging
import sys
import time

from block_battle.classifier import classify
from block_battle.config import ProjectorConfig, load_config
from block_battle.decoder import DecodeError
from block_battle.metrics import ConsoleReporter, MetricsLogger
from block_battle.models import Identity, Participation
from block_battle.projector import PoolProjector
from block_battle.rpc import FetchError


def setup_logging(config: ProjectorConfig):
    """Configure logging."""
    log_format = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

    handlers = [
        logging.StreamHandler(sys.stdout),
    ]

    if config.log_file:
        handlers.append(logging.FileHandler(config.log_file))

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper()),
        format=log_format,
        handlers=handlers,
    )

    # Reduce noise from requests library
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)


def show_open_pools(projector: PoolProjector, metrics: MetricsLogger,
                    reporter: ConsoleReporter, force_refresh: bool):
    pools = projector.load_open_pools(force_refresh=force_refresh)
    from_cache = projector.last_load["from_cache"]

    metrics.log_bulk_load(pools, projector.last_load)
    if not from_cache:
        metrics.log_decode_failures(projector.last_batch)

    reporter.print_pools("OPEN POOLS", pools)
    if projector.last_batch and projector.last_batch.failure_count and not from_cache:
        print(f"\n{projector.last_batch.failure_count} accounts could not be decoded (see log)")


def show_pool(projector: PoolProjector, reporter: ConsoleReporter, args):
    entry = projector.load_pool(args.pool)

    caller = Identity.from_base58(args.caller) if args.caller else None
    participation = None
    if args.door is not None:
        participation = Participation(chosen_door=args.door, has_claimed=args.claimed)

    classification = classify(
        entry.record,
        now=int(time.time()),
        caller=caller,
        participation=participation,
        total_doors=projector.config.total_doors,
    )
    reporter.print_pool_detail(entry, classification)


def main():
    parser = argparse.ArgumentParser(description="Block Battle pool projector")
    parser.add_argument("--config", type=str, help="Path to YAML config")
    parser.add_argument("--rpc-url", type=str, help="Override RPC endpoint")
    parser.add_argument("--program-id", type=str, help="Override program id")
    parser.add_argument("--refresh", action="store_true", help="Force refresh of open pools")
    parser.add_argument("--pool", type=str, help="Show a single pool by address")
    parser.add_argument("--caller", type=str, help="Wallet to classify the pool for")
    parser.add_argument("--door", type=int, help="Door the caller chose")
    parser.add_argument("--claimed", action="store_true", help="Caller already claimed")
    parser.add_argument("--creator", type=str, help="List pools created by this wallet")
    args = parser.parse_args()

    config = load_config(args.config)
    if args.rpc_url:
        config.rpc_url = args.rpc_url
    if args.program_id:
        config.program_id = args.program_id

    setup_logging(config)

    if not config.program_id and not args.pool:
        print("program_id is not set (use --program-id or a config file)")
        return 2

    projector = PoolProjector(config)
    metrics = MetricsLogger(config)
    reporter = ConsoleReporter(config.cluster)

    try:
        if args.pool:
            show_pool(projector, reporter, args)
        elif args.creator:
            pools = projector.find_created_pools(Identity.from_base58(args.creator))
            reporter.print_pools("YOUR POOLS", pools)
        else:
            show_open_pools(projector, metrics, reporter, args.refresh)
    except FetchError as e:
        logging.error(f"Fetch failed, try again: {e}")
        metrics.log_error(str(e), {"pool": args.pool, "creator": args.creator})
        return 1
    except DecodeError as e:
        logging.error(f"Not a Block Battle pool: {e}")
        return 1
    except ValueError as e:
        logging.error(str(e))
        return 2

    return 0


if __name__ == "__main__":
    sys.exit(main())
