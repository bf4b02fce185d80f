"""
Metrics Module - Logging and Reporting

Handles:
- JSONL logging of bulk loads, decode failures and errors
- Console reporting of pools and classifications
"""

import json
import logging
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional

from .classifier import Classification
from .config import ProjectorConfig, load_config
from .decoder import DecodeBatch
from .explorer import explorer_address_url
from .models import PoolEntry

logger = logging.getLogger(__name__)


LAMPORTS_PER_SOL = 1_000_000_000


def lamports_to_sol(lamports: int) -> Decimal:
    """Exact conversion for display. Never feed the result back into logic."""
    return Decimal(lamports) / Decimal(LAMPORTS_PER_SOL)


def format_lock_time(lock_time: int) -> str:
    """Local time for display; raw seconds when the platform cannot represent it."""
    try:
        return datetime.fromtimestamp(lock_time).strftime("%Y-%m-%d %H:%M:%S")
    except (OverflowError, OSError, ValueError):
        return f"{lock_time} (unix seconds)"


class MetricsLogger:
    """
    Logs projector activity to a JSONL file for analysis.

    File format: One JSON object per line, with timestamp and event type.
    """

    def __init__(self, config: ProjectorConfig = None):
        self.config = config or load_config()
        self.metrics_file = Path(self.config.metrics_file)

        # Ensure directory exists
        self.metrics_file.parent.mkdir(parents=True, exist_ok=True)

    def _write_event(self, event_type: str, data: Dict):
        """Write an event to the JSONL file."""
        event = {
            "timestamp": datetime.now().isoformat(),
            "event_type": event_type,
            **data
        }

        with open(self.metrics_file, "a") as f:
            f.write(json.dumps(event) + "\n")

    def log_bulk_load(self, pools: List[PoolEntry], load: Dict):
        """One load_open_pools call; `load` is PoolProjector.last_load."""
        self._write_event("bulk_load", {
            "pools": len(pools),
            "from_cache": load.get("from_cache", False),
            "accounts_fetched": load.get("accounts_fetched", 0),
            "decode_failures": load.get("decode_failures", 0),
            "duration_ms": load.get("duration_ms", 0.0),
        })

    def log_decode_failures(self, batch: Optional[DecodeBatch]):
        """One event per account that failed to decode."""
        if batch is None:
            return
        for failure in batch.failures:
            self._write_event("decode_failure", failure.to_dict())

    def log_error(self, error: str, context: Dict = None):
        """Log an error."""
        self._write_event("error", {
            "error": error,
            "context": context or {},
        })


class ConsoleReporter:
    """
    Prints formatted reports to console.
    """

    def __init__(self, cluster: str = "devnet"):
        self.cluster = cluster

    def print_pools(self, title: str, pools: List[PoolEntry]):
        print(f"\n{'='*72}")
        print(f"{title} | {datetime.now().strftime('%H:%M:%S')}")
        print(f"{'='*72}")
        if not pools:
            print("No pools found.")
            return

        print(f"{'ADDRESS':<46} {'STAGE':<10} {'POOL (SOL)':>12} {'PLAYERS':>8}")
        for entry in pools:
            record = entry.record
            print(
                f"{entry.address:<46} {record.stage.label:<10} "
                f"{lamports_to_sol(record.total_pool):>12.4f} {record.participant_count:>8}"
            )

    def print_pool_detail(self, entry: PoolEntry, classification: Classification):
        record = entry.record
        lock = format_lock_time(record.lock_time)

        print(f"\n{'='*60}")
        print(f"POOL {entry.address}")
        print(f"{'='*60}")
        print(f"Explorer:      {explorer_address_url(entry.address, self.cluster)}")
        print(f"Stage:         {classification.display_stage.label.upper()}")
        print(f"Mode:          {classification.reveal_mode.value}")
        print(f"Creator:       {record.creator}")
        print(f"Arbiter:       {record.arbiter}")
        print(f"Min deposit:   {lamports_to_sol(record.min_deposit):.4f} SOL")
        print(f"Total pool:    {lamports_to_sol(record.total_pool):.4f} SOL")
        print(f"Players:       {record.participant_count}")
        print(f"Lock time:     {lock}")
        if record.winner_selection is not None:
            print(f"Winning door:  {record.winner_selection}")

        print("\nActions:")
        print(f"  Cancel:       {'yes' if classification.can_cancel else 'no'}")
        print(f"  Reveal:       {'yes' if classification.can_reveal else 'no'}")
        print(f"  Auto-reveal:  {'yes' if classification.can_auto_reveal else 'no'}")
        print(f"  Claim:        {'yes' if classification.can_claim else 'no'}")
        if classification.did_win is not None:
            print(f"  Result:       {'WON' if classification.did_win else 'lost'}")
        if classification.seconds_until_lock > 0 and record.is_open:
            print(f"  Locks in:     {classification.seconds_until_lock}s")
        for issue in classification.anomalies:
            print(f"  [WARN] {issue}")
