"""
Configuration for the Block Battle pool projector.

All tunable knobs are centralized here.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml


@dataclass
class ProjectorConfig:
    """
    Configuration for reading Block Battle pools.

    Defaults target devnet. program_id has no default and must be set
    (YAML or CLI) before anything is fetched.
    """

    # === RPC ===
    rpc_url: str = "https://api.devnet.solana.com"
    program_id: str = ""
    cluster: str = "devnet"  # Used for explorer links
    request_timeout: float = 15.0  # Seconds per RPC call

    # === Open-pools cache ===
    cache_ttl_seconds: float = 30.0
    max_results: int = 50  # Cap on raw accounts processed per bulk load

    # === Game ===
    total_doors: int = 25

    # === Logging ===
    log_level: str = "INFO"
    log_file: str = "block_battle.log"
    metrics_file: str = "block_battle_metrics.jsonl"

    def __post_init__(self):
        if self.cache_ttl_seconds <= 0:
            raise ValueError(f"cache_ttl_seconds must be positive, got {self.cache_ttl_seconds}")
        if self.max_results <= 0:
            raise ValueError(f"max_results must be positive, got {self.max_results}")
        if self.total_doors <= 0:
            raise ValueError(f"total_doors must be positive, got {self.total_doors}")

    @classmethod
    def from_yaml(cls, path: str) -> "ProjectorConfig":
        """Load config from YAML file."""
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        return cls(**{k: v for k, v in data.items() if hasattr(cls, k)})

    def to_yaml(self, path: str):
        """Save config to YAML file."""
        data = {
            "rpc_url": self.rpc_url,
            "program_id": self.program_id,
            "cluster": self.cluster,
            "request_timeout": self.request_timeout,
            "cache_ttl_seconds": self.cache_ttl_seconds,
            "max_results": self.max_results,
            "total_doors": self.total_doors,
            "log_level": self.log_level,
            "log_file": self.log_file,
            "metrics_file": self.metrics_file,
        }
        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def print_summary(self):
        """Print config summary for logging."""
        print("\n=== Block Battle Projector Config ===")
        print(f"RPC: {self.rpc_url} ({self.cluster})")
        print(f"Program: {self.program_id or '(not set)'}")
        print(f"Cache TTL: {self.cache_ttl_seconds:.0f}s")
        print(f"Max results: {self.max_results}")
        print(f"Doors: {self.total_doors}")
        print("=====================================\n")


def load_config(path: Optional[str] = None) -> ProjectorConfig:
    """Load config from file or return default."""
    if path and Path(path).exists():
        return ProjectorConfig.from_yaml(path)
    return ProjectorConfig()
