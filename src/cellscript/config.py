"""Engine configuration.

Values are clamped into their valid ranges on construction. ``from_env`` reads
overrides from ``CELLSCRIPT_*`` environment variables.
"""

import logging
import os
from typing import Any, Dict, Optional

import psutil

logger = logging.getLogger(__name__)


def default_workers() -> int:
    """Worker threads for per-cell fan-out: physical cores when known."""
    return psutil.cpu_count(logical=False) or psutil.cpu_count() or 1


class EngineConfig:
    """Configuration for rule evaluation and stepping."""

    def __init__(self,
                 max_steps: int = 10000,
                 time_limit: float = 0.25,
                 workers: Optional[int] = None,
                 chunk_size: int = 256,
                 fault_samples: int = 8,
                 seed: Optional[int] = None):
        """Initialize engine configuration.

        Args:
            max_steps: Script lines one rule call may execute (1+)
            time_limit: Wall-clock seconds one rule call may take (> 0)
            workers: Worker threads per step (1+, physical core count if None).
                Rule bodies are pure Python and hold the GIL, so extra workers
                overlap waiting and bookkeeping but do not speed up evaluation
                on a standard CPython build; results are identical for any count.
            chunk_size: Cells handed to a worker per task (1+)
            fault_samples: Per-step CellFault records kept in a StepReport (0+)
            seed: Seed for the ``random`` generator exposed to scripts
        """
        self.max_steps = max(1, int(max_steps))
        self.time_limit = max(1e-3, float(time_limit))
        self.workers = max(1, int(workers)) if workers is not None else default_workers()
        self.chunk_size = max(1, int(chunk_size))
        self.fault_samples = max(0, int(fault_samples))
        self.seed = seed

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Create configuration from environment variables."""
        workers = os.getenv('CELLSCRIPT_WORKERS')
        seed = os.getenv('CELLSCRIPT_SEED')
        config = cls(
            max_steps=int(os.getenv('CELLSCRIPT_MAX_STEPS', '10000')),
            time_limit=float(os.getenv('CELLSCRIPT_TIME_LIMIT', '0.25')),
            workers=int(workers) if workers else None,
            chunk_size=int(os.getenv('CELLSCRIPT_CHUNK_SIZE', '256')),
            fault_samples=int(os.getenv('CELLSCRIPT_FAULT_SAMPLES', '8')),
            seed=int(seed) if seed else None,
        )
        logger.debug(f"Loaded {config!r} from environment")
        return config

    def copy(self) -> "EngineConfig":
        """Create a copy of the configuration."""
        return EngineConfig(**self.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'max_steps': self.max_steps,
            'time_limit': self.time_limit,
            'workers': self.workers,
            'chunk_size': self.chunk_size,
            'fault_samples': self.fault_samples,
            'seed': self.seed,
        }

    def __repr__(self) -> str:
        return (f"EngineConfig(max_steps={self.max_steps}, time_limit={self.time_limit}, "
                f"workers={self.workers}, chunk_size={self.chunk_size})")
