"""JSON checkpoints of a running simulation.

A checkpoint stores everything needed to resume: topology, value kind, rule
source, generation counter and the current buffer. Restoring re-issues the
same calls a collaborator would make by hand: resize, compile, bulk-load.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Union

from ..core.stepper import Stepper
from ..core.topology import Topology
from ..core.value import ValueKind

logger = logging.getLogger(__name__)

CHECKPOINT_VERSION = 1


@dataclass
class Checkpoint:
    """Serializable simulation snapshot."""

    topology: Dict[str, Any]
    kind: str
    source: str
    generation: int
    cells: List[List[Any]] = field(default_factory=list)
    version: int = CHECKPOINT_VERSION

    @classmethod
    def capture(cls, stepper: Stepper) -> "Checkpoint":
        """Snapshot a stepper that has a grid and a compiled rule.

        Raises:
            ValueError: If the stepper has no grid or no rule
        """
        if stepper.grid is None or stepper.rule is None:
            raise ValueError("Checkpoint requires a sized grid and a compiled rule")
        grid = stepper.grid
        return cls(
            topology=grid.topology.to_dict(),
            kind=grid.kind.value,
            source=stepper.rule.source,
            generation=grid.generation,
            cells=grid.to_native(),
        )

    def restore(self, stepper: Stepper) -> None:
        """Rebuild a stepper's grid and rule from this checkpoint.

        Raises:
            CompileError: If the stored script no longer compiles
            TagMismatch: If stored cells don't match the stored kind
        """
        topology = Topology.from_dict(self.topology)
        kind = ValueKind.parse(self.kind)
        stepper.resize(topology, kind)
        stepper.compile(self.source, kind=kind)
        stepper.grid.load(self.cells, generation=self.generation)
        logger.info(f"Restored checkpoint at generation {self.generation} ({topology!r})")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Checkpoint":
        """Create checkpoint from dictionary.

        Raises:
            ValueError: On missing fields or an unknown version
        """
        version = d.get("version", CHECKPOINT_VERSION)
        if version != CHECKPOINT_VERSION:
            raise ValueError(f"Unsupported checkpoint version {version}")
        try:
            return cls(
                topology=dict(d["topology"]),
                kind=str(d["kind"]),
                source=str(d["source"]),
                generation=int(d["generation"]),
                cells=list(d["cells"]),
            )
        except KeyError as e:
            raise ValueError(f"Checkpoint missing field {e}") from e


def save(stepper: Stepper, path: Union[str, Path]) -> Path:
    """Write a checkpoint of ``stepper`` to a JSON file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    checkpoint = Checkpoint.capture(stepper)
    with open(path, 'w') as f:
        json.dump(checkpoint.to_dict(), f, indent=2)
    logger.info(f"Checkpoint saved to: {path}")
    return path


def load(stepper: Stepper, path: Union[str, Path]) -> Checkpoint:
    """Read a JSON checkpoint and restore it into ``stepper``."""
    with open(path) as f:
        checkpoint = Checkpoint.from_dict(json.load(f))
    checkpoint.restore(stepper)
    return checkpoint
