"""Generation stepping engine.

The Stepper drives a Grid with a compiled Rule. One ``step()`` evaluates the
rule for every cell against the read-only ``current`` buffer, writes results
into disjoint slots of ``next``, then commits. Cells are fanned out over a
thread pool in chunks; each worker thread keeps its own RuleContext. The
commit is a barrier that runs only after every chunk has finished.

State machine::

    IDLE --compile+resize--> READY --step--> RUNNING --> READY
                                                    \\--> FAULTED --reset--> IDLE
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple, Union

from ..config import EngineConfig
from ..errors import (CompileError, RuleFault, RuleError, StepperFaulted,
                      StepperStateError, TagMismatch)
from ..scripting.rules import Rule, compile_rule
from .grid import Grid
from .topology import Coordinate, Topology
from .value import Value, ValueKind, default_for

logger = logging.getLogger(__name__)


class StepperState(Enum):
    """Lifecycle states of a Stepper."""
    IDLE = "idle"
    READY = "ready"
    RUNNING = "running"
    FAULTED = "faulted"


class CellFault(NamedTuple):
    """Record of one failed cell evaluation."""
    coord: Coordinate
    kind: str
    message: str


@dataclass
class StepReport:
    """Outcome of one generation step.

    Attributes:
        generation: Generation counter after the step
        cells: Cells evaluated
        timeouts: Cells whose rule call exceeded its budget
        errors: Cells whose rule call raised
        unsupported: Cells whose result could not be converted
        cancelled: True if the step was cancelled and nothing was committed
        elapsed: Wall-clock seconds spent
        samples: Up to ``fault_samples`` CellFault records
    """

    generation: int
    cells: int = 0
    timeouts: int = 0
    errors: int = 0
    unsupported: int = 0
    cancelled: bool = False
    elapsed: float = 0.0
    samples: List[CellFault] = field(default_factory=list)

    @property
    def fault_count(self) -> int:
        """Total per-cell faults recorded during the step."""
        return self.timeouts + self.errors + self.unsupported

    def merge(self, other: "StepReport", sample_limit: int) -> None:
        """Fold a worker's partial tally into this report."""
        self.cells += other.cells
        self.timeouts += other.timeouts
        self.errors += other.errors
        self.unsupported += other.unsupported
        room = max(0, sample_limit - len(self.samples))
        self.samples.extend(other.samples[:room])

    def record(self, coord: Coordinate, fault: RuleFault, sample_limit: int) -> None:
        if fault.kind == "timeout":
            self.timeouts += 1
        elif fault.kind == "unsupported":
            self.unsupported += 1
        else:
            self.errors += 1
        if len(self.samples) < sample_limit:
            self.samples.append(CellFault(coord, fault.kind, str(fault)))

    def summary(self) -> str:
        """One-line human-readable summary."""
        if self.cancelled:
            return f"generation {self.generation}: cancelled"
        return (f"generation {self.generation}: {self.cells} cells, {self.fault_count} faults "
                f"(timeouts={self.timeouts}, errors={self.errors}, unsupported={self.unsupported}) "
                f"in {self.elapsed * 1000:.1f}ms")


class Stepper:
    """Runs a compiled Rule over a Grid one generation at a time.

    Attributes:
        config: Budgets, worker count and chunking
        state: Current StepperState
        grid: Grid being stepped (None until ``resize``)
        rule: Installed Rule (None while Idle)
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        """Initialize an idle stepper.

        Args:
            config: Engine configuration (environment defaults if None)
        """
        self.config = config or EngineConfig.from_env()
        self.state = StepperState.IDLE
        self.grid: Optional[Grid] = None
        self.rule: Optional[Rule] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._local = threading.local()
        self._lock = threading.Lock()
        self._worker_count = 0

    # -- lifecycle -----------------------------------------------------------

    def _refresh_state(self) -> None:
        if self.state is StepperState.FAULTED:
            return
        ready = self.rule is not None and self.grid is not None
        self.state = StepperState.READY if ready else StepperState.IDLE

    def _fault(self, error: BaseException) -> None:
        self.state = StepperState.FAULTED
        logger.error(f"Stepper faulted: {error}")

    def _require_usable(self) -> None:
        if self.state is StepperState.FAULTED:
            raise StepperFaulted("Stepper is faulted; call reset() first")
        if self.state is StepperState.RUNNING:
            raise StepperStateError("A step is already in progress")

    def compile(self, source: str, kind: Union[ValueKind, str, None] = None) -> Rule:
        """Compile and install a rule script.

        On failure the previously installed Rule (if any) stays active.

        Raises:
            CompileError: If the script can't be compiled
        """
        self._require_usable()
        neighbor_count = self.grid.topology.neighbor_count if self.grid else 8
        try:
            rule = compile_rule(source, kind=kind, neighbor_count=neighbor_count, config=self.config)
        except CompileError as e:
            logger.warning(f"Rule compilation failed, keeping previous rule: {e}")
            raise
        self.rule = rule
        self._refresh_state()
        return rule

    def resize(self, topology: Topology, kind: Union[ValueKind, str, None] = None) -> Grid:
        """Create or resize the grid; history is discarded.

        Args:
            topology: New grid shape
            kind: Value kind; defaults to the installed rule's kind, else the
                grid's current kind, else bool
        """
        self._require_usable()
        if kind is None:
            if self.rule is not None:
                kind = self.rule.kind
            elif self.grid is not None:
                kind = self.grid.kind
            else:
                kind = ValueKind.BOOL
        if self.grid is None:
            self.grid = Grid(topology, ValueKind.parse(kind))
        else:
            self.grid.resize(topology, ValueKind.parse(kind))
        self._refresh_state()
        return self.grid

    def reset(self) -> None:
        """Return to Idle: drop the rule and clear generation history."""
        if self.state is StepperState.RUNNING:
            raise StepperStateError("Cannot reset while a step is in progress")
        self.rule = None
        if self.grid is not None:
            self.grid.resize(self.grid.topology)
        self.state = StepperState.IDLE
        logger.info("Stepper reset to idle")

    def close(self) -> None:
        """Shut down the worker pool."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> "Stepper":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -- reads ---------------------------------------------------------------

    def get(self, coord: Tuple[int, int]) -> Value:
        """Current Value of a cell."""
        return self._require_grid().get(coord)

    def generation(self) -> int:
        """Completed generations since the last resize."""
        return self.grid.generation if self.grid is not None else 0

    def _require_grid(self) -> Grid:
        if self.grid is None:
            raise StepperStateError("No grid; call resize() first")
        return self.grid

    def _require_ready(self) -> Tuple[Grid, Rule]:
        self._require_usable()
        if self.state is not StepperState.READY:
            raise StepperStateError("Stepper needs a compiled rule and a sized grid")
        return self.grid, self.rule

    # -- per-thread contexts ---------------------------------------------------

    def _context(self, rule: Rule):
        local = self._local
        if getattr(local, "rule", None) is not rule:
            with self._lock:
                worker = getattr(local, "worker", None)
                if worker is None:
                    worker = local.worker = self._worker_count
                    self._worker_count += 1
            seed = None if self.config.seed is None else self.config.seed + worker
            local.context = rule.new_context(seed)
            local.rule = rule
        return local.context

    def _pool(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.config.workers,
                                                thread_name_prefix="cellscript")
        return self._executor

    # -- stepping ------------------------------------------------------------

    def _evaluate_chunk(self, grid: Grid, rule: Rule, cells: Sequence[Value],
                        coords: Sequence[Coordinate], stop: threading.Event,
                        cancel: Optional[threading.Event]) -> StepReport:
        context = self._context(rule)
        table = grid.topology.neighbor_table
        width = grid.width
        dead = default_for(grid.kind)
        generation = grid.generation
        limit = self.config.fault_samples
        tally = StepReport(generation)

        for coord in coords:
            if stop.is_set() or (cancel is not None and cancel.is_set()):
                break
            index = coord[0] * width + coord[1]
            neighbors = [cells[i] if i >= 0 else dead for i in table[index]]
            try:
                value = context.evaluate(cells[index], neighbors, generation)
            except RuleFault as fault:
                logger.debug(f"Cell {tuple(coord)} fault: {fault}")
                tally.record(coord, fault, limit)
                value = dead
            grid.set_next(coord, value)
            tally.cells += 1
        return tally

    def step(self, cancel: Optional[threading.Event] = None,
             order: Optional[Iterable[Tuple[int, int]]] = None) -> StepReport:
        """Advance one generation.

        Args:
            cancel: Event checked before each cell; when set the step is
                abandoned and ``current`` is left unchanged
            order: Explicit cell evaluation order (a permutation of all cells)

        Returns:
            StepReport with per-cell fault counts

        Raises:
            StepperStateError: If not Ready
            FatalError: On a broken grid/rule invariant; the Stepper is Faulted
        """
        grid, rule = self._require_ready()
        started = time.perf_counter()

        if rule.kind is not grid.kind:
            error = TagMismatch(f"Rule operates on {rule.kind.value} but grid holds {grid.kind.value}")
            self._fault(error)
            raise error

        if order is None:
            coords = list(grid.topology.coordinates())
        else:
            coords = [Coordinate(*c) for c in order]
            outside = [c for c in coords if not grid.topology.contains(c)]
            if outside:
                raise ValueError(f"order contains coordinates outside the grid: {tuple(outside[0])}")
            if len(coords) != grid.topology.size or len(set(coords)) != len(coords):
                raise ValueError("order must list every cell exactly once")

        self.state = StepperState.RUNNING
        report = StepReport(grid.generation)
        stop = threading.Event()
        try:
            cells = grid.snapshot()
            size = self.config.chunk_size
            chunks = [coords[i:i + size] for i in range(0, len(coords), size)]
            if self.config.workers == 1 or len(chunks) == 1:
                partials = [self._evaluate_chunk(grid, rule, cells, chunk, stop, cancel)
                            for chunk in chunks]
            else:
                futures = [self._pool().submit(self._evaluate_chunk, grid, rule, cells, chunk, stop, cancel)
                           for chunk in chunks]
                partials = []
                first_error = None
                for future in futures:
                    try:
                        partials.append(future.result())
                    except Exception as e:
                        stop.set()
                        first_error = first_error or e
                if first_error is not None:
                    raise first_error
        except Exception as e:
            grid.discard_next()
            self._fault(e)
            raise

        for partial in partials:
            report.merge(partial, self.config.fault_samples)
        report.elapsed = time.perf_counter() - started

        if cancel is not None and cancel.is_set():
            grid.discard_next()
            report.cancelled = True
            self.state = StepperState.READY
            logger.warning(f"Step cancelled after {report.cells} cells; generation stays {grid.generation}")
            return report

        grid.commit()
        report.generation = grid.generation
        self.state = StepperState.READY
        if report.fault_count:
            logger.warning(report.summary())
        else:
            logger.debug(report.summary())
        return report

    def run(self, generations: int, cancel: Optional[threading.Event] = None) -> List[StepReport]:
        """Advance several generations; stops early if cancelled."""
        reports = []
        for _ in range(generations):
            report = self.step(cancel=cancel)
            reports.append(report)
            if report.cancelled:
                break
        return reports

    # -- editing -------------------------------------------------------------

    def set_cell(self, coord: Tuple[int, int], value) -> None:
        """Write one cell of ``current``; the generation counter is unchanged."""
        self._require_usable()
        self._require_grid().set(coord, value)

    def cycle(self, coord: Tuple[int, int]) -> Value:
        """Apply the rule's ``next(self)`` hook to one cell.

        Raises:
            RuleFault: If the hook is missing or fails; the cell is unchanged
        """
        grid, rule = self._require_ready()
        value = self._context(rule).call_hook("next", grid.get(coord))
        self._store(grid, coord, value)
        return grid.get(coord)

    def _store(self, grid: Grid, coord: Tuple[int, int], value: Value) -> None:
        try:
            grid.set(coord, value)
        except TagMismatch as e:
            self._fault(e)
            raise

    def randomize(self, seed: Optional[int] = None) -> StepReport:
        """Fill ``current`` through the rule's ``randomize()`` hook.

        Cells whose hook call faults receive the default Value and are counted.

        Raises:
            RuleError: If the script doesn't define ``randomize()``
        """
        grid, rule = self._require_ready()
        if not rule.has_hook("randomize"):
            raise RuleError("script does not define randomize()")
        context = rule.new_context(self.config.seed if seed is None else seed)
        report = StepReport(grid.generation)
        dead = default_for(grid.kind)
        for coord in grid.topology.coordinates():
            try:
                value = context.call_hook("randomize")
            except RuleFault as fault:
                report.record(coord, fault, self.config.fault_samples)
                value = dead
            self._store(grid, coord, value)
            report.cells += 1
        logger.info(f"Randomized {report.cells} cells ({report.fault_count} faults)")
        return report

    def __repr__(self) -> str:
        return f"Stepper(state={self.state.value}, grid={self.grid!r}, rule={self.rule!r})"
