"""Double-buffered cell storage.

The grid holds two equally-shaped numpy buffers: ``current`` (what the
presentation layer reads and rules see) and ``next`` (what the stepper writes
during a generation). ``commit()`` swaps them. Scalar kinds use native numpy
dtypes; sequence kinds use object arrays holding ``Value`` instances.
"""

import logging
from typing import Any, Iterable, Iterator, List, Optional, Tuple

import numpy as np

from ..errors import OutOfBounds, TagMismatch, UnsupportedKind
from .topology import Coordinate, Topology
from .value import DTYPES, Value, ValueKind, coerce, default_for, equals

logger = logging.getLogger(__name__)


class Grid:
    """Tagged, double-buffered grid of cell Values.

    Attributes:
        topology: Shape and neighborhood configuration
        kind: Value kind shared by every cell
        generation: Completed generations since the last resize
    """

    def __init__(self, topology: Topology, kind: ValueKind = ValueKind.BOOL):
        """Initialize grid with fresh default buffers.

        Args:
            topology: Grid shape and neighborhood
            kind: Value kind for every cell
        """
        self.topology = topology
        self.kind = ValueKind.parse(kind)
        self.generation = 0
        self._current = self._fresh_buffer()
        self._next = self._fresh_buffer()

    def _fresh_buffer(self) -> np.ndarray:
        buffer = np.empty(self.topology.shape, dtype=DTYPES[self.kind])
        self._fill_default(buffer)
        return buffer

    def _fill_default(self, buffer: np.ndarray) -> None:
        default = default_for(self.kind)
        if self.kind is ValueKind.SEQUENCE:
            buffer.fill(default)
        else:
            buffer.fill(default.payload)

    @property
    def width(self) -> int:
        return self.topology.width

    @property
    def height(self) -> int:
        return self.topology.height

    @property
    def current(self) -> np.ndarray:
        """Read-only view of the current buffer."""
        view = self._current.view()
        view.flags.writeable = False
        return view

    def _check_bounds(self, coord: Tuple[int, int]) -> Coordinate:
        row, col = coord
        if not (0 <= row < self.height and 0 <= col < self.width):
            raise OutOfBounds(f"Coordinates ({row}, {col}) out of bounds for {self.width}x{self.height} grid")
        return Coordinate(row, col)

    def _check_kind(self, value: Value) -> None:
        if value.kind is not self.kind:
            raise TagMismatch(f"Cannot store {value.kind.value} value in {self.kind.value} grid")

    def _wrap(self, raw: Any) -> Value:
        if self.kind is ValueKind.SEQUENCE:
            return raw
        if self.kind is ValueKind.BOOL:
            return Value(self.kind, bool(raw))
        if self.kind is ValueKind.INT:
            return Value(self.kind, int(raw))
        return Value(self.kind, float(raw))

    def _unwrap(self, value: Value) -> Any:
        return value if self.kind is ValueKind.SEQUENCE else value.payload

    def get(self, coord: Tuple[int, int]) -> Value:
        """Get the current Value of a cell.

        Args:
            coord: (row, col) coordinate

        Returns:
            Cell Value

        Raises:
            OutOfBounds: If coordinates are outside the grid (regardless of edge policy)
        """
        row, col = self._check_bounds(coord)
        return self._wrap(self._current[row, col])

    def set_next(self, coord: Tuple[int, int], value: Value) -> None:
        """Write a Value into the next-generation buffer.

        Raises:
            OutOfBounds: If coordinates are outside the grid
            TagMismatch: If the Value's kind differs from the grid's kind
        """
        row, col = self._check_bounds(coord)
        self._check_kind(value)
        self._next[row, col] = self._unwrap(value)

    def set(self, coord: Tuple[int, int], value: Any) -> None:
        """Write a Value (or native value) into the current buffer.

        Used by editing collaborators and checkpoint restore; never during a step.

        Raises:
            OutOfBounds: If coordinates are outside the grid
            TagMismatch: If the value's kind differs from the grid's kind
        """
        row, col = self._check_bounds(coord)
        try:
            value = coerce(value, self.kind)
        except UnsupportedKind as e:
            raise TagMismatch(str(e)) from e
        self._current[row, col] = self._unwrap(value)

    def commit(self) -> None:
        """Swap buffers, reset the new next buffer and advance the generation."""
        self._current, self._next = self._next, self._current
        self._fill_default(self._next)
        self.generation += 1
        logger.debug(f"Committed generation {self.generation}")

    def discard_next(self) -> None:
        """Drop partial next-generation writes."""
        self._fill_default(self._next)

    def resize(self, topology: Topology, kind: Optional[ValueKind] = None) -> "Grid":
        """Replace both buffers with fresh defaults and reset the generation.

        Args:
            topology: New shape/neighborhood
            kind: New value kind (keeps the current kind if None)

        Returns:
            This grid, for chaining
        """
        self.topology = topology
        if kind is not None:
            self.kind = ValueKind.parse(kind)
        self._current = self._fresh_buffer()
        self._next = self._fresh_buffer()
        self.generation = 0
        logger.info(f"Resized grid to {topology!r} holding {self.kind.value} values")
        return self

    def clear(self) -> None:
        """Reset every current cell to the default Value; the generation is kept."""
        self._fill_default(self._current)

    def load(self, cells: Iterable[Iterable[Any]], generation: int = 0) -> None:
        """Bulk-write the current buffer from rows of values.

        Args:
            cells: ``height`` rows of ``width`` Values or native values
            generation: Generation counter to restore

        Raises:
            ValueError: If the row/column counts don't match the grid
            TagMismatch: If any value has another kind
        """
        rows = [list(row) for row in cells]
        if len(rows) != self.height or any(len(row) != self.width for row in rows):
            raise ValueError(f"Cell data shape doesn't match grid size {self.topology.shape}")
        for row_index, row in enumerate(rows):
            for col_index, value in enumerate(row):
                self.set((row_index, col_index), value)
        self.generation = max(0, int(generation))

    def load_pattern(self, pattern: Iterable[Iterable[Any]], origin: Tuple[int, int] = (0, 0)) -> None:
        """Paste a rectangular block of values with its top-left corner at ``origin``.

        The block wraps around grid edges.
        """
        top, left = origin
        for d_row, row in enumerate(pattern):
            for d_col, value in enumerate(row):
                self.set(((top + d_row) % self.height, (left + d_col) % self.width), value)

    def snapshot(self) -> List[Value]:
        """Current Values in row-major order."""
        if self.kind is ValueKind.SEQUENCE:
            return list(self._current.ravel())
        return [Value(self.kind, raw) for raw in self._current.ravel().tolist()]

    def values(self) -> Iterator[Tuple[Coordinate, Value]]:
        """Iterate (coordinate, Value) pairs of the current buffer."""
        for coord, value in zip(self.topology.coordinates(), self.snapshot()):
            yield coord, value

    def to_native(self) -> List[List[Any]]:
        """Current buffer as nested lists of native values."""
        return [[self._wrap(raw).to_native() for raw in row] for row in self._current]

    def count(self, value: Any) -> int:
        """Number of current cells equal to ``value``."""
        target = coerce(value, self.kind)
        return sum(1 for _, cell in self.values() if equals(cell, target))

    def is_default(self) -> bool:
        """Check if every current cell holds the default Value."""
        return self.count(default_for(self.kind)) == self.topology.size

    def __getitem__(self, key: Tuple[int, int]) -> Value:
        """Access cell Value using grid[row, col] syntax."""
        return self.get(key)

    def __setitem__(self, key: Tuple[int, int], value: Any) -> None:
        """Set current cell using grid[row, col] = value syntax."""
        self.set(key, value)

    def __eq__(self, other: object) -> bool:
        """Check equality of topology, kind and current contents."""
        if not isinstance(other, Grid):
            return False
        if self.topology != other.topology or self.kind is not other.kind:
            return False
        return all(equals(a, b) for a, b in zip(self.snapshot(), other.snapshot()))

    def __str__(self) -> str:
        """String representation showing non-default cells as blocks."""
        dead = default_for(self.kind)
        lines = []
        for row in range(min(10, self.height)):  # Show first 10 rows
            line = ''
            for col in range(min(20, self.width)):  # Show first 20 columns
                line += '░' if equals(self.get((row, col)), dead) else '█'
            if self.width > 20:
                line += '...'
            lines.append(line)

        if self.height > 10:
            lines.append('...')

        return '\n'.join(lines)

    def __repr__(self) -> str:
        """Detailed representation for debugging."""
        return f"Grid({self.width}x{self.height}, {self.topology.kind.value}, kind={self.kind.value}, generation={self.generation})"
