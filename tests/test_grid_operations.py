"""Tests for the double-buffered Grid.

Covers bounds checking, kind enforcement, the commit/discard buffer protocol,
resizing and bulk loading.
"""

import numpy as np
import pytest

from cellscript.core.grid import Grid
from cellscript.core.topology import Topology
from cellscript.core.value import Value, ValueKind, from_native
from cellscript.errors import OutOfBounds, TagMismatch

TRUE = Value(ValueKind.BOOL, True)
FALSE = Value(ValueKind.BOOL, False)


def bool_grid(width=16, height=16, edge="wrap"):
    return Grid(Topology.square(width, height, edge=edge))


class TestGridCreation:
    """Test grid initialization and basic properties."""

    def test_default_creation(self):
        """Grid initializes with default values."""
        grid = bool_grid(32, 16)
        assert grid.width == 32
        assert grid.height == 16
        assert grid.kind is ValueKind.BOOL
        assert grid.generation == 0
        assert grid.current.shape == (16, 32)
        assert grid.is_default()

    @pytest.mark.parametrize("kind,dtype", [
        (ValueKind.BOOL, np.bool_),
        (ValueKind.INT, np.int64),
        (ValueKind.FLOAT, np.float64),
        (ValueKind.SEQUENCE, object),
    ])
    def test_buffer_dtypes(self, kind, dtype):
        """Scalar kinds use native dtypes; sequences use object arrays."""
        grid = Grid(Topology.square(3, 3), kind)
        assert grid.current.dtype == np.dtype(dtype)

    def test_kind_by_name(self):
        grid = Grid(Topology.square(2, 2), "float")
        assert grid.get((0, 0)) == Value(ValueKind.FLOAT, 0.0)


class TestGridIndexing:
    """Test grid cell access and modification."""

    def test_get_set_cells(self):
        """Basic get/set operations work."""
        grid = bool_grid()

        assert grid[0, 0] == FALSE
        assert grid[15, 15] == FALSE

        grid[5, 10] = True
        assert grid[5, 10] == TRUE
        assert grid[5, 10].payload is True
        assert grid[10, 5] == FALSE

        grid.set((5, 10), False)
        assert grid.get((5, 10)) == FALSE

    @pytest.mark.parametrize("coord", [(-1, 0), (0, -1), (16, 0), (0, 16), (100, 100)])
    def test_bounds_checking(self, coord):
        """Out-of-bounds access raises OutOfBounds regardless of edge policy."""
        grid = bool_grid(edge="wrap")
        with pytest.raises(OutOfBounds, match="out of bounds"):
            grid.get(coord)
        with pytest.raises(OutOfBounds):
            grid.set(coord, True)
        with pytest.raises(OutOfBounds):
            grid.set_next(coord, TRUE)

    def test_out_of_bounds_is_index_error(self):
        """Callers catching IndexError still see bounds failures."""
        with pytest.raises(IndexError):
            bool_grid()[16, 16]

    def test_current_is_read_only(self):
        """The exposed current buffer can't be written through."""
        grid = bool_grid()
        with pytest.raises(ValueError):
            grid.current[0, 0] = True


class TestKindEnforcement:
    """Test that grids reject values of other kinds."""

    def test_set_wrong_kind(self):
        grid = bool_grid()
        with pytest.raises(TagMismatch):
            grid.set((0, 0), 1)
        with pytest.raises(TagMismatch):
            grid.set((0, 0), [True])

    def test_set_next_wrong_kind(self):
        grid = bool_grid()
        with pytest.raises(TagMismatch, match="int value in bool grid"):
            grid.set_next((0, 0), Value(ValueKind.INT, 1))

    def test_tag_mismatch_is_type_error(self):
        with pytest.raises(TypeError):
            bool_grid().set((0, 0), 2.5)

    def test_float_grid_accepts_int_literal(self):
        """Hand-entered integer literals widen to float."""
        grid = Grid(Topology.square(2, 2), ValueKind.FLOAT)
        grid[1, 1] = 3
        assert grid[1, 1] == Value(ValueKind.FLOAT, 3.0)

    def test_sequence_cells(self):
        """Sequence grids hold nested values."""
        grid = Grid(Topology.square(2, 2), ValueKind.SEQUENCE)
        grid[0, 1] = [1.0, [2, True]]
        assert grid[0, 1] == from_native([1.0, [2, True]])
        assert grid[0, 0] == Value(ValueKind.SEQUENCE, ())
        assert grid.to_native() == [[[], [1.0, [2, True]]], [[], []]]


class TestBufferProtocol:
    """Test next-buffer writes, commit and discard."""

    def test_set_next_invisible_until_commit(self):
        """Writes to next don't affect current before commit."""
        grid = bool_grid(4, 4)
        grid.set_next((1, 2), TRUE)
        assert grid[1, 2] == FALSE

        grid.commit()
        assert grid[1, 2] == TRUE
        assert grid.generation == 1

    def test_commit_resets_next(self):
        """After commit the new next buffer holds defaults."""
        grid = bool_grid(4, 4)
        grid.set_next((0, 0), TRUE)
        grid.commit()
        grid.commit()
        assert grid[0, 0] == FALSE
        assert grid.generation == 2

    def test_discard_next(self):
        grid = bool_grid(4, 4)
        grid.set_next((3, 3), TRUE)
        grid.discard_next()
        grid.commit()
        assert grid.is_default()

    def test_clear_keeps_generation(self):
        """Clear resets cells but not the generation counter."""
        grid = bool_grid(4, 4)
        grid.commit()
        grid[2, 2] = True
        grid.clear()
        assert grid.is_default()
        assert grid.generation == 1


class TestGridResize:
    """Test resize semantics."""

    def test_resize_discards_history(self):
        """Resize resets cells to defaults and generation to zero."""
        grid = bool_grid(4, 4)
        grid[1, 1] = True
        grid.commit()

        grid.resize(Topology.hex(6, 3))
        assert grid.generation == 0
        assert grid.width == 6
        assert grid.height == 3
        assert grid.current.shape == (3, 6)
        assert grid.is_default()

    def test_resize_changes_kind(self):
        grid = bool_grid(4, 4)
        grid.resize(Topology.square(2, 2), ValueKind.INT)
        assert grid.kind is ValueKind.INT
        assert grid[0, 0] == Value(ValueKind.INT, 0)

    def test_resize_returns_grid(self):
        grid = bool_grid(4, 4)
        assert grid.resize(Topology.square(5, 5)) is grid


class TestBulkLoading:
    """Test load and load_pattern."""

    def test_load(self):
        grid = Grid(Topology.square(3, 2), ValueKind.INT)
        grid.load([[1, 2, 3], [4, 5, 6]], generation=7)
        assert grid.to_native() == [[1, 2, 3], [4, 5, 6]]
        assert grid.generation == 7

    def test_load_wrong_shape(self):
        grid = Grid(Topology.square(3, 2), ValueKind.INT)
        with pytest.raises(ValueError, match="shape"):
            grid.load([[1, 2, 3]])
        with pytest.raises(ValueError):
            grid.load([[1, 2], [3, 4]])

    def test_load_wrong_kind(self):
        grid = Grid(Topology.square(2, 1), ValueKind.INT)
        with pytest.raises(TagMismatch):
            grid.load([[1, 2.5]])

    def test_load_pattern_wraps(self):
        """Patterns pasted over an edge continue on the opposite side."""
        grid = bool_grid(4, 4)
        grid.load_pattern([[True, True], [True, False]], origin=(3, 3))
        assert grid[3, 3] == TRUE
        assert grid[3, 0] == TRUE
        assert grid[0, 3] == TRUE
        assert grid[0, 0] == FALSE
        assert grid.count(True) == 3


class TestGridQueries:
    """Test grid state query methods."""

    def test_count(self):
        grid = Grid(Topology.square(4, 4), ValueKind.INT)
        assert grid.count(0) == 16
        grid[0, 0] = 2
        grid[1, 1] = 2
        assert grid.count(2) == 2

    def test_values_row_major(self):
        grid = Grid(Topology.square(2, 2), ValueKind.INT)
        grid.load([[1, 2], [3, 4]])
        assert [(tuple(c), v.payload) for c, v in grid.values()] == [
            ((0, 0), 1), ((0, 1), 2), ((1, 0), 3), ((1, 1), 4),
        ]

    def test_snapshot(self):
        grid = bool_grid(2, 2)
        grid[1, 0] = True
        assert grid.snapshot() == [FALSE, FALSE, TRUE, FALSE]

    def test_str_marks_live_cells(self):
        grid = bool_grid(3, 2)
        grid[0, 1] = True
        assert str(grid) == '░█░\n░░░'


class TestGridEquality:
    """Test grid equality comparison."""

    def test_identity_equality(self):
        grid = bool_grid(8, 8)
        assert grid == grid

    def test_same_contents_equal(self):
        grid1 = bool_grid(8, 8)
        grid2 = bool_grid(8, 8)
        grid1[2, 3] = True
        grid2[2, 3] = True
        assert grid1 == grid2

    def test_different_kinds_inequal(self):
        """Defaults of different kinds are not equal."""
        assert Grid(Topology.square(2, 2), ValueKind.BOOL) != Grid(Topology.square(2, 2), ValueKind.INT)

    def test_different_topologies_inequal(self):
        assert bool_grid(8, 8) != bool_grid(8, 10)
        assert bool_grid(8, 8, edge="wrap") != bool_grid(8, 8, edge="dead")

    def test_non_grid_comparison(self):
        grid = bool_grid(8, 8)
        assert grid != "not a grid"
        assert grid != 42
        assert grid != None


@pytest.mark.parametrize("width,height", [
    (8, 8),
    (16, 16),
    (32, 32),
    (64, 64),
])
class TestGridSizes:
    """Parameterized tests for different grid sizes."""

    def test_get_set_any_size(self, width, height):
        """Basic operations work for any valid grid size."""
        grid = bool_grid(width, height)

        grid[height // 2, width // 2] = True
        assert grid[height // 2, width // 2] == TRUE
        assert grid.count(True) == 1

        grid.clear()
        assert grid.is_default()
