"""Grid shapes and neighbor enumeration.

A Topology is an immutable description of a grid: its lattice kind, how edges
behave and its size. Neighbor enumeration is a pure function of a coordinate
and the topology, always in a fixed order:

- Square Moore: N, NE, E, SE, S, SW, W, NW (clockwise from North)
- Square Von Neumann: N, E, S, W
- Hex: E, NE, NW, W, SW, SE (axial order)

Square coordinates are ``(row, col)`` with row increasing southwards. Hex
coordinates are axial ``(r, q)`` stored as a rhombus of ``height`` rows by
``width`` columns, so wrap-around turns the map into a torus without seams.
"""

from dataclasses import dataclass
from enum import Enum
from functools import cached_property
from typing import Iterator, List, NamedTuple, Optional, Tuple, Union


class Coordinate(NamedTuple):
    """Cell address (row, col); for hex grids the axial pair (r, q)."""
    row: int
    col: int


class Neighbor(NamedTuple):
    """One neighbor slot.

    ``coord`` is None when the edge policy synthesizes a dead neighbor that
    carries the default Value instead of a real cell.
    """
    direction: str
    coord: Optional[Coordinate]


class TopologyKind(Enum):
    """Lattice and neighborhood shape."""
    SQUARE_MOORE = "moore"
    SQUARE_VON_NEUMANN = "von_neumann"
    HEX = "hex"


class EdgePolicy(Enum):
    """Resolution of out-of-range neighbor coordinates."""
    WRAP = "wrap"
    CLAMP = "clamp"
    DEAD = "dead"


# (label, d_row, d_col) per kind
OFFSETS = {
    TopologyKind.SQUARE_MOORE: (
        ("N", -1, 0), ("NE", -1, 1), ("E", 0, 1), ("SE", 1, 1),
        ("S", 1, 0), ("SW", 1, -1), ("W", 0, -1), ("NW", -1, -1),
    ),
    TopologyKind.SQUARE_VON_NEUMANN: (
        ("N", -1, 0), ("E", 0, 1), ("S", 1, 0), ("W", 0, -1),
    ),
    # axial (dq, dr) = (+1,0) (+1,-1) (0,-1) (-1,0) (-1,+1) (0,+1)
    TopologyKind.HEX: (
        ("E", 0, 1), ("NE", -1, 1), ("NW", -1, 0),
        ("W", 0, -1), ("SW", 1, -1), ("SE", 1, 0),
    ),
}


def _parse_enum(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower().replace("-", "_"))
    except ValueError:
        known = ", ".join(member.value for member in enum_cls)
        raise ValueError(f"Unknown {enum_cls.__name__} {value!r} (expected one of: {known})") from None


@dataclass(frozen=True)
class Topology:
    """Immutable grid shape configuration.

    Attributes:
        kind: Lattice and neighborhood shape
        edge: Edge policy for out-of-range neighbors
        width: Number of columns
        height: Number of rows
    """

    kind: TopologyKind
    edge: EdgePolicy
    width: int
    height: int

    def __post_init__(self):
        """Validate dimensions and normalize enum fields given as strings."""
        object.__setattr__(self, "kind", _parse_enum(TopologyKind, self.kind))
        object.__setattr__(self, "edge", _parse_enum(EdgePolicy, self.edge))
        if not isinstance(self.width, int) or not isinstance(self.height, int):
            raise ValueError("Grid dimensions must be integers")
        if self.width < 1 or self.height < 1:
            raise ValueError(f"Grid dimensions must be positive, got {self.width}x{self.height}")

    @classmethod
    def square(cls, width: int, height: int,
               edge: Union[EdgePolicy, str] = EdgePolicy.WRAP,
               von_neumann: bool = False) -> "Topology":
        """Square grid with Moore (default) or Von Neumann neighborhood."""
        kind = TopologyKind.SQUARE_VON_NEUMANN if von_neumann else TopologyKind.SQUARE_MOORE
        return cls(kind, edge, width, height)

    @classmethod
    def hex(cls, width: int, height: int,
            edge: Union[EdgePolicy, str] = EdgePolicy.WRAP) -> "Topology":
        """Hex grid in axial coordinates."""
        return cls(TopologyKind.HEX, edge, width, height)

    @property
    def shape(self) -> Tuple[int, int]:
        """Buffer shape (height, width)."""
        return (self.height, self.width)

    @property
    def size(self) -> int:
        """Total number of cells."""
        return self.width * self.height

    @property
    def neighbor_count(self) -> int:
        """Neighbors per cell: 8, 4 or 6."""
        return len(OFFSETS[self.kind])

    @property
    def directions(self) -> Tuple[str, ...]:
        """Direction labels in enumeration order."""
        return tuple(label for label, _, _ in OFFSETS[self.kind])

    def contains(self, coord: Tuple[int, int]) -> bool:
        """True if the coordinate addresses a real cell."""
        row, col = coord
        return 0 <= row < self.height and 0 <= col < self.width

    def coordinates(self) -> Iterator[Coordinate]:
        """Iterate all coordinates in row-major order."""
        for row in range(self.height):
            for col in range(self.width):
                yield Coordinate(row, col)

    def index_of(self, coord: Tuple[int, int]) -> int:
        """Row-major flat index of a coordinate."""
        return coord[0] * self.width + coord[1]

    def resolve(self, row: int, col: int) -> Optional[Coordinate]:
        """Apply the edge policy to a possibly out-of-range coordinate.

        Returns:
            The in-range coordinate, or None for a synthetic dead neighbor
        """
        if 0 <= row < self.height and 0 <= col < self.width:
            return Coordinate(row, col)
        if self.edge is EdgePolicy.WRAP:
            return Coordinate(row % self.height, col % self.width)
        if self.edge is EdgePolicy.CLAMP:
            return Coordinate(min(max(row, 0), self.height - 1),
                              min(max(col, 0), self.width - 1))
        return None

    def neighbors_of(self, coord: Tuple[int, int]) -> List[Neighbor]:
        """Enumerate neighbors of a cell in the fixed order for this kind.

        Args:
            coord: In-range coordinate

        Returns:
            ``neighbor_count`` Neighbor entries; edge policy already applied

        Raises:
            IndexError: If the coordinate is outside the grid
        """
        row, col = coord
        if not self.contains(coord):
            raise IndexError(f"Coordinates ({row}, {col}) out of bounds for {self.width}x{self.height} grid")
        return [Neighbor(label, self.resolve(row + d_row, col + d_col))
                for label, d_row, d_col in OFFSETS[self.kind]]

    @cached_property
    def neighbor_table(self) -> Tuple[Tuple[int, ...], ...]:
        """Flat neighbor indices for every cell, row-major; -1 marks a dead neighbor.

        Computed once per topology and shared by every step that uses it.
        """
        table = []
        for coord in self.coordinates():
            table.append(tuple(-1 if n.coord is None else self.index_of(n.coord)
                               for n in self.neighbors_of(coord)))
        return tuple(table)

    def to_dict(self) -> dict:
        """Serializable form."""
        return {"kind": self.kind.value, "edge": self.edge.value,
                "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, d: dict) -> "Topology":
        """Rebuild from ``to_dict`` output."""
        return cls(d["kind"], d["edge"], int(d["width"]), int(d["height"]))

    def __repr__(self) -> str:
        return f"Topology({self.kind.value}, {self.edge.value}, {self.width}x{self.height})"
