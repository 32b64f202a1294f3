"""Integer grid geometry shared by the terrain analyzer and the planner.

All coordinates are voxel indices. North is -y, south is +y, east is +x and
west is -x; z grows upward, so digging down decreases z.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, NamedTuple


class Coordinate(NamedTuple):
    """A voxel position."""

    x: int
    y: int
    z: int

    def offset(self, dx: int = 0, dy: int = 0, dz: int = 0) -> "Coordinate":
        return Coordinate(self.x + dx, self.y + dy, self.z + dz)


class Direction(Enum):
    """Cardinal direction on a z-level."""

    NORTH = "north"
    SOUTH = "south"
    EAST = "east"
    WEST = "west"

    @property
    def vector(self) -> tuple[int, int]:
        """Unit (dx, dy) step in this direction."""
        return _DIRECTION_VECTORS[self]

    def step(self, x: int, y: int, distance: int = 1) -> tuple[int, int]:
        """Move ``distance`` tiles from (x, y) in this direction."""
        dx, dy = self.vector
        return x + dx * distance, y + dy * distance


_DIRECTION_VECTORS = {
    Direction.NORTH: (0, -1),
    Direction.SOUTH: (0, 1),
    Direction.EAST: (1, 0),
    Direction.WEST: (-1, 0),
}

HORIZONTAL_OFFSETS: tuple[tuple[int, int, int], ...] = (
    (1, 0, 0),
    (-1, 0, 0),
    (0, 1, 0),
    (0, -1, 0),
)
"""Four same-level neighbors."""

CARDINAL_OFFSETS_3D: tuple[tuple[int, int, int], ...] = (
    (0, 0, 1),
    (0, 0, -1),
    *HORIZONTAL_OFFSETS,
)
"""Six face neighbors: up, down, then the four horizontal ones."""


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle of tiles on a single z-level.

    Covers x in [x, x + width) and y in [y, y + height).
    """

    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def center(self) -> tuple[int, int]:
        return self.x + self.width // 2, self.y + self.height // 2

    def contains(self, x: int, y: int) -> bool:
        return self.x <= x < self.x + self.width and self.y <= y < self.y + self.height

    def intersects(self, other: "Rect") -> bool:
        return (
            self.x < other.x + other.width
            and other.x < self.x + self.width
            and self.y < other.y + other.height
            and other.y < self.y + self.height
        )

    def iter_tiles(self) -> Iterator[tuple[int, int]]:
        """Yield (x, y) for every tile, column by column."""
        for dx in range(self.width):
            for dy in range(self.height):
                yield self.x + dx, self.y + dy

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: dict) -> "Rect":
        return cls(
            x=data["x"], y=data["y"], width=data["width"], height=data["height"]
        )


def manhattan_distance(a: Coordinate, b: Coordinate) -> int:
    """3D Manhattan distance between two coordinates."""
    return abs(a.x - b.x) + abs(a.y - b.y) + abs(a.z - b.z)
