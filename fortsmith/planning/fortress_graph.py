"""Fortress graph: rooms, shapes, corridors, stairwells and excavation ops.

The graph is the planner's output data structure and the query surface for
the collaborators that later create zones and furniture. Rooms are keyed by
integer ids handed out by a counter owned by the graph. Id 0 (`HUB_ID`) is
reserved for the central stairwell hub, which is not a room but can be the
endpoint of corridors.
"""

import logging

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from fortsmith.planning.room_types import DEFAULT_ROOM_TYPES, RoomTypeSpec
from fortsmith.utils.geometry_utils import Coordinate, Rect

console_logger = logging.getLogger(__name__)

HUB_ID = 0
"""Corridor endpoint id of the central stairwell hub."""

DUG_FLOOR_FRACTION = 0.8
"""Fraction of a room's tiles that must be floor for the room to count as dug."""


class LCorner(Enum):
    """Corner of the primary rectangle that an L extension attaches to."""

    NE = "NE"
    NW = "NW"
    SE = "SE"
    SW = "SW"


class TSide(Enum):
    """Side of the primary rectangle that a T extension grows from."""

    N = "N"
    S = "S"
    E = "E"
    W = "W"


@dataclass(frozen=True)
class RectShape:
    """Plain rectangular room."""

    name = "rect"

    def extensions(self, primary: Rect) -> tuple[Rect, ...]:
        return ()

    @property
    def variant(self) -> None:
        return None


@dataclass(frozen=True)
class LShape:
    """Rectangle plus a half-size block outside one corner."""

    corner: LCorner
    name = "L"

    def extensions(self, primary: Rect) -> tuple[Rect, ...]:
        ext_w = primary.width // 2
        ext_h = primary.height // 2
        east = self.corner in (LCorner.NE, LCorner.SE)
        north = self.corner in (LCorner.NE, LCorner.NW)
        x = primary.x + primary.width if east else primary.x - ext_w
        y = primary.y if north else primary.y + primary.height - ext_h
        return (Rect(x=x, y=y, width=ext_w, height=ext_h),)

    @property
    def variant(self) -> str:
        return self.corner.value


@dataclass(frozen=True)
class TShape:
    """Rectangle plus a half-size block centered on one side."""

    side: TSide
    name = "T"

    def extensions(self, primary: Rect) -> tuple[Rect, ...]:
        ext_w = primary.width // 2
        ext_h = primary.height // 2
        mid_x = primary.x + primary.width // 2 - ext_w // 2
        mid_y = primary.y + primary.height // 2 - ext_h // 2
        if self.side == TSide.N:
            x, y = mid_x, primary.y - ext_h
        elif self.side == TSide.S:
            x, y = mid_x, primary.y + primary.height
        elif self.side == TSide.E:
            x, y = primary.x + primary.width, mid_y
        else:  # W
            x, y = primary.x - ext_w, mid_y
        return (Rect(x=x, y=y, width=ext_w, height=ext_h),)

    @property
    def variant(self) -> str:
        return self.side.value


RoomShape = RectShape | LShape | TShape


def shape_from_dict(data: dict) -> RoomShape:
    """Parse ``{"shape": ..., "shape_variant": ...}`` as stored by `Room.to_dict`."""
    name = data.get("shape", RectShape.name)
    variant = data.get("shape_variant")
    if name == RectShape.name:
        return RectShape()
    if name == LShape.name:
        return LShape(corner=LCorner(variant))
    if name == TShape.name:
        return TShape(side=TSide(variant))
    raise ValueError(f"Unknown room shape: {name}")


@dataclass
class Room:
    """A planned room on a single z-level.

    The primary rectangle is (x, y, width, height). Non-rectangular shapes add
    extension rectangles derived from it; tiles shared between the primary and
    an extension are counted once.
    """

    room_id: int
    room_type: RoomTypeSpec
    x: int
    y: int
    z: int
    width: int
    height: int
    shape: RoomShape = field(default_factory=RectShape)
    extensions: tuple[Rect, ...] = ()
    """At most one rectangle, derived from `shape`."""

    connected_to: set[int] = field(default_factory=set)
    """Ids of rooms (or `HUB_ID`) joined to this one by a corridor."""

    dig_complete: bool = False
    zone_created: bool = False
    furniture_placed: bool = False

    @property
    def primary(self) -> Rect:
        return Rect(x=self.x, y=self.y, width=self.width, height=self.height)

    @property
    def center(self) -> tuple[int, int]:
        return self.primary.center

    @property
    def rects(self) -> tuple[Rect, ...]:
        return (self.primary, *self.extensions)

    def set_shape(self, shape: RoomShape) -> None:
        """Change the shape and recompute the extensions."""
        self.shape = shape
        self.extensions = shape.extensions(self.primary)

    def tiles(self) -> list[Coordinate]:
        """Every tile of the room, primary rectangle first, without duplicates."""
        seen: set[tuple[int, int]] = set()
        tiles = []
        for rect in self.rects:
            for xy in rect.iter_tiles():
                if xy not in seen:
                    seen.add(xy)
                    tiles.append(Coordinate(xy[0], xy[1], self.z))
        return tiles

    @property
    def area(self) -> int:
        """Primary area plus extension areas."""
        return sum(rect.area for rect in self.rects)

    def contains(self, x: int, y: int, z: int) -> bool:
        return z == self.z and any(rect.contains(x, y) for rect in self.rects)

    def to_dict(self) -> dict:
        return {
            "id": self.room_id,
            "type_id": self.room_type.type_id,
            "type_name": self.room_type.name,
            "x": self.x,
            "y": self.y,
            "z": self.z,
            "width": self.width,
            "height": self.height,
            "shape": self.shape.name,
            "shape_variant": self.shape.variant,
            "connected_to": sorted(self.connected_to),
            "dig_complete": self.dig_complete,
            "zone_created": self.zone_created,
            "furniture_placed": self.furniture_placed,
        }

    @classmethod
    def from_dict(cls, data: dict, catalog: dict[str, RoomTypeSpec]) -> "Room":
        type_id = data["type_id"]
        if type_id not in catalog:
            raise ValueError(f"Room {data['id']} has unknown room type {type_id}")
        room = cls(
            room_id=int(data["id"]),
            room_type=catalog[type_id],
            x=data["x"],
            y=data["y"],
            z=data["z"],
            width=data["width"],
            height=data["height"],
            connected_to=set(data.get("connected_to", [])),
            dig_complete=data.get("dig_complete", False),
            zone_created=data.get("zone_created", False),
            furniture_placed=data.get("furniture_placed", False),
        )
        room.set_shape(shape_from_dict(data))
        return room


@dataclass
class Corridor:
    """A 1-wide passage between two rooms (or a room and the hub)."""

    from_id: int
    to_id: int
    tiles: list[Coordinate]
    """Contiguous tile path, start to end."""

    def to_dict(self) -> dict:
        return {
            "from": self.from_id,
            "to": self.to_id,
            "tiles": [list(tile) for tile in self.tiles],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Corridor":
        return cls(
            from_id=data["from"],
            to_id=data["to"],
            tiles=[Coordinate(*tile) for tile in data["tiles"]],
        )


class DigType(Enum):
    """Excavation operation for one tile."""

    DIG = "dig"
    CHANNEL = "channel"
    RAMP = "ramp"
    STAIR_UP = "stair_up"
    STAIR_DOWN = "stair_down"
    STAIR_UPDOWN = "stair_updown"


@dataclass(frozen=True)
class TileOp:
    """One excavation instruction."""

    x: int
    y: int
    z: int
    op: DigType

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.x, self.y, self.z)

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "z": self.z, "op": self.op.value}

    @classmethod
    def from_dict(cls, data: dict) -> "TileOp":
        return cls(x=data["x"], y=data["y"], z=data["z"], op=DigType(data["op"]))


@dataclass
class Stairwell:
    """A square column of stairs between two levels."""

    center_x: int
    center_y: int
    top_z: int
    bottom_z: int
    width: int = 3
    """Side length of the square (odd)."""

    def __post_init__(self):
        if self.top_z < self.bottom_z:
            raise ValueError(
                f"Stairwell top_z ({self.top_z}) is below bottom_z ({self.bottom_z})"
            )

    def tile_ops(self) -> list[TileOp]:
        """Stair ops top to bottom: down stairs on top, up stairs at the bottom.

        A single-level stairwell gets up/down stairs.
        """
        half = self.width // 2
        ops = []
        for z in range(self.top_z, self.bottom_z - 1, -1):
            if self.top_z == self.bottom_z:
                op = DigType.STAIR_UPDOWN
            elif z == self.top_z:
                op = DigType.STAIR_DOWN
            elif z == self.bottom_z:
                op = DigType.STAIR_UP
            else:
                op = DigType.STAIR_UPDOWN
            for dx in range(-half, half + 1):
                for dy in range(-half, half + 1):
                    ops.append(
                        TileOp(x=self.center_x + dx, y=self.center_y + dy, z=z, op=op)
                    )
        return ops

    def to_dict(self) -> dict:
        return {
            "center_x": self.center_x,
            "center_y": self.center_y,
            "top_z": self.top_z,
            "bottom_z": self.bottom_z,
            "width": self.width,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Stairwell":
        return cls(
            center_x=data["center_x"],
            center_y=data["center_y"],
            top_z=data["top_z"],
            bottom_z=data["bottom_z"],
            width=data.get("width", 3),
        )


class FortressGraph:
    """Rooms, corridors and stairwells of one fortress.

    Single writer. Rooms are only ever added; their flags change through the
    ``mark_*`` methods.
    """

    def __init__(self):
        self.rooms: dict[int, Room] = {}
        self.corridors: list[Corridor] = []
        self.stairwells: list[Stairwell] = []
        self.next_room_id = HUB_ID + 1
        self._rooms_by_z: dict[int, list[int]] = {}

    def __len__(self) -> int:
        return len(self.rooms)

    def allocate_id(self) -> int:
        room_id = self.next_room_id
        self.next_room_id += 1
        return room_id

    def add_room(self, room: Room) -> Room:
        """Register a room. Its id must be unused and not `HUB_ID`."""
        if room.room_id == HUB_ID or room.room_id in self.rooms:
            raise ValueError(f"Room id {room.room_id} is reserved or already in use")
        self.rooms[room.room_id] = room
        self._rooms_by_z.setdefault(room.z, []).append(room.room_id)
        self.next_room_id = max(self.next_room_id, room.room_id + 1)
        return room

    def create_room(
        self,
        room_type: RoomTypeSpec,
        x: int,
        y: int,
        z: int,
        width: int,
        height: int,
    ) -> Room:
        """Allocate an id and add a rectangular room."""
        room = Room(
            room_id=self.allocate_id(),
            room_type=room_type,
            x=x,
            y=y,
            z=z,
            width=width,
            height=height,
        )
        return self.add_room(room)

    def _check_endpoint(self, room_id: int) -> None:
        if room_id != HUB_ID and room_id not in self.rooms:
            raise ValueError(f"Corridor endpoint {room_id} is not a known room")

    def add_corridor(
        self, from_id: int, to_id: int, tiles: list[Coordinate]
    ) -> Corridor:
        """Record a corridor and the symmetric adjacency between its endpoints.

        Raises:
            ValueError: If an endpoint is neither a known room nor `HUB_ID`.
        """
        self._check_endpoint(from_id)
        self._check_endpoint(to_id)
        corridor = Corridor(from_id=from_id, to_id=to_id, tiles=list(tiles))
        self.corridors.append(corridor)
        if from_id in self.rooms:
            self.rooms[from_id].connected_to.add(to_id)
        if to_id in self.rooms:
            self.rooms[to_id].connected_to.add(from_id)
        return corridor

    def add_stairwell(self, stairwell: Stairwell) -> Stairwell:
        self.stairwells.append(stairwell)
        return stairwell

    def stair_ops(self) -> dict[Coordinate, DigType]:
        """Stair op of every tile covered by a stairwell, later stairwells last."""
        return {
            tile.coordinate: tile.op
            for stairwell in self.stairwells
            for tile in stairwell.tile_ops()
        }

    def shaft_bottom(self, x: int, y: int) -> int | None:
        """Lowest level reached by a stairwell covering column (x, y)."""
        levels = [
            stairwell.bottom_z
            for stairwell in self.stairwells
            if abs(x - stairwell.center_x) <= stairwell.width // 2
            and abs(y - stairwell.center_y) <= stairwell.width // 2
        ]
        return min(levels, default=None)

    def rooms_by_type(self, type_id: str) -> list[Room]:
        return [
            room for room in self.rooms.values() if room.room_type.type_id == type_id
        ]

    def count_rooms_by_type(self, type_id: str) -> int:
        return len(self.rooms_by_type(type_id))

    def rooms_on_level(self, z: int) -> list[Room]:
        return [self.rooms[room_id] for room_id in self._rooms_by_z.get(z, [])]

    def levels(self) -> list[int]:
        """Z-levels holding at least one room, top to bottom."""
        return sorted(self._rooms_by_z, reverse=True)

    def find_room_at(self, x: int, y: int, z: int) -> Room | None:
        for room in self.rooms_on_level(z):
            if room.contains(x, y, z):
                return room
        return None

    def is_room_dug(
        self, room_id: int, is_floor: Callable[[int, int, int], bool]
    ) -> bool:
        """Whether at least 80% of the room's tiles report floor.

        Args:
            room_id: Room to check. Unknown ids are never dug.
            is_floor: Predicate telling whether a tile has been dug out.
        """
        room = self.rooms.get(room_id)
        if room is None:
            return False
        tiles = room.tiles()
        dug = sum(1 for tile in tiles if is_floor(*tile))
        return dug >= DUG_FLOOR_FRACTION * len(tiles)

    def rooms_ready_for_zone(
        self, is_floor: Callable[[int, int, int], bool]
    ) -> list[Room]:
        """Dug rooms that do not have a zone yet, in id order."""
        return [
            room
            for room_id, room in sorted(self.rooms.items())
            if not room.zone_created and self.is_room_dug(room_id, is_floor)
        ]

    def _room(self, room_id: int) -> Room:
        if room_id not in self.rooms:
            raise KeyError(f"Unknown room id: {room_id}")
        return self.rooms[room_id]

    def mark_dig_complete(self, room_id: int) -> None:
        self._room(room_id).dig_complete = True

    def mark_zone_created(self, room_id: int) -> None:
        self._room(room_id).zone_created = True

    def mark_furniture_placed(self, room_id: int) -> None:
        self._room(room_id).furniture_placed = True

    def to_dict(self) -> dict:
        """Serialize the graph for persistence."""
        return {
            "rooms": [room.to_dict() for _, room in sorted(self.rooms.items())],
            "corridors": [corridor.to_dict() for corridor in self.corridors],
            "stairwells": [stairwell.to_dict() for stairwell in self.stairwells],
            "next_room_id": self.next_room_id,
        }

    @classmethod
    def from_dict(
        cls, data: dict, catalog: dict[str, RoomTypeSpec] | None = None
    ) -> "FortressGraph":
        """Rebuild a graph saved by `to_dict`.

        Args:
            data: Serialized graph.
            catalog: Room types used to resolve type ids. Defaults to
                `DEFAULT_ROOM_TYPES`.

        Raises:
            ValueError: If a room references a type missing from the catalog.
        """
        if catalog is None:
            catalog = DEFAULT_ROOM_TYPES
        graph = cls()
        for room_data in data.get("rooms", []):
            graph.add_room(Room.from_dict(room_data, catalog=catalog))
        # Corridors are restored as-is; adjacency was saved with the rooms.
        graph.corridors = [Corridor.from_dict(c) for c in data.get("corridors", [])]
        graph.stairwells = [
            Stairwell.from_dict(s) for s in data.get("stairwells", [])
        ]
        graph.next_room_id = max(graph.next_room_id, data.get("next_room_id", 1))
        return graph
