"""Turns partitioned space and room demand into rooms and corridors.

Room assignment is greedy first-fit: leaves are visited in BSP pre-order and
each takes the most urgent outstanding room type that fits. This is not an
optimal packing; a large leaf may be used by a small room while a later demand
finds no leaf big enough.
"""

import logging

from dataclasses import dataclass
from typing import Any, Callable, Sequence

import numpy as np

from omegaconf import DictConfig

from fortsmith.planning.bsp import BSPTree
from fortsmith.planning.fortress_graph import (
    HUB_ID,
    Corridor,
    FortressGraph,
    LCorner,
    LShape,
    RectShape,
    Room,
    TShape,
    TSide,
)
from fortsmith.planning.room_types import RoomDemand
from fortsmith.utils.config_utils import dataclass_from_config
from fortsmith.utils.geometry_utils import Coordinate, Rect

console_logger = logging.getLogger(__name__)

AreaSafetyCheck = Callable[[int, int, int, int, int], bool]
"""``(x, y, z, width, height) -> bool``, usually `check_area_safety`."""


@dataclass
class LayoutConfig:
    """Parameters for BSP level layout and room embellishment."""

    level_width: int = 20
    level_height: int = 20
    bsp_max_depth: int = 4
    min_leaf_size: int = 4
    room_padding: int = 1
    """Wall tiles kept between a room and the edge of its leaf."""

    shape_chance: float = 0.3
    """Probability that an eligible room gets an L or T extension."""

    l_shape_fraction: float = 0.6
    """Share of shaped rooms that are L rather than T."""

    min_shape_size: int = 5
    """Rooms narrower or shorter than this stay rectangular."""

    @classmethod
    def from_config(cls, cfg: DictConfig | dict[str, Any] | None) -> "LayoutConfig":
        return dataclass_from_config(cls, cfg)


def corridor_tiles(
    start_xy: tuple[int, int],
    end_xy: tuple[int, int],
    z: int,
    horizontal_first: bool,
) -> list[Coordinate]:
    """Tiles of an L-shaped corridor from start to end, in walking order.

    Args:
        start_xy: Start tile.
        end_xy: End tile.
        z: Level of the corridor.
        horizontal_first: Walk along x before y when True.

    Returns:
        A contiguous path: consecutive tiles differ by one step and the corner
        tile appears once.
    """
    x1, y1 = start_xy
    x2, y2 = end_xy
    step_x = 1 if x2 >= x1 else -1
    step_y = 1 if y2 >= y1 else -1

    if horizontal_first:
        first = [(x, y1) for x in range(x1, x2 + step_x, step_x)]
        second = [(x2, y) for y in range(y1 + step_y, y2 + step_y, step_y)]
    else:
        first = [(x1, y) for y in range(y1, y2 + step_y, step_y)]
        second = [(x, y2) for x in range(x1 + step_x, x2 + step_x, step_x)]
    # The second leg starts one past the corner, so range() may be empty.
    return [Coordinate(x, y, z) for x, y in first + second]


class RoomGraphBuilder:
    """Adds rooms and corridors to a `FortressGraph`.

    All randomness comes from the injected generator, so a seeded generator
    reproduces the same layout.
    """

    def __init__(
        self,
        graph: FortressGraph,
        rng: np.random.Generator | None = None,
        config: LayoutConfig | None = None,
    ):
        self.graph = graph
        self.rng = rng if rng is not None else np.random.default_rng()
        self.config = config if config is not None else LayoutConfig()

    def assign_footprint(
        self,
        footprint: Rect,
        demands: Sequence[RoomDemand],
        z: int,
        is_area_safe: AreaSafetyCheck | None = None,
    ) -> Room | None:
        """Place the most urgent fitting room type inside one footprint.

        The first unsatisfied demand whose minimum size fits inside the padded
        footprint wins. Its count is decremented when the room is created.

        Returns:
            The new room, or None if nothing fits or the area is unsafe.
        """
        padding = self.config.room_padding
        inner_w = footprint.width - 2 * padding
        inner_h = footprint.height - 2 * padding
        if inner_w <= 0 or inner_h <= 0:
            return None

        demand = next(
            (
                d
                for d in demands
                if not d.satisfied
                and d.room_type.min_width <= inner_w
                and d.room_type.min_height <= inner_h
            ),
            None,
        )
        if demand is None:
            return None

        spec = demand.room_type
        width = min(inner_w, spec.max_width)
        height = min(inner_h, spec.max_height)
        x = footprint.x + padding
        y = footprint.y + padding

        if is_area_safe is not None and not is_area_safe(x, y, z, width, height):
            console_logger.warning(
                f"Skipping unsafe {spec.name} footprint at ({x},{y},{z}) "
                f"{width}x{height}"
            )
            return None

        room = self.graph.create_room(
            room_type=spec, x=x, y=y, z=z, width=width, height=height
        )
        demand.count -= 1
        return room

    def assign_footprints(
        self,
        footprints: Sequence[Rect],
        demands: Sequence[RoomDemand],
        z: int,
        is_area_safe: AreaSafetyCheck | None = None,
    ) -> list[Room]:
        """Greedy first-fit over footprints in order. Stops once demand is met."""
        rooms = []
        for footprint in footprints:
            if all(d.satisfied for d in demands):
                break
            room = self.assign_footprint(
                footprint=footprint, demands=demands, z=z, is_area_safe=is_area_safe
            )
            if room is not None:
                rooms.append(room)
        return rooms

    def embellish(
        self, room: Room, is_area_safe: AreaSafetyCheck | None = None
    ) -> None:
        """Maybe give a room an L or T extension.

        Rooms of at least ``min_shape_size`` in both dimensions get a shape
        with probability ``shape_chance``. An extension whose area fails
        ``is_area_safe`` or overlaps another room on the level is dropped and
        the room stays rectangular.
        """
        cfg = self.config
        if room.width < cfg.min_shape_size or room.height < cfg.min_shape_size:
            return
        if self.rng.random() >= cfg.shape_chance:
            return

        if self.rng.random() < cfg.l_shape_fraction:
            corners = list(LCorner)
            shape = LShape(corner=corners[self.rng.integers(len(corners))])
        else:
            sides = list(TSide)
            shape = TShape(side=sides[self.rng.integers(len(sides))])
        room.set_shape(shape)

        others = [
            rect
            for other in self.graph.rooms_on_level(room.z)
            if other.room_id != room.room_id
            for rect in other.rects
        ]
        for ext in room.extensions:
            if any(ext.intersects(rect) for rect in others):
                reason = "overlapping"
            elif is_area_safe is not None and not is_area_safe(
                ext.x, ext.y, room.z, ext.width, ext.height
            ):
                reason = "unsafe"
            else:
                continue
            console_logger.debug(
                f"Dropping {reason} {shape.name}-extension of "
                f"{room.room_type.name} {room.room_id}"
            )
            room.set_shape(RectShape())
            return

        console_logger.debug(
            f"Created {shape.name}-shaped {room.room_type.name} ({shape.variant})"
        )

    def connect(
        self,
        from_id: int,
        to_id: int,
        start_xy: tuple[int, int],
        end_xy: tuple[int, int],
        z: int,
    ) -> Corridor:
        """Add an L-shaped corridor with a random leg order."""
        horizontal_first = bool(self.rng.random() > 0.5)
        tiles = corridor_tiles(
            start_xy=start_xy, end_xy=end_xy, z=z, horizontal_first=horizontal_first
        )
        return self.graph.add_corridor(from_id=from_id, to_id=to_id, tiles=tiles)

    def connect_sequential(self, rooms: Sequence[Room]) -> None:
        """Chain rooms in order: each room gets a corridor to the next."""
        for room_a, room_b in zip(rooms, rooms[1:]):
            self.connect(
                from_id=room_a.room_id,
                to_id=room_b.room_id,
                start_xy=room_a.center,
                end_xy=room_b.center,
                z=room_a.z,
            )

    def connect_to_hub(self, room: Room, hub_x: int, hub_y: int) -> Corridor:
        """Corridor from the hub center to the room center on the room's level."""
        return self.connect(
            from_id=HUB_ID,
            to_id=room.room_id,
            start_xy=(hub_x, hub_y),
            end_xy=room.center,
            z=room.z,
        )

    def build_level(
        self,
        center_x: int,
        center_y: int,
        z: int,
        width: int,
        height: int,
        demands: Sequence[RoomDemand],
        is_area_safe: AreaSafetyCheck | None = None,
    ) -> list[Room]:
        """Lay out one level: partition, assign rooms, shape them, link them.

        Args:
            center_x: Center of the level rectangle.
            center_y: Center of the level rectangle.
            z: Level to build on.
            width: Level rectangle extent along x.
            height: Level rectangle extent along y.
            demands: Outstanding demand in priority order. Counts are
                decremented in place.
            is_area_safe: Optional footprint safety predicate.

        Returns:
            The rooms created, in leaf order.
        """
        bounds = Rect(
            x=center_x - width // 2,
            y=center_y - height // 2,
            width=width,
            height=height,
        )
        tree = BSPTree(bounds=bounds, rng=self.rng)
        tree.partition(
            max_depth=self.config.bsp_max_depth,
            min_leaf_size=self.config.min_leaf_size,
        )

        rooms = []
        for leaf_index in tree.get_leaves():
            if all(d.satisfied for d in demands):
                break
            room = self.assign_footprint(
                footprint=tree.nodes[leaf_index].bounds,
                demands=demands,
                z=z,
                is_area_safe=is_area_safe,
            )
            if room is None:
                continue
            tree.assign_room(leaf_index, room.room_id)
            rooms.append(room)

        # Shapes come last so that no extension is claimed by a later room.
        for room in rooms:
            self.embellish(room, is_area_safe=is_area_safe)
        self.connect_sequential(rooms)
        console_logger.info(f"Built level z={z}: {len(rooms)} rooms")
        return rooms
