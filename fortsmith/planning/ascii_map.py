"""ASCII rendering of one fortress level.

Used for run summaries and debugging. Rooms are drawn with one letter each,
and planned excavation ops (corridors, stairs, ramps) with fixed symbols.
North is up.
"""

import logging
import string

from dataclasses import dataclass
from typing import Iterable

from fortsmith.planning.fortress_graph import DigType, FortressGraph, TileOp

console_logger = logging.getLogger(__name__)

# Character constants for ASCII drawing.
ROCK = " "
OP_SYMBOLS = {
    DigType.DIG: ".",
    DigType.CHANNEL: "_",
    DigType.RAMP: "^",
    DigType.STAIR_UP: "<",
    DigType.STAIR_DOWN: ">",
    DigType.STAIR_UPDOWN: "X",
}
ROOM_LABELS = string.ascii_uppercase + string.ascii_lowercase


@dataclass
class AsciiLevelMap:
    """Result of ASCII level rendering."""

    ascii_art: str
    """The level drawing, one text row per y."""

    legend: str
    """Room label listing."""


def generate_ascii_level_map(
    graph: FortressGraph, z: int, tiles: Iterable[TileOp] = (), padding: int = 1
) -> AsciiLevelMap:
    """Render rooms and planned ops on level ``z``.

    Args:
        graph: The fortress graph.
        z: Level to draw.
        tiles: Planned ops; those on ``z`` are drawn under the rooms.
        padding: Blank border around the drawing.

    Returns:
        AsciiLevelMap with the drawing and the legend.
    """
    level_ops = [tile for tile in tiles if tile.z == z]
    rooms = sorted(graph.rooms_on_level(z), key=lambda room: room.room_id)
    if not rooms and not level_ops:
        return AsciiLevelMap(ascii_art=f"(Nothing planned on z={z})", legend="")

    points = [(tile.x, tile.y) for tile in level_ops]
    for room in rooms:
        points.extend((tile.x, tile.y) for tile in room.tiles())
    min_x = min(x for x, _ in points) - padding
    min_y = min(y for _, y in points) - padding
    max_x = max(x for x, _ in points) + padding
    max_y = max(y for _, y in points) + padding

    grid = [[ROCK for _ in range(max_x - min_x + 1)] for _ in range(max_y - min_y + 1)]

    for tile in level_ops:
        grid[tile.y - min_y][tile.x - min_x] = OP_SYMBOLS[tile.op]

    legend_lines = []
    for index, room in enumerate(rooms):
        label = ROOM_LABELS[index % len(ROOM_LABELS)]
        for tile in room.tiles():
            cell = grid[tile.y - min_y][tile.x - min_x]
            # Stairs and ramps stay visible inside rooms.
            if cell in (ROCK, OP_SYMBOLS[DigType.DIG]):
                grid[tile.y - min_y][tile.x - min_x] = label
        shape = room.shape.name
        if room.shape.variant is not None:
            shape = f"{shape}-{room.shape.variant}"
        legend_lines.append(
            f"  {label}: {room.room_type.name} #{room.room_id} "
            f"({room.width}x{room.height}, {shape}) at ({room.x},{room.y})"
        )

    ascii_art = "\n".join("".join(row) for row in grid)
    legend = "\n".join([f"Rooms on z={z}:", *legend_lines]) if legend_lines else ""
    return AsciiLevelMap(ascii_art=ascii_art, legend=legend)
