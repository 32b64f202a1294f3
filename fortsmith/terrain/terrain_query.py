"""Terrain oracle interface and an in-memory voxel implementation.

The planner never touches live world state. Everything it knows about the world
comes through the small `TerrainQuery` protocol below, so a host only has to
answer a handful of per-tile questions. `GridTerrain` answers them from numpy
arrays and is used for tests, the command line entry point, and hosts that can
snapshot a region of their world.
"""

import logging

from enum import Enum, IntEnum
from typing import Any, Protocol

import numpy as np

from omegaconf import DictConfig, OmegaConf

console_logger = logging.getLogger(__name__)


class LiquidKind(Enum):
    """Kind of liquid occupying a tile."""

    WATER = "water"
    MAGMA = "magma"


class TileMaterial(IntEnum):
    """Per-voxel tile classes stored by `GridTerrain`."""

    OPEN = 0
    """Open space with no floor (air, chasm, cavern interior)."""

    WALL = 1
    """Solid, diggable rock or soil."""

    FLOOR = 2
    """Open tile with a floor (dug out, or natural underground floor)."""

    OUTDOORS = 3
    """Open tile exposed to the sky (grass, sand, surface soil)."""


class TerrainQuery(Protocol):
    """Read-only view of the world consumed by the safety analyzer."""

    def tile_liquid(self, x: int, y: int, z: int) -> tuple[int, LiquidKind | None]:
        """Return the liquid level (0-7) and kind at a tile."""

    def is_aquifer(self, x: int, y: int, z: int) -> bool:
        """Return whether the tile is part of an aquifer layer."""

    def is_open_space(self, x: int, y: int, z: int) -> bool:
        """Return whether the tile is open (not solid)."""

    def is_solid_wall(self, x: int, y: int, z: int) -> bool:
        """Return whether the tile is solid, diggable wall material."""

    def is_outdoors(self, x: int, y: int, z: int) -> bool:
        """Return whether the tile is open to the sky."""

    def is_floor(self, x: int, y: int, z: int) -> bool:
        """Return whether the tile has been dug out to a floor or stair."""

    def map_bounds(self) -> tuple[int, int, int]:
        """Return the map size as (width, height, depth)."""


class GridTerrain:
    """Voxel terrain backed by dense numpy arrays indexed ``[x, y, z]``.

    Queries outside the map return the conservative "no data" answers: no
    liquid, no aquifer, not open, not solid, not floor. Callers that need a
    tile to be solid therefore treat the outside of the map as unusable.
    """

    def __init__(self, width: int, height: int, depth: int):
        if width <= 0 or height <= 0 or depth <= 0:
            raise ValueError(
                f"Terrain dimensions must be positive, got {width}x{height}x{depth}"
            )
        self.width = width
        self.height = height
        self.depth = depth

        shape = (width, height, depth)
        self.material = np.full(shape, TileMaterial.WALL, dtype=np.uint8)
        """Tile class per voxel (`TileMaterial` values)."""

        self.liquid_level = np.zeros(shape, dtype=np.uint8)
        """Liquid depth per voxel, 0 (dry) to 7 (full)."""

        self.liquid_is_magma = np.zeros(shape, dtype=bool)
        """True where the liquid in a voxel is magma rather than water."""

        self.aquifer = np.zeros(shape, dtype=bool)
        """Aquifer flag per voxel."""

    @classmethod
    def solid(
        cls, width: int, height: int, depth: int, surface_z: int | None = None
    ) -> "GridTerrain":
        """Create a world of solid rock.

        Args:
            width: Map size along x.
            height: Map size along y.
            depth: Number of z-levels.
            surface_z: If given, levels above this z are open sky and the level
                itself stays solid ground.

        Returns:
            The new terrain.
        """
        terrain = cls(width=width, height=height, depth=depth)
        if surface_z is not None and surface_z + 1 < depth:
            terrain.material[:, :, surface_z + 1 :] = TileMaterial.OUTDOORS
        return terrain

    @classmethod
    def from_config(cls, cfg: DictConfig | dict[str, Any]) -> "GridTerrain":
        """Build terrain from a ``terrain`` config group.

        Expected keys: ``width``, ``height``, ``depth``, optional ``surface_z``
        and optional lists ``water``, ``magma``, ``aquifer``, ``open`` of boxes
        given as ``{x, y, z, width, height, levels}``.
        """
        if isinstance(cfg, DictConfig):
            cfg = OmegaConf.to_container(cfg, resolve=True)

        terrain = cls.solid(
            width=cfg["width"],
            height=cfg["height"],
            depth=cfg["depth"],
            surface_z=cfg.get("surface_z"),
        )
        for box in cfg.get("water") or []:
            terrain.add_water(**_box_args(box))
        for box in cfg.get("magma") or []:
            terrain.add_magma(**_box_args(box))
        for box in cfg.get("aquifer") or []:
            terrain.set_aquifer(**_box_args(box))
        for box in cfg.get("open") or []:
            terrain.carve_open(**_box_args(box))

        console_logger.info(
            f"Built {terrain.width}x{terrain.height}x{terrain.depth} grid terrain "
            f"(surface_z={cfg.get('surface_z')})"
        )
        return terrain

    def _box(self, x: int, y: int, z: int, width: int, height: int, levels: int):
        x0, y0, z0 = max(0, x), max(0, y), max(0, z)
        x1 = min(self.width, x + width)
        y1 = min(self.height, y + height)
        z1 = min(self.depth, z + levels)
        return np.s_[x0:x1, y0:y1, z0:z1]

    def add_water(
        self,
        x: int,
        y: int,
        z: int,
        width: int = 1,
        height: int = 1,
        levels: int = 1,
        level: int = 7,
    ) -> None:
        """Flood a box with water. Flooded tiles become open space."""
        box = self._box(x, y, z, width, height, levels)
        self.material[box] = TileMaterial.OPEN
        self.liquid_level[box] = level
        self.liquid_is_magma[box] = False

    def add_magma(
        self,
        x: int,
        y: int,
        z: int,
        width: int = 1,
        height: int = 1,
        levels: int = 1,
        level: int = 7,
    ) -> None:
        """Flood a box with magma. Flooded tiles become open space."""
        box = self._box(x, y, z, width, height, levels)
        self.material[box] = TileMaterial.OPEN
        self.liquid_level[box] = level
        self.liquid_is_magma[box] = True

    def set_aquifer(
        self, x: int, y: int, z: int, width: int = 1, height: int = 1, levels: int = 1
    ) -> None:
        """Mark a box as aquifer-bearing rock."""
        self.aquifer[self._box(x, y, z, width, height, levels)] = True

    def carve_open(
        self, x: int, y: int, z: int, width: int = 1, height: int = 1, levels: int = 1
    ) -> None:
        """Hollow out a box (caverns, chasms, cliff faces)."""
        self.material[self._box(x, y, z, width, height, levels)] = TileMaterial.OPEN

    def set_floor(self, x: int, y: int, z: int) -> None:
        """Mark a single tile as dug out to a floor."""
        if self._in_bounds(x, y, z):
            self.material[x, y, z] = TileMaterial.FLOOR

    def _in_bounds(self, x: int, y: int, z: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height and 0 <= z < self.depth

    def tile_liquid(self, x: int, y: int, z: int) -> tuple[int, LiquidKind | None]:
        if not self._in_bounds(x, y, z):
            return 0, None
        level = int(self.liquid_level[x, y, z])
        if level == 0:
            return 0, None
        kind = LiquidKind.MAGMA if self.liquid_is_magma[x, y, z] else LiquidKind.WATER
        return level, kind

    def is_aquifer(self, x: int, y: int, z: int) -> bool:
        return self._in_bounds(x, y, z) and bool(self.aquifer[x, y, z])

    def is_open_space(self, x: int, y: int, z: int) -> bool:
        return (
            self._in_bounds(x, y, z) and self.material[x, y, z] != TileMaterial.WALL
        )

    def is_solid_wall(self, x: int, y: int, z: int) -> bool:
        return (
            self._in_bounds(x, y, z) and self.material[x, y, z] == TileMaterial.WALL
        )

    def is_outdoors(self, x: int, y: int, z: int) -> bool:
        return (
            self._in_bounds(x, y, z)
            and self.material[x, y, z] == TileMaterial.OUTDOORS
        )

    def is_floor(self, x: int, y: int, z: int) -> bool:
        return (
            self._in_bounds(x, y, z) and self.material[x, y, z] == TileMaterial.FLOOR
        )

    def map_bounds(self) -> tuple[int, int, int]:
        return self.width, self.height, self.depth


def _box_args(box: dict[str, Any]) -> dict[str, int]:
    """Normalize a config box entry, defaulting extents to a single tile."""
    return {
        "x": int(box["x"]),
        "y": int(box["y"]),
        "z": int(box["z"]),
        "width": int(box.get("width", 1)),
        "height": int(box.get("height", 1)),
        "levels": int(box.get("levels", 1)),
    }
