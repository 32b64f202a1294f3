"""Hazard scoring for excavation: water, magma, aquifers, map edges, breaches.

The analyzer is a pure evaluator over a `TerrainQuery`. It never mutates the
world and never raises: when the terrain oracle fails, the public call in
progress answers with its conservative "unsafe" result.

Scoring
-------
A tile starts at 100 points. Liquid on the tile itself is an immediate fail.
Otherwise the score loses 50 for an aquifer, 20 per adjacent water tile, 30 per
adjacent magma tile and 20 when the tile is close to the map edge. A tile is
safe when its score is at least 70 and none of its four horizontal neighbors is
open space (digging it would breach into a cliff, chasm or cavern).

Directions, areas and whole z-levels are judged by sampling tiles with the rule
above. Every sweep is bounded by `SafetyConfig` limits.
"""

import logging

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from omegaconf import DictConfig

from fortsmith.terrain.terrain_query import LiquidKind, TerrainQuery
from fortsmith.utils.config_utils import dataclass_from_config
from fortsmith.utils.geometry_utils import (
    CARDINAL_OFFSETS_3D,
    HORIZONTAL_OFFSETS,
    Coordinate,
    Direction,
)

console_logger = logging.getLogger(__name__)


class HazardType(Enum):
    """Kinds of excavation hazard."""

    WATER = "water"
    MAGMA = "magma"
    AQUIFER = "aquifer"
    EDGE = "edge"
    OPEN_SPACE = "open_space"


LIQUID_HAZARDS = frozenset({HazardType.WATER, HazardType.MAGMA, HazardType.AQUIFER})
"""Hazards that rule a tile out for area excavation regardless of score."""


@dataclass
class SafetyConfig:
    """Thresholds and penalties for terrain safety analysis."""

    safe_score_threshold: int = 70
    """Tiles scoring below this are unsafe."""

    aquifer_penalty: int = 50
    adjacent_water_penalty: int = 20
    """Per adjacent water tile (6-neighborhood)."""

    adjacent_magma_penalty: int = 30
    """Per adjacent magma tile (6-neighborhood)."""

    edge_penalty: int = 20
    min_edge_distance: int = 5
    """Tiles closer than this to the map border get the edge penalty."""

    direction_scan_distance: int = 20
    """How far `find_safest_direction` walks along each direction."""

    direction_depth_levels: int = 4
    """Number of levels checked below the origin while scoring a direction."""

    direction_unsafe_penalty: float = 10.0
    """Base penalty for an unsafe tile, divided by (distance + 1)."""

    direction_water_penalty: float = 30.0
    direction_magma_penalty: float = 40.0
    direction_edge_penalty: float = 15.0
    direction_edge_distance: int = 10
    """Endpoint proximity to the map border that triggers the edge penalty."""

    enclosure_check_height: int = 10
    """Levels scanned upward when testing whether a tile is roofed."""

    enclosure_min_depth: int = 3
    """First depth below the surface considered for the hub level."""

    enclosure_max_depth: int = 20
    """Deepest level below the surface considered for the hub level."""

    enclosure_fallback_depth: int = 10
    """Depth used when no enclosed level qualifies."""

    scan_radius: int = 20
    """Default radius for water/aquifer sweeps."""

    max_scan_radius: int = 64
    """Hard cap on any sweep radius or scan distance."""

    max_sweep_tiles: int = 10_000
    """Hard cap on tiles visited by a single rectangular sweep."""

    @classmethod
    def from_config(cls, cfg: DictConfig | dict[str, Any] | None) -> "SafetyConfig":
        return dataclass_from_config(cls, cfg)


@dataclass
class TerrainAnalysis:
    """Hazard verdict for one tile."""

    coordinate: Coordinate
    hazards: list[HazardType] = field(default_factory=list)
    safety_score: int = 100
    """0 (certain disaster) to 100 (no hazard found)."""

    safe: bool = True
    reason: str | None = None
    """First condition that made the tile unsafe. None for safe tiles."""


@dataclass
class DirectionScore:
    """Safety score of one dig direction."""

    direction: Direction
    score: float
    hazards: list[str] = field(default_factory=list)
    """Human readable descriptions of each hazard encountered."""


@dataclass
class SafestDirection:
    """Result of comparing all four dig directions."""

    direction: Direction
    score: float
    hazards: list[str]
    all_scores: dict[Direction, float]


@dataclass
class WaterScan:
    """Summary of water tiles found around a point."""

    count: int
    closest_distance: int | None
    """Manhattan distance to the nearest water tile, None when there is none."""

    closest_direction: Direction | None


class TerrainSafetyAnalyzer:
    """Scores tiles, areas and directions for excavation safety.

    Per-tile verdicts are memoised for the lifetime of the analyzer (or until
    `clear_cache`), so one analyzer should be used for one planning call
    against unchanging terrain.
    """

    def __init__(self, terrain: TerrainQuery, config: SafetyConfig | None = None):
        self.terrain = terrain
        self.config = config if config is not None else SafetyConfig()
        self._tile_cache: dict[Coordinate, TerrainAnalysis] = {}

    def clear_cache(self) -> None:
        self._tile_cache.clear()

    # ------------------------------------------------------------------
    # Tile predicates
    # ------------------------------------------------------------------

    def has_water(self, x: int, y: int, z: int) -> bool:
        level, kind = self.terrain.tile_liquid(x, y, z)
        return level > 0 and kind != LiquidKind.MAGMA

    def has_magma(self, x: int, y: int, z: int) -> bool:
        level, kind = self.terrain.tile_liquid(x, y, z)
        return level > 0 and kind == LiquidKind.MAGMA

    def count_adjacent_water(self, x: int, y: int, z: int) -> int:
        return sum(
            self.has_water(x + dx, y + dy, z + dz) for dx, dy, dz in CARDINAL_OFFSETS_3D
        )

    def count_adjacent_magma(self, x: int, y: int, z: int) -> int:
        return sum(
            self.has_magma(x + dx, y + dy, z + dz) for dx, dy, dz in CARDINAL_OFFSETS_3D
        )

    def is_near_edge(self, x: int, y: int, min_distance: int | None = None) -> bool:
        if min_distance is None:
            min_distance = self.config.min_edge_distance
        x_max, y_max, _ = self.terrain.map_bounds()
        return (
            x < min_distance
            or x >= x_max - min_distance
            or y < min_distance
            or y >= y_max - min_distance
        )

    def _has_lateral_opening(self, x: int, y: int, z: int) -> bool:
        return any(
            self.terrain.is_open_space(x + dx, y + dy, z)
            for dx, dy, _ in HORIZONTAL_OFFSETS
        )

    # ------------------------------------------------------------------
    # Tile analysis
    # ------------------------------------------------------------------

    def analyze_tile(self, coordinate: tuple[int, int, int]) -> TerrainAnalysis:
        """Analyze a single tile for all hazards.

        Args:
            coordinate: (x, y, z) of the tile.

        Returns:
            The verdict. Unsafe with score 0 when the terrain cannot be read.
        """
        coordinate = Coordinate(*coordinate)
        cached = self._tile_cache.get(coordinate)
        if cached is not None:
            return cached

        try:
            analysis = self._analyze_tile(coordinate)
        except Exception as e:  # The oracle is host code; any failure is "unsafe".
            console_logger.debug(
                f"Terrain query failed at {tuple(coordinate)}: {e}", exc_info=True
            )
            analysis = TerrainAnalysis(
                coordinate=coordinate,
                safety_score=0,
                safe=False,
                reason=f"terrain data unavailable: {e}",
            )

        self._tile_cache[coordinate] = analysis
        return analysis

    def _analyze_tile(self, coordinate: Coordinate) -> TerrainAnalysis:
        x, y, z = coordinate
        cfg = self.config

        if self.has_water(x, y, z):
            return TerrainAnalysis(
                coordinate=coordinate,
                hazards=[HazardType.WATER],
                safety_score=0,
                safe=False,
                reason="tile has water",
            )
        if self.has_magma(x, y, z):
            return TerrainAnalysis(
                coordinate=coordinate,
                hazards=[HazardType.MAGMA],
                safety_score=0,
                safe=False,
                reason="tile has magma",
            )

        hazards: list[HazardType] = []
        score = 100
        reason: str | None = None

        if self.terrain.is_aquifer(x, y, z):
            hazards.append(HazardType.AQUIFER)
            score = max(0, score - cfg.aquifer_penalty)
            reason = reason or self._low_score_reason(score, "tile is aquifer")

        water_count = self.count_adjacent_water(x, y, z)
        if water_count > 0:
            hazards.append(HazardType.WATER)
            score = max(0, score - water_count * cfg.adjacent_water_penalty)
            reason = reason or self._low_score_reason(
                score, f"adjacent to {water_count} water tile(s)"
            )

        magma_count = self.count_adjacent_magma(x, y, z)
        if magma_count > 0:
            hazards.append(HazardType.MAGMA)
            score = max(0, score - magma_count * cfg.adjacent_magma_penalty)
            reason = reason or self._low_score_reason(
                score, f"adjacent to {magma_count} magma tile(s)"
            )

        if self.is_near_edge(x, y):
            hazards.append(HazardType.EDGE)
            score = max(0, score - cfg.edge_penalty)
            reason = reason or self._low_score_reason(score, "near map edge")

        breach = self._has_lateral_opening(x, y, z)
        if breach:
            hazards.append(HazardType.OPEN_SPACE)
            reason = reason or "open space beside tile (lateral breach)"

        return TerrainAnalysis(
            coordinate=coordinate,
            hazards=hazards,
            safety_score=score,
            safe=score >= cfg.safe_score_threshold and not breach,
            reason=reason,
        )

    def _low_score_reason(self, score: int, label: str) -> str | None:
        if score < self.config.safe_score_threshold:
            return f"{label} (safety score {score})"
        return None

    def is_safe_to_dig(self, coordinate: tuple[int, int, int]) -> bool:
        """Strict per-tile check used for room and hub footprints.

        Unlike `analyze_tile(...).safe`, any water, magma or aquifer on or next
        to the tile disqualifies it, whatever the score.
        """
        coordinate = Coordinate(*coordinate)
        analysis = self.analyze_tile(coordinate)
        if not analysis.safe or LIQUID_HAZARDS.intersection(analysis.hazards):
            return False

        x, y, z = coordinate
        try:
            return not any(
                self.terrain.is_aquifer(x + dx, y + dy, z + dz)
                for dx, dy, dz in CARDINAL_OFFSETS_3D
            )
        except Exception as e:
            console_logger.debug(f"Aquifer query failed near {tuple(coordinate)}: {e}")
            return False

    # ------------------------------------------------------------------
    # Directions
    # ------------------------------------------------------------------

    def score_direction(
        self,
        origin: tuple[int, int, int],
        direction: Direction,
        distance: int | None = None,
    ) -> DirectionScore:
        """Score how safe it is to dig from ``origin`` toward ``direction``.

        Walks ``distance`` tiles outward and checks the origin level plus the
        levels below it. Unsafe tiles cost more the closer they are; standing
        liquid costs a flat amount; ending near the map border costs a flat
        amount.

        Args:
            origin: Starting (x, y, z), usually the surface anchor.
            direction: Direction to walk.
            distance: Tiles to walk. Defaults to `direction_scan_distance`.

        Returns:
            Score floored at 0 and descriptions of every hazard found.
        """
        cfg = self.config
        if distance is None:
            distance = cfg.direction_scan_distance
        distance = min(distance, cfg.max_scan_radius)
        ox, oy, oz = origin

        score = 100.0
        hazards: list[str] = []
        try:
            for i in range(1, distance + 1):
                x, y = direction.step(ox, oy, i)
                for dz in range(cfg.direction_depth_levels):
                    z = oz - dz
                    analysis = self.analyze_tile((x, y, z))
                    if not analysis.safe:
                        score -= cfg.direction_unsafe_penalty / (i + 1)
                        hazards.append(
                            f"{direction.value} at ({x},{y},{z}): "
                            f"{analysis.reason or 'unknown'}"
                        )
                    if self.has_water(x, y, z):
                        score -= cfg.direction_water_penalty
                    if self.has_magma(x, y, z):
                        score -= cfg.direction_magma_penalty

            end_x, end_y = direction.step(ox, oy, distance)
            if self.is_near_edge(end_x, end_y, cfg.direction_edge_distance):
                score -= cfg.direction_edge_penalty
                hazards.append("near map edge")
        except Exception as e:
            console_logger.debug(
                f"Terrain query failed scoring {direction.value}: {e}", exc_info=True
            )
            return DirectionScore(
                direction=direction,
                score=0.0,
                hazards=[f"terrain data unavailable: {e}"],
            )

        return DirectionScore(
            direction=direction, score=max(0.0, score), hazards=hazards
        )

    def find_safest_direction(self, origin: tuple[int, int, int]) -> SafestDirection:
        """Compare all four directions and return the highest scoring one.

        Directions are evaluated north, south, east, west; a later direction
        only wins with a strictly higher score, so ties go to the earlier one.
        """
        best: DirectionScore | None = None
        all_scores: dict[Direction, float] = {}
        for direction in Direction:
            result = self.score_direction(origin, direction)
            all_scores[direction] = result.score
            if best is None or result.score > best.score:
                best = result

        console_logger.debug(
            "Direction scores: "
            + ", ".join(f"{d.value}={s:.1f}" for d, s in all_scores.items())
            + f" -> best: {best.direction.value}"
        )
        return SafestDirection(
            direction=best.direction,
            score=best.score,
            hazards=best.hazards,
            all_scores=all_scores,
        )

    # ------------------------------------------------------------------
    # Areas and levels
    # ------------------------------------------------------------------

    def _is_diggable_and_safe(self, x: int, y: int, z: int) -> bool:
        return self.terrain.is_solid_wall(x, y, z) and self.is_safe_to_dig((x, y, z))

    def check_area_safety(
        self, x: int, y: int, z: int, width: int, height: int
    ) -> bool:
        """Check that a rectangular room footprint can be dug safely.

        Corners and the center are sampled first, then every perimeter tile.
        Each must be solid wall and pass `is_safe_to_dig`.

        Args:
            x: Minimum x of the footprint.
            y: Minimum y of the footprint.
            z: Level of the footprint.
            width: Extent along x.
            height: Extent along y.

        Returns:
            True if the footprint is safe.
        """
        if width <= 0 or height <= 0:
            return False
        x_end, y_end = x + width - 1, y + height - 1

        try:
            samples = (
                (x, y),
                (x_end, y),
                (x, y_end),
                (x_end, y_end),
                (x + width // 2, y + height // 2),
            )
            for px, py in samples:
                if not self._is_diggable_and_safe(px, py, z):
                    return False

            for dx in range(width):
                if not self._is_diggable_and_safe(x + dx, y, z):
                    return False
                if not self._is_diggable_and_safe(x + dx, y_end, z):
                    return False
            for dy in range(height):
                if not self._is_diggable_and_safe(x, y + dy, z):
                    return False
                if not self._is_diggable_and_safe(x_end, y + dy, z):
                    return False
        except Exception as e:
            console_logger.debug(f"Terrain query failed checking area: {e}")
            return False

        return True

    def is_enclosed_underground(self, coordinate: tuple[int, int, int]) -> bool:
        """Return whether a tile is solid and roofed by rock.

        Looks upward up to `enclosure_check_height` levels: solid rock means
        enclosed, an outdoors tile means exposed to the surface. Open
        underground tiles (caverns, tunnels) are looked through. No definite
        answer counts as enclosed.
        """
        x, y, z = coordinate
        try:
            if not self.terrain.is_solid_wall(x, y, z):
                return False
            for check_z in range(z + 1, z + 1 + self.config.enclosure_check_height):
                if self.terrain.is_solid_wall(x, y, check_z):
                    return True
                if self.terrain.is_outdoors(x, y, check_z):
                    return False
        except Exception as e:
            console_logger.debug(f"Terrain query failed checking enclosure: {e}")
            return False
        return True

    def find_enclosed_z_level(
        self,
        center: tuple[int, int],
        surface_z: int,
        width: int = 30,
        height: int = 30,
    ) -> int:
        """Find the shallowest level that is roofed and laterally safe.

        A level qualifies when the center and the four corners of the
        ``width`` x ``height`` footprint are enclosed underground and the
        footprint passes `check_area_safety`.

        Args:
            center: (x, y) center of the footprint.
            surface_z: Surface level at the center.
            width: Footprint extent along x.
            height: Footprint extent along y.

        Returns:
            The qualifying z, or ``surface_z - enclosure_fallback_depth``.
        """
        cfg = self.config
        cx, cy = center
        x0 = cx - width // 2
        y0 = cy - height // 2
        check_points = (
            (cx, cy),
            (x0, y0),
            (x0 + width - 1, y0),
            (x0, y0 + height - 1),
            (x0 + width - 1, y0 + height - 1),
        )

        deepest = max(0, surface_z - cfg.enclosure_max_depth)
        for z in range(surface_z - cfg.enclosure_min_depth, deepest - 1, -1):
            if not all(
                self.is_enclosed_underground((px, py, z)) for px, py in check_points
            ):
                continue
            if self.check_area_safety(x0, y0, z, width, height):
                console_logger.debug(f"Enclosed level found at z={z}")
                return z

        fallback = surface_z - cfg.enclosure_fallback_depth
        console_logger.info(
            f"No enclosed level found below z={surface_z}, falling back to z={fallback}"
        )
        return fallback

    def check_level_safety(
        self, z: int, center_x: int, center_y: int, radius: int = 40, step: int = 10
    ) -> tuple[bool, str | None]:
        """Grid-sample a z-level for liquid, aquifers and caverns.

        Args:
            z: Level to check.
            center_x: Center of the sampled square.
            center_y: Center of the sampled square.
            radius: Half-width of the sampled square (capped).
            step: Sample spacing.

        Returns:
            (True, None) if no hazard was sampled, otherwise (False, reason).
        """
        radius = min(radius, self.config.max_scan_radius)
        step = max(1, step)
        try:
            for x in range(center_x - radius, center_x + radius + 1, step):
                for y in range(center_y - radius, center_y + radius + 1, step):
                    if self.has_water(x, y, z) or self.has_magma(x, y, z):
                        return False, f"liquid at ({x},{y},{z})"
                    if self.terrain.is_aquifer(x, y, z):
                        return False, f"aquifer at ({x},{y},{z})"
                    is_open = self.terrain.is_open_space(x, y, z)
                    if is_open and not self.terrain.is_floor(x, y, z):
                        return False, f"cavern/open space at ({x},{y},{z})"
        except Exception as e:
            console_logger.debug(f"Terrain query failed checking level {z}: {e}")
            return False, f"terrain data unavailable: {e}"
        return True, None

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    def validate_corridor(
        self, x1: int, y1: int, x2: int, y2: int, z: int
    ) -> tuple[bool, Coordinate | None, str | None]:
        """Check every tile of the rectangle spanned by two corridor endpoints.

        Returns:
            (ok, first unsafe tile, reason).
        """
        min_x, max_x = min(x1, x2), max(x1, x2)
        min_y, max_y = min(y1, y2), max(y1, y2)
        if (max_x - min_x + 1) * (max_y - min_y + 1) > self.config.max_sweep_tiles:
            return False, None, "corridor too large to validate"

        for x in range(min_x, max_x + 1):
            for y in range(min_y, max_y + 1):
                analysis = self.analyze_tile((x, y, z))
                if not analysis.safe:
                    return False, Coordinate(x, y, z), analysis.reason
        return True, None, None

    def scan_for_water(
        self, center: tuple[int, int, int], radius: int | None = None
    ) -> WaterScan:
        """Count water tiles in a square around ``center`` on its level."""
        cx, cy, cz = center
        if radius is None:
            radius = self.config.scan_radius
        radius = min(radius, self.config.max_scan_radius)

        count = 0
        closest_distance: int | None = None
        closest_direction: Direction | None = None
        try:
            for dx in range(-radius, radius + 1):
                for dy in range(-radius, radius + 1):
                    if not self.has_water(cx + dx, cy + dy, cz):
                        continue
                    count += 1
                    distance = abs(dx) + abs(dy)
                    if closest_distance is None or distance < closest_distance:
                        closest_distance = distance
                        if abs(dx) > abs(dy):
                            closest_direction = (
                                Direction.EAST if dx > 0 else Direction.WEST
                            )
                        else:
                            closest_direction = (
                                Direction.SOUTH if dy > 0 else Direction.NORTH
                            )
        except Exception as e:
            console_logger.debug(f"Terrain query failed scanning for water: {e}")

        return WaterScan(
            count=count,
            closest_distance=closest_distance,
            closest_direction=closest_direction,
        )

    def scan_for_aquifer(
        self, center: tuple[int, int, int], radius: int | None = None
    ) -> int:
        """Count aquifer tiles in a square around ``center`` on its level."""
        cx, cy, cz = center
        if radius is None:
            radius = self.config.scan_radius
        radius = min(radius, self.config.max_scan_radius)

        count = 0
        try:
            for dx in range(-radius, radius + 1):
                for dy in range(-radius, radius + 1):
                    if self.terrain.is_aquifer(cx + dx, cy + dy, cz):
                        count += 1
        except Exception as e:
            console_logger.debug(f"Terrain query failed scanning for aquifer: {e}")
        return count
