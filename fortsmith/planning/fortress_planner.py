"""Fortress plan generation and incremental expansion.

Generation Overview
-------------------
1. **Entry direction**: The four cardinal directions from the anchor (usually
   the surface spot where the settlers arrive) are scored for hazards; the
   safest one is used for everything that follows.

2. **Hub depth**: The shallowest roofed, laterally safe level under the entry
   point becomes the hub level.

3. **Ramp**: A* routes a 3-wide ramp from the anchor down to a fixed depth
   below the surface, refusing any step whose 3x3 footprint holds an unsafe
   tile.

4. **Depot and trap hall**: A 7x7 trade depot is centered on the ramp's end and
   a corridor runs from it to the hub center.

5. **Central stairwell**: A 3x3 stairwell descends from the depot level past
   the hub level so that every template level is reachable. The hub is kept
   inside the map and every level of the column must be safe to dig.

6. **Template levels**: Workshops, storage, common rooms, dormitories and the
   military wing are placed at fixed offsets around the hub, each footprint
   checked for safety first, and each room is linked to the hub.

Expansion
---------
Later calls grow the fortress one level at a time beneath the band (living,
military, ...) of the most urgent outstanding demand, using BSP layout.

Every excavation instruction is accumulated per tile: a later stair, ramp or
channel replaces whatever was planned for that tile before, and a plain dig
never overrides one of those.
"""

import logging

from dataclasses import dataclass, field
from typing import Any, Iterable

import numpy as np

from omegaconf import DictConfig

from fortsmith.planning.fortress_graph import (
    HUB_ID,
    DigType,
    FortressGraph,
    Room,
    Stairwell,
    TileOp,
)
from fortsmith.planning.pathfinding import PathCallbacks, PathfindingConfig, find_path
from fortsmith.planning.room_graph_builder import LayoutConfig, RoomGraphBuilder
from fortsmith.planning.room_types import (
    DEFAULT_ROOM_TYPES,
    EXPANDABLE_BANDS,
    RoomTypeSpec,
    check_expansion_needs,
    compute_demand,
)
from fortsmith.terrain.safety_analyzer import SafetyConfig, TerrainSafetyAnalyzer
from fortsmith.terrain.terrain_query import TerrainQuery
from fortsmith.utils.config_utils import dataclass_from_config, to_plain_dict
from fortsmith.utils.geometry_utils import (
    HORIZONTAL_OFFSETS,
    Coordinate,
    Direction,
)

console_logger = logging.getLogger(__name__)


class FortressPlanError(Exception):
    """Raised when no plan can be generated.

    Covers a missing safe direction, a missing ramp path and an unsafe central
    stairwell column.
    """


@dataclass(frozen=True)
class RoomTemplate:
    """A fixed room slot relative to the hub center."""

    type_id: str
    dx: int
    dy: int
    width: int
    height: int


@dataclass(frozen=True)
class LevelTemplate:
    """Rooms placed on one level, ``offset`` levels below the hub level."""

    offset: int
    rooms: tuple[RoomTemplate, ...]


DEFAULT_LEVEL_TEMPLATES: tuple[LevelTemplate, ...] = (
    LevelTemplate(
        offset=0,
        rooms=(
            RoomTemplate(type_id="workshop_hall", dx=-12, dy=0, width=10, height=10),
            RoomTemplate(type_id="workshop_hall", dx=12, dy=0, width=10, height=10),
        ),
    ),
    LevelTemplate(
        offset=-1,
        rooms=(
            RoomTemplate(type_id="storage_main", dx=0, dy=-12, width=10, height=10),
            RoomTemplate(type_id="storage_main", dx=0, dy=12, width=10, height=10),
        ),
    ),
    LevelTemplate(
        offset=-2,
        rooms=(
            RoomTemplate(type_id="dining", dx=-12, dy=0, width=8, height=8),
            RoomTemplate(type_id="hospital", dx=12, dy=0, width=6, height=6),
            RoomTemplate(type_id="tavern", dx=0, dy=-12, width=7, height=7),
        ),
    ),
    LevelTemplate(
        offset=-3,
        rooms=(
            RoomTemplate(type_id="dormitory", dx=-10, dy=-10, width=6, height=6),
            RoomTemplate(type_id="dormitory", dx=10, dy=-10, width=6, height=6),
            RoomTemplate(type_id="dormitory", dx=-10, dy=10, width=6, height=6),
            RoomTemplate(type_id="dormitory", dx=10, dy=10, width=6, height=6),
        ),
    ),
    LevelTemplate(
        offset=-4,
        rooms=(
            RoomTemplate(type_id="barracks", dx=-10, dy=0, width=8, height=8),
            RoomTemplate(type_id="training", dx=10, dy=0, width=8, height=8),
        ),
    ),
)


def _default_planner_pathfinding() -> PathfindingConfig:
    # A 20-level descent explores more nodes than the generic cap allows.
    return PathfindingConfig(max_explored_nodes=20_000)


@dataclass
class PlannerConfig:
    """Configuration for fortress plan generation and expansion."""

    entry_offset: int = 5
    """Tiles from the anchor to the entry point along the chosen direction."""

    hub_offset: int = 15
    """Tiles from the entry point to the hub center along the chosen direction."""

    ramp_depth: int = 20
    """Levels below the surface targeted by the ramp."""

    ramp_width: int = 3
    """Side of the square footprint dug at each ramp step (odd)."""

    descent_penalty: float = 2.0
    """Extra ramp cost per level descended, to flatten the ramp."""

    hub_area_size: int = 30
    """Side of the square that must be enclosed and safe at the hub level."""

    depot_size: int = 7
    stairwell_width: int = 3
    stairwell_extra_depth: int = 4
    """Levels the central stairwell extends below the hub level."""

    min_hub_depth_below_depot: int = 3
    """Hub offset below the depot when the enclosed level is not deeper."""

    min_direction_score: float = 0.0
    """Generation fails when the best direction scores at or below this."""

    expansion_max_skip: int = 5
    """Levels tried below the current lowest level when expanding."""

    level_check_radius: int = 40
    level_check_step: int = 10

    default_population: int = 7
    seed: int | None = None
    """Seed for the planner's random generator. None draws fresh entropy."""

    safety: SafetyConfig = field(default_factory=SafetyConfig)
    pathfinding: PathfindingConfig = field(default_factory=_default_planner_pathfinding)
    layout: LayoutConfig = field(default_factory=LayoutConfig)

    @classmethod
    def from_config(cls, cfg: DictConfig | dict[str, Any] | None) -> "PlannerConfig":
        """Build from a ``planner`` config node with optional nested sections."""
        values = to_plain_dict(cfg)
        nested = ("safety", "pathfinding", "layout", "room_types")
        config = dataclass_from_config(cls, values, skip=nested)
        config.safety = SafetyConfig.from_config(values.get("safety"))
        if values.get("pathfinding") is not None:
            config.pathfinding = PathfindingConfig.from_config(values["pathfinding"])
        config.layout = LayoutConfig.from_config(values.get("layout"))
        return config


@dataclass
class PlanningContext:
    """Everything one planning session needs, passed explicitly."""

    terrain: TerrainQuery
    analyzer: TerrainSafetyAnalyzer
    catalog: dict[str, RoomTypeSpec]
    rng: np.random.Generator
    config: PlannerConfig

    @classmethod
    def create(
        cls,
        terrain: TerrainQuery,
        config: PlannerConfig | None = None,
        catalog: dict[str, RoomTypeSpec] | None = None,
    ) -> "PlanningContext":
        config = config if config is not None else PlannerConfig()
        return cls(
            terrain=terrain,
            analyzer=TerrainSafetyAnalyzer(terrain=terrain, config=config.safety),
            catalog=catalog if catalog is not None else dict(DEFAULT_ROOM_TYPES),
            rng=np.random.default_rng(config.seed),
            config=config,
        )


@dataclass(frozen=True)
class Plan:
    """Result of a successful generation."""

    graph: FortressGraph
    tiles: tuple[TileOp, ...]
    hub_center: tuple[int, int]
    hub_z: int
    depot_z: int
    entry: Coordinate
    direction: Direction
    direction_score: float

    @property
    def rooms(self) -> list[Room]:
        return [room for _, room in sorted(self.graph.rooms.items())]

    def to_dict(self) -> dict:
        return {
            "hub_center": list(self.hub_center),
            "hub_z": self.hub_z,
            "depot_z": self.depot_z,
            "entry": list(self.entry),
            "direction": self.direction.value,
            "direction_score": self.direction_score,
            "graph": self.graph.to_dict(),
            "tiles": [tile.to_dict() for tile in self.tiles],
        }


@dataclass(frozen=True)
class ExpansionResult:
    """Result of one expansion call. Empty when nothing was built."""

    tiles: tuple[TileOp, ...] = ()
    rooms: tuple[Room, ...] = ()
    z: int | None = None

    @property
    def is_empty(self) -> bool:
        return not self.tiles


class TileAccumulator:
    """Per-tile excavation op list that keeps first-seen order."""

    def __init__(self):
        self._ops: dict[Coordinate, DigType] = {}

    def __len__(self) -> int:
        return len(self._ops)

    def add(self, coordinate: tuple[int, int, int], op: DigType) -> None:
        coordinate = Coordinate(*coordinate)
        current = self._ops.get(coordinate)
        if op == DigType.DIG and current is not None and current != DigType.DIG:
            return
        self._ops[coordinate] = op

    def add_ops(self, ops: Iterable[TileOp]) -> None:
        for tile in ops:
            self.add(tile.coordinate, tile.op)

    def dig(self, coordinates: Iterable[tuple[int, int, int]]) -> None:
        for coordinate in coordinates:
            self.add(coordinate, DigType.DIG)

    def to_tuple(self) -> tuple[TileOp, ...]:
        return tuple(
            TileOp(x=c.x, y=c.y, z=c.z, op=op) for c, op in self._ops.items()
        )


class FortressPlanGenerator:
    """Plans a fortress from a surface anchor, and grows existing plans."""

    def __init__(self, context: PlanningContext):
        self.context = context

    @property
    def config(self) -> PlannerConfig:
        return self.context.config

    @property
    def analyzer(self) -> TerrainSafetyAnalyzer:
        return self.context.analyzer

    def _room_type(self, type_id: str) -> RoomTypeSpec | None:
        spec = self.context.catalog.get(type_id)
        if spec is None:
            console_logger.warning(f"Room type {type_id} missing from catalog")
        return spec

    def generate(
        self,
        anchor: tuple[int, int, int],
        population: int | None = None,
        military_count: int = 0,
    ) -> Plan:
        """Generate a complete fortress plan.

        Args:
            anchor: Surface (x, y, z) the fortress is dug from.
            population: Settlement population, used to report the demand left
                after the template levels. Defaults to
                `PlannerConfig.default_population`.
            military_count: Number of soldiers.

        Returns:
            The plan.

        Raises:
            FortressPlanError: If every direction is too dangerous, no safe
                ramp path exists or the central stairwell column is unsafe.
        """
        cfg = self.config
        anchor = Coordinate(*anchor)
        if population is None:
            population = cfg.default_population
        surface_z = anchor.z

        # Direction.
        safest = self.analyzer.find_safest_direction(anchor)
        if safest.score <= cfg.min_direction_score:
            console_logger.error(
                f"No safe direction from {tuple(anchor)}: best is "
                f"{safest.direction.value} with score {safest.score:.1f}"
            )
            raise FortressPlanError(
                f"No safe dig direction from {tuple(anchor)} "
                f"(best score {safest.score:.1f})"
            )
        if safest.score < self.analyzer.config.safe_score_threshold:
            console_logger.warning(
                f"Best direction {safest.direction.value} scores only "
                f"{safest.score:.1f}: {'; '.join(safest.hazards[:3])}"
            )
        direction = safest.direction

        # Entry and hub depth.
        entry_x, entry_y = direction.step(anchor.x, anchor.y, cfg.entry_offset)
        entry = Coordinate(entry_x, entry_y, surface_z)
        hub_z = self.analyzer.find_enclosed_z_level(
            center=(entry_x, entry_y),
            surface_z=surface_z,
            width=cfg.hub_area_size,
            height=cfg.hub_area_size,
        )
        console_logger.debug(
            f"Entry point ({entry_x}, {entry_y}) surface_z={surface_z} hub_z={hub_z}"
        )

        # Ramp.
        goal = Coordinate(entry_x, entry_y, surface_z - cfg.ramp_depth)
        console_logger.info(
            f"Routing ramp from z={surface_z} to z={goal.z} heading {direction.value}"
        )
        path = self.route_ramp(start=anchor, goal=goal)
        if path is None:
            console_logger.error(
                f"Ramp routing failed: no safe path from {tuple(anchor)} to "
                f"{tuple(goal)}"
            )
            raise FortressPlanError(
                f"No safe ramp path from {tuple(anchor)} to {tuple(goal)}"
            )

        graph = FortressGraph()
        builder = RoomGraphBuilder(
            graph=graph, rng=self.context.rng, config=cfg.layout
        )
        tiles = TileAccumulator()
        tiles.add_ops(self.ramp_tile_ops(path))

        # Depot at the ramp terminus.
        terminus = path[-1]
        depot_z = terminus.z
        depot_spec = self._room_type("trade_depot")
        depot = None
        if depot_spec is not None:
            half = cfg.depot_size // 2
            depot = graph.create_room(
                room_type=depot_spec,
                x=terminus.x - half,
                y=terminus.y - half,
                z=depot_z,
                width=cfg.depot_size,
                height=cfg.depot_size,
            )
            tiles.dig(depot.tiles())
            console_logger.info(
                f"Placing trade depot {surface_z - depot_z} levels below the surface"
            )

        # Trap hall from the depot to the hub.
        hub_x, hub_y = self._clamp_to_map(
            *direction.step(entry_x, entry_y, cfg.hub_offset),
            margin=cfg.stairwell_width // 2,
        )
        if depot is not None:
            hall = builder.connect(
                from_id=depot.room_id,
                to_id=HUB_ID,
                start_xy=(terminus.x, terminus.y),
                end_xy=(hub_x, hub_y),
                z=depot_z,
            )
            tiles.dig(hall.tiles)

        # Central stairwell.
        if hub_z >= depot_z:
            hub_z = depot_z - cfg.min_hub_depth_below_depot
        stairwell = Stairwell(
            center_x=hub_x,
            center_y=hub_y,
            top_z=depot_z,
            bottom_z=hub_z - cfg.stairwell_extra_depth,
            width=cfg.stairwell_width,
        )
        self._check_stairwell_column(stairwell)
        graph.add_stairwell(stairwell)
        tiles.add_ops(stairwell.tile_ops())

        # Template levels.
        placed = self._place_template_rooms(
            builder=builder, tiles=tiles, hub_x=hub_x, hub_y=hub_y, hub_z=hub_z
        )

        console_logger.info(
            f"Fortress plan generated: {placed} template rooms, "
            f"{len(graph.corridors)} corridors, {len(tiles)} tiles "
            f"(direction={direction.value}, depot_z={depot_z}, hub_z={hub_z})"
        )
        outstanding = compute_demand(
            catalog=self.context.catalog,
            graph=graph,
            population=population,
            military_count=military_count,
        )
        if outstanding:
            console_logger.info(
                f"Outstanding demand for population {population} "
                f"({military_count} military): "
                + ", ".join(f"{d.room_type.type_id} x{d.count}" for d in outstanding)
            )
        return Plan(
            graph=graph,
            tiles=tiles.to_tuple(),
            hub_center=(hub_x, hub_y),
            hub_z=hub_z,
            depot_z=depot_z,
            entry=entry,
            direction=direction,
            direction_score=safest.score,
        )

    def _clamp_to_map(self, x: int, y: int, margin: int) -> tuple[int, int]:
        x_max, y_max, _ = self.context.terrain.map_bounds()
        clamped = (
            min(max(x, margin), x_max - 1 - margin),
            min(max(y, margin), y_max - 1 - margin),
        )
        if clamped != (x, y):
            console_logger.warning(
                f"Hub center ({x}, {y}) is too close to the map border, "
                f"moved to {clamped}"
            )
        return clamped

    def _check_stairwell_column(self, stairwell: Stairwell) -> None:
        half = stairwell.width // 2
        for z in range(stairwell.top_z, stairwell.bottom_z - 1, -1):
            if not self.analyzer.check_area_safety(
                stairwell.center_x - half,
                stairwell.center_y - half,
                z,
                stairwell.width,
                stairwell.width,
            ):
                console_logger.error(
                    f"Central stairwell at ({stairwell.center_x}, "
                    f"{stairwell.center_y}) is unsafe at z={z}"
                )
                raise FortressPlanError(
                    f"Unsafe central stairwell at ({stairwell.center_x}, "
                    f"{stairwell.center_y}, {z})"
                )

    def route_ramp(
        self, start: Coordinate, goal: Coordinate
    ) -> list[Coordinate] | None:
        """Route a wagon-wide ramp between two points with A*.

        Moves are the four horizontal steps and the four horizontal steps that
        also descend one level. A step is forbidden when any tile of the ramp
        footprint at its target is unsafe.
        """
        cfg = self.config
        surface_z = start.z
        x_max, y_max, _ = self.context.terrain.map_bounds()
        half = cfg.ramp_width // 2
        impassable = cfg.pathfinding.impassable_cost
        footprint_cache: dict[Coordinate, bool] = {}

        def footprint_is_safe(node: Coordinate) -> bool:
            if node not in footprint_cache:
                footprint_cache[node] = all(
                    self.analyzer.analyze_tile((node.x + dx, node.y + dy, node.z)).safe
                    for dx in range(-half, half + 1)
                    for dy in range(-half, half + 1)
                )
            return footprint_cache[node]

        def neighbors(node: Coordinate) -> list[Coordinate]:
            flat = [node.offset(dx, dy, 0) for dx, dy, _ in HORIZONTAL_OFFSETS]
            down = [node.offset(dx, dy, -1) for dx, dy, _ in HORIZONTAL_OFFSETS]
            return flat + down

        def cost(current: Coordinate, nxt: Coordinate) -> float:
            if not footprint_is_safe(nxt):
                return impassable
            step = abs(current.x - nxt.x) + abs(current.y - nxt.y)
            descent = current.z - nxt.z
            step += abs(descent)
            if descent > 0:
                step += cfg.descent_penalty * descent
            return step

        def heuristic(node: Coordinate, target: Coordinate) -> float:
            # Vertical progress is weighted over horizontal travel.
            dz = abs(node.z - target.z)
            dxy = abs(node.x - target.x) + abs(node.y - target.y)
            return 3 * dz + 2 * dxy

        def is_valid(node: Coordinate) -> bool:
            # The whole footprint must lie inside the map.
            return (
                half <= node.x < x_max - half
                and half <= node.y < y_max - half
                and 0 <= node.z <= surface_z
            )

        return find_path(
            start=start,
            goal=goal,
            callbacks=PathCallbacks(
                neighbors=neighbors,
                cost=cost,
                heuristic=heuristic,
                is_valid=is_valid,
            ),
            config=cfg.pathfinding,
        )

    def ramp_tile_ops(self, path: list[Coordinate]) -> list[TileOp]:
        """Excavation ops for a ramp path.

        A descending step puts ramps at the new level and channels the
        footprint above them; a flat step (and the start) is dug out.
        """
        half = self.config.ramp_width // 2
        offsets = [
            (dx, dy) for dx in range(-half, half + 1) for dy in range(-half, half + 1)
        ]
        ops = []
        previous = None
        for node in path:
            descending = previous is not None and node.z < previous.z
            for dx, dy in offsets:
                x, y = node.x + dx, node.y + dy
                if descending:
                    ops.append(TileOp(x=x, y=y, z=node.z, op=DigType.RAMP))
                    ops.append(TileOp(x=x, y=y, z=previous.z, op=DigType.CHANNEL))
                else:
                    ops.append(TileOp(x=x, y=y, z=node.z, op=DigType.DIG))
            previous = node
        return ops

    def _place_template_rooms(
        self,
        builder: RoomGraphBuilder,
        tiles: TileAccumulator,
        hub_x: int,
        hub_y: int,
        hub_z: int,
    ) -> int:
        placed = 0
        for level in DEFAULT_LEVEL_TEMPLATES:
            z = hub_z + level.offset
            for template in level.rooms:
                spec = self._room_type(template.type_id)
                if spec is None:
                    continue
                x = hub_x + template.dx - template.width // 2
                y = hub_y + template.dy - template.height // 2
                if not self.analyzer.check_area_safety(
                    x, y, z, template.width, template.height
                ):
                    console_logger.warning(
                        f"Skipping unsafe room {spec.name} at ({x},{y},{z})"
                    )
                    continue

                room = builder.graph.create_room(
                    room_type=spec,
                    x=x,
                    y=y,
                    z=z,
                    width=template.width,
                    height=template.height,
                )
                builder.embellish(room, is_area_safe=self.analyzer.check_area_safety)
                tiles.dig(room.tiles())
                corridor = builder.connect_to_hub(room, hub_x=hub_x, hub_y=hub_y)
                tiles.dig(corridor.tiles)
                placed += 1
        return placed

    def expand(
        self,
        graph: FortressGraph,
        hub_center: tuple[int, int],
        hub_z: int,
        population: int,
        military_count: int = 0,
    ) -> ExpansionResult:
        """Add one BSP-laid-out level for the most urgent outstanding demand.

        The level goes beneath the lowest existing level of the demand's band
        (or beneath the band's default depth), skipping up to
        ``expansion_max_skip`` unsafe or occupied levels. Rooms, corridors and
        the stairwell extending the hub shaft are appended to ``graph``. Tiles
        of stairwells already in ``graph`` are never re-dug.

        Args:
            graph: Graph to extend, usually `Plan.graph`.
            hub_center: (x, y) of the central stairwell.
            hub_z: Hub level of the plan.
            population: Current population.
            military_count: Current number of soldiers.

        Returns:
            The new tiles and rooms. Empty if there is no demand that can be
            met underground, no safe level, or no room fit.
        """
        cfg = self.config
        catalog = self.context.catalog
        hub_x, hub_y = hub_center

        has_needs, demands = check_expansion_needs(
            catalog=catalog,
            graph=graph,
            population=population,
            military_count=military_count,
        )
        if not has_needs:
            console_logger.info("No expansion needed: all room types at capacity")
            return ExpansionResult()

        band = next(
            (
                d.room_type.z_band
                for d in demands
                if d.room_type.z_band in EXPANDABLE_BANDS
            ),
            None,
        )
        if band is None:
            console_logger.info(
                "Outstanding demand cannot be met by digging a new level: "
                + ", ".join(d.room_type.type_id for d in demands)
            )
            return ExpansionResult()
        band_demands = [d for d in demands if d.room_type.z_band == band]

        band_levels = [
            room.z for room in graph.rooms.values() if room.room_type.z_band == band
        ]
        previous_z = min([hub_z + band.offset, *band_levels])
        new_z = self.find_expansion_level(
            previous_z, hub_x, hub_y, occupied_levels=graph.levels()
        )
        if new_z is None:
            return ExpansionResult()
        stair_ops = graph.stair_ops()

        corridor_count = len(graph.corridors)
        builder = RoomGraphBuilder(
            graph=graph, rng=self.context.rng, config=cfg.layout
        )
        rooms = builder.build_level(
            center_x=hub_x,
            center_y=hub_y,
            z=new_z,
            width=cfg.layout.level_width,
            height=cfg.layout.level_height,
            demands=band_demands,
            is_area_safe=self.analyzer.check_area_safety,
        )
        if not rooms:
            console_logger.warning(f"Expansion level z={new_z} fit no rooms")
            return ExpansionResult(z=new_z)

        builder.connect_to_hub(rooms[0], hub_x=hub_x, hub_y=hub_y)

        # Stairs already planned keep their op; rooms and corridors dig around them.
        tiles = TileAccumulator()
        for room in rooms:
            tiles.dig(tile for tile in room.tiles() if tile not in stair_ops)
        for corridor in graph.corridors[corridor_count:]:
            tiles.dig(tile for tile in corridor.tiles if tile not in stair_ops)

        # Extend the shaft under the hub down to the new level.
        shaft_bottom = graph.shaft_bottom(hub_x, hub_y)
        if shaft_bottom is None or shaft_bottom > new_z:
            stairwell = graph.add_stairwell(
                Stairwell(
                    center_x=hub_x,
                    center_y=hub_y,
                    top_z=previous_z if shaft_bottom is None else shaft_bottom,
                    bottom_z=new_z,
                    width=1,
                )
            )
            for tile in stairwell.tile_ops():
                if tile.coordinate in stair_ops:
                    tiles.add(tile.coordinate, DigType.STAIR_UPDOWN)
                else:
                    tiles.add(tile.coordinate, tile.op)

        console_logger.info(
            f"Fortress expanded: new {band.value} level at z={new_z} with "
            f"{len(rooms)} rooms"
        )
        return ExpansionResult(tiles=tiles.to_tuple(), rooms=tuple(rooms), z=new_z)

    def find_expansion_level(
        self,
        current_lowest_z: int,
        center_x: int,
        center_y: int,
        occupied_levels: Iterable[int] = (),
    ) -> int | None:
        """First free, safe level below ``current_lowest_z``, trying a few levels.

        Levels in ``occupied_levels`` already hold rooms of another band and
        count as skipped.
        """
        cfg = self.config
        occupied = set(occupied_levels)
        for skip in range(1, cfg.expansion_max_skip + 1):
            z = current_lowest_z - skip
            if z < 0:
                break
            if z in occupied:
                console_logger.info(f"Expansion to z={z} blocked: level has rooms")
                continue
            safe, reason = self.analyzer.check_level_safety(
                z,
                center_x,
                center_y,
                radius=cfg.level_check_radius,
                step=cfg.level_check_step,
            )
            if safe:
                if skip > 1:
                    console_logger.info(
                        f"Found safe level at z={z} (skipped {skip - 1} levels)"
                    )
                return z
            console_logger.info(f"Expansion to z={z} blocked: {reason}")

        console_logger.error(
            f"Could not find a safe expansion level below z={current_lowest_z}"
        )
        return None


def generate_fortress_plan(
    context: PlanningContext,
    anchor: tuple[int, int, int],
    population: int | None = None,
    military_count: int = 0,
) -> Plan | None:
    """Generate a plan, returning None instead of raising on failure."""
    try:
        return FortressPlanGenerator(context).generate(
            anchor=anchor, population=population, military_count=military_count
        )
    except FortressPlanError as e:
        console_logger.error(f"Fortress plan generation failed: {e}")
        return None
