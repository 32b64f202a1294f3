"""
Integration tests for end-to-end fortress planning: direction choice, ramp,
depot, stairwell, template levels, expansion and persistence.
"""

import json
import logging
import unittest

from pathlib import Path

from hydra import compose, initialize_config_dir

from fortsmith.planning import build_plan_generator
from fortsmith.planning.ascii_map import generate_ascii_level_map
from fortsmith.planning.fortress_graph import HUB_ID, DigType, FortressGraph
from fortsmith.planning.fortress_planner import (
    FortressPlanGenerator,
    PlannerConfig,
    PlanningContext,
    generate_fortress_plan,
)
from fortsmith.terrain.terrain_query import GridTerrain
from fortsmith.utils.geometry_utils import Coordinate, Direction

console_logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).resolve().parents[2] / "configurations"


def make_context(terrain: GridTerrain, seed: int = 0) -> PlanningContext:
    return PlanningContext.create(terrain=terrain, config=PlannerConfig(seed=seed))


class TestSolidWorldPlan(unittest.TestCase):
    """Plan a fortress in a uniform rock world."""

    @classmethod
    def setUpClass(cls):
        cls.terrain = GridTerrain.solid(width=100, height=100, depth=40, surface_z=35)
        cls.generator = FortressPlanGenerator(make_context(cls.terrain))
        cls.plan = cls.generator.generate(anchor=(50, 50, 35), population=7)
        cls.ops = {tile.coordinate: tile.op for tile in cls.plan.tiles}

    def test_layout_anchors(self):
        """Uniform rock heads north and forces the hub below the depot."""
        plan = self.plan

        assert plan.direction == Direction.NORTH
        assert plan.direction_score == 100.0
        assert plan.entry == Coordinate(50, 45, 35)
        assert plan.depot_z == 15
        assert plan.hub_z == 12
        assert plan.hub_center == (50, 30)

    def test_depot_at_ramp_terminus(self):
        depot = self.plan.graph.rooms_by_type("trade_depot")

        assert len(depot) == 1
        assert (depot[0].x, depot[0].y, depot[0].z) == (47, 42, 15)
        assert (depot[0].width, depot[0].height) == (7, 7)
        assert depot[0].connected_to == {HUB_ID}

    def test_central_stairwell(self):
        """The stairwell runs from the depot level to four below the hub."""
        stairwell = self.plan.graph.stairwells[0]

        assert (stairwell.top_z, stairwell.bottom_z) == (15, 8)
        assert (stairwell.center_x, stairwell.center_y) == (50, 30)
        assert self.ops[Coordinate(50, 30, 15)] == DigType.STAIR_DOWN
        assert self.ops[Coordinate(50, 30, 12)] == DigType.STAIR_UPDOWN
        assert self.ops[Coordinate(51, 31, 8)] == DigType.STAIR_UP

    def test_template_rooms(self):
        """Every template room fits in solid rock and is linked to the hub."""
        graph = self.plan.graph

        assert len(graph) == 14
        assert graph.levels() == [15, 12, 11, 10, 9, 8]
        assert graph.count_rooms_by_type("workshop_hall") == 2
        assert graph.count_rooms_by_type("storage_main") == 2
        assert graph.count_rooms_by_type("dormitory") == 4
        assert {room.z for room in graph.rooms_by_type("dormitory")} == {9}
        assert {room.z for room in graph.rooms_by_type("barracks")} == {8}
        assert all(HUB_ID in room.connected_to for room in self.plan.rooms)
        assert len(graph.corridors) == 14

    def test_every_room_is_excavated(self):
        for room in self.plan.rooms:
            assert all(tile in self.ops for tile in room.tiles())
        for corridor in self.plan.graph.corridors:
            assert all(tile in self.ops for tile in corridor.tiles)

    def test_ramp_ops(self):
        """The ramp descends from the surface to the depot level."""
        ramp_levels = {c.z for c, op in self.ops.items() if op == DigType.RAMP}

        assert min(ramp_levels) == 15
        assert max(ramp_levels) == 34
        assert any(op == DigType.CHANNEL for op in self.ops.values())
        assert len(self.ops) == len(self.plan.tiles)

    def test_plan_is_serializable(self):
        """Plans survive a JSON round trip of their graph."""
        data = json.loads(json.dumps(self.plan.to_dict()))
        restored = FortressGraph.from_dict(data["graph"])

        assert restored.to_dict() == data["graph"]
        assert data["direction"] == "north"
        assert data["hub_center"] == [50, 30]
        assert len(data["tiles"]) == len(self.plan.tiles)

    def test_level_rendering(self):
        level_map = generate_ascii_level_map(
            self.plan.graph, z=12, tiles=self.plan.tiles
        )

        assert "Workshop Hall" in level_map.legend
        assert "X" in level_map.ascii_art


class TestSmallWorldPlan(unittest.TestCase):
    """A solid world reaching only 20 tiles past the anchor still plans."""

    def test_plan_stays_inside_the_map(self):
        terrain = GridTerrain.solid(width=41, height=41, depth=40, surface_z=35)

        plan = FortressPlanGenerator(make_context(terrain)).generate((20, 20, 35))

        assert plan.tiles
        assert len(plan.graph.rooms_by_type("trade_depot")) == 1
        assert plan.hub_center == (20, 1)
        stairwell = plan.graph.stairwells[0]
        assert stairwell.top_z - stairwell.bottom_z + 1 >= 4
        for tile in plan.tiles:
            assert 0 <= tile.x < 41
            assert 0 <= tile.y < 41
            assert 0 <= tile.z < 40


class TestPlanDeterminism(unittest.TestCase):
    """The same seed and terrain give the same plan."""

    def test_same_seed_same_plan(self):
        terrain = GridTerrain.solid(width=100, height=100, depth=40, surface_z=35)

        first = generate_fortress_plan(make_context(terrain, seed=4), (50, 50, 35))
        second = generate_fortress_plan(make_context(terrain, seed=4), (50, 50, 35))

        assert first.to_dict() == second.to_dict()


class TestHazardousWorldPlan(unittest.TestCase):
    """Plans avoid nearby water."""

    def test_water_on_three_sides_heads_east(self):
        terrain = GridTerrain.solid(width=100, height=100, depth=40, surface_z=35)
        terrain.add_water(x=50, y=46, z=35)
        terrain.add_water(x=50, y=54, z=35)
        terrain.add_water(x=46, y=50, z=35)

        plan = FortressPlanGenerator(make_context(terrain)).generate((50, 50, 35))

        assert plan.direction == Direction.EAST
        assert plan.entry == Coordinate(55, 50, 35)
        assert plan.hub_center == (70, 50)
        water = {(50, 46, 35), (50, 54, 35), (46, 50, 35)}
        assert not water & {tuple(tile.coordinate) for tile in plan.tiles}

    def test_configured_river_world(self):
        """The shipped river/aquifer terrain plans north of the anchor."""
        with initialize_config_dir(config_dir=str(CONFIG_DIR), version_base=None):
            cfg = compose(config_name="config", overrides=["terrain=river_aquifer"])

        terrain = GridTerrain.from_config(cfg.terrain)
        generator = build_plan_generator(cfg=cfg.planner, terrain=terrain)
        anchor = (cfg.anchor.x, cfg.anchor.y, cfg.anchor.z)
        plan = generator.generate(anchor=anchor, population=cfg.population)

        assert anchor == (50, 50, 45)
        assert plan.direction == Direction.NORTH
        assert plan.depot_z == 25
        assert plan.hub_z == 22
        for tile in plan.tiles:
            assert terrain.tile_liquid(tile.x, tile.y, tile.z) == (0, None)
            assert not terrain.is_aquifer(tile.x, tile.y, tile.z)


class TestExpansion(unittest.TestCase):
    """Grow a generated fortress."""

    def setUp(self):
        terrain = GridTerrain.solid(width=100, height=100, depth=40, surface_z=35)
        self.generator = FortressPlanGenerator(make_context(terrain))
        self.plan = self.generator.generate(anchor=(50, 50, 35), population=7)

    def test_expand_living_band(self):
        """Missing bedrooms are dug below the military level, off the shaft."""
        rooms_before = len(self.plan.graph)

        result = self.generator.expand(
            graph=self.plan.graph,
            hub_center=self.plan.hub_center,
            hub_z=self.plan.hub_z,
            population=7,
        )

        assert not result.is_empty
        assert result.z == 7
        assert 1 <= len(result.rooms) <= 7
        assert all(room.room_type.type_id == "bedroom" for room in result.rooms)
        assert all(room.z == 7 for room in result.rooms)
        assert len(self.plan.graph) == rooms_before + len(result.rooms)
        assert HUB_ID in result.rooms[0].connected_to

        stairwell = self.plan.graph.stairwells[-1]
        assert (stairwell.top_z, stairwell.bottom_z, stairwell.width) == (8, 7, 1)
        ops = {tile.coordinate: tile.op for tile in result.tiles}
        assert ops[Coordinate(50, 30, 8)] == DigType.STAIR_UPDOWN
        assert ops[Coordinate(50, 30, 7)] == DigType.STAIR_UP

    def test_expansion_respects_existing_layout(self):
        """New rooms never share tiles with other rooms or re-dig planned stairs."""
        graph = self.plan.graph
        stair_tiles = set(graph.stair_ops())
        existing_levels = set(graph.levels())

        result = self.generator.expand(
            graph=graph,
            hub_center=self.plan.hub_center,
            hub_z=self.plan.hub_z,
            population=60,
        )

        assert not result.is_empty
        assert result.z not in existing_levels
        for room in result.rooms:
            others = [
                other
                for other in graph.rooms_on_level(room.z)
                if other.room_id != room.room_id
            ]
            for other in others:
                assert not set(room.tiles()) & set(other.tiles())
        for tile in result.tiles:
            if tile.coordinate in stair_tiles:
                assert tile.op != DigType.DIG

    def test_repeated_expansion_goes_deeper(self):
        """Each expansion of the same band is placed below the previous one."""
        kwargs = dict(
            graph=self.plan.graph,
            hub_center=self.plan.hub_center,
            hub_z=self.plan.hub_z,
            population=40,
        )

        first = self.generator.expand(**kwargs)
        second = self.generator.expand(**kwargs)

        assert first.z == 7
        assert second.z == 6
        assert all(room.room_type.z_band.value == "living" for room in second.rooms)


if __name__ == "__main__":
    unittest.main()
