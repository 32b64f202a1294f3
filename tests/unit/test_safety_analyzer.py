"""Tests for terrain safety analysis."""

import unittest

from fortsmith.terrain.safety_analyzer import (
    HazardType,
    SafetyConfig,
    TerrainSafetyAnalyzer,
)
from fortsmith.terrain.terrain_query import GridTerrain
from fortsmith.utils.geometry_utils import Coordinate, Direction


class BrokenTerrain(GridTerrain):
    """Terrain whose liquid queries always fail."""

    def tile_liquid(self, x, y, z):
        raise RuntimeError("world not loaded")


def make_analyzer(terrain: GridTerrain | None = None) -> TerrainSafetyAnalyzer:
    if terrain is None:
        terrain = GridTerrain.solid(width=100, height=100, depth=40, surface_z=35)
    return TerrainSafetyAnalyzer(terrain)


class TestTileAnalysis(unittest.TestCase):
    """Tests for per-tile hazard scoring."""

    def setUp(self):
        self.terrain = GridTerrain.solid(width=40, height=40, depth=20)
        self.analyzer = make_analyzer(self.terrain)

    def test_solid_rock_is_safe(self):
        """Plain rock away from the edge scores 100."""
        analysis = self.analyzer.analyze_tile((20, 20, 10))

        assert analysis.safe
        assert analysis.safety_score == 100
        assert analysis.hazards == []
        assert analysis.reason is None
        assert analysis.coordinate == Coordinate(20, 20, 10)

    def test_liquid_on_tile_is_immediate_fail(self):
        """Water or magma on the tile itself scores 0."""
        self.terrain.add_water(x=20, y=20, z=10)
        self.terrain.add_magma(x=10, y=10, z=10)

        water = self.analyzer.analyze_tile((20, 20, 10))
        magma = self.analyzer.analyze_tile((10, 10, 10))

        assert not water.safe
        assert water.safety_score == 0
        assert water.hazards == [HazardType.WATER]
        assert water.reason == "tile has water"
        assert magma.hazards == [HazardType.MAGMA]
        assert not magma.safe

    def test_adjacent_water_above(self):
        """Water over the tile costs 20 but leaves it above the threshold."""
        self.terrain.add_water(x=20, y=20, z=11)

        analysis = self.analyzer.analyze_tile((20, 20, 10))

        assert analysis.safety_score == 80
        assert analysis.hazards == [HazardType.WATER]
        assert analysis.safe
        # The strict footprint check rejects any liquid contact.
        assert not self.analyzer.is_safe_to_dig((20, 20, 10))

    def test_adjacent_magma_above_and_below(self):
        """Two magma neighbors push the score below the threshold."""
        self.terrain.add_magma(x=20, y=20, z=11)
        self.terrain.add_magma(x=20, y=20, z=9)

        analysis = self.analyzer.analyze_tile((20, 20, 10))

        assert analysis.safety_score == 40
        assert not analysis.safe
        assert "magma" in analysis.reason

    def test_aquifer_tile(self):
        """An aquifer tile loses 50 points."""
        self.terrain.set_aquifer(x=20, y=20, z=10)

        analysis = self.analyzer.analyze_tile((20, 20, 10))

        assert analysis.safety_score == 50
        assert HazardType.AQUIFER in analysis.hazards
        assert not analysis.safe

    def test_aquifer_neighbor_fails_strict_check(self):
        """A neighboring aquifer does not change the score but fails digging."""
        self.terrain.set_aquifer(x=20, y=20, z=9)

        assert self.analyzer.analyze_tile((20, 20, 10)).safe
        assert not self.analyzer.is_safe_to_dig((20, 20, 10))
        assert self.analyzer.is_safe_to_dig((25, 25, 10))

    def test_map_edge_penalty(self):
        """Tiles near the border lose 20 points and stay safe."""
        analysis = self.analyzer.analyze_tile((2, 20, 10))

        assert analysis.safety_score == 80
        assert analysis.hazards == [HazardType.EDGE]
        assert analysis.safe

    def test_is_near_edge(self):
        """Edge distance is measured against the map bounds."""
        assert self.analyzer.is_near_edge(4, 20)
        assert not self.analyzer.is_near_edge(5, 20)
        assert not self.analyzer.is_near_edge(34, 20)
        assert self.analyzer.is_near_edge(35, 20)
        assert self.analyzer.is_near_edge(20, 15, min_distance=16)

    def test_lateral_breach(self):
        """Open space beside a tile makes it unsafe whatever the score."""
        self.terrain.carve_open(x=21, y=20, z=10)

        analysis = self.analyzer.analyze_tile((20, 20, 10))

        assert analysis.safety_score == 100
        assert HazardType.OPEN_SPACE in analysis.hazards
        assert not analysis.safe
        assert "breach" in analysis.reason

    def test_results_are_cached(self):
        """Verdicts are memoised until the cache is cleared."""
        assert self.analyzer.analyze_tile((20, 20, 10)).safe
        self.terrain.add_water(x=20, y=20, z=10)
        assert self.analyzer.analyze_tile((20, 20, 10)).safe

        self.analyzer.clear_cache()
        assert not self.analyzer.analyze_tile((20, 20, 10)).safe

    def test_oracle_failure_is_unsafe(self):
        """A failing terrain oracle yields an unsafe verdict instead of raising."""
        analyzer = make_analyzer(BrokenTerrain(width=10, height=10, depth=10))

        analysis = analyzer.analyze_tile((5, 5, 5))

        assert not analysis.safe
        assert analysis.safety_score == 0
        assert analysis.reason.startswith("terrain data unavailable")
        assert not analyzer.is_safe_to_dig((5, 5, 5))

    def test_count_adjacent_liquids(self):
        """Adjacent liquid counts use the six face neighbors."""
        self.terrain.add_water(x=19, y=20, z=10)
        self.terrain.add_water(x=20, y=20, z=11)
        self.terrain.add_magma(x=20, y=21, z=10)

        assert self.analyzer.count_adjacent_water(20, 20, 10) == 2
        assert self.analyzer.count_adjacent_magma(20, 20, 10) == 1


class TestDirectionScoring(unittest.TestCase):
    """Tests for choosing a dig direction."""

    def test_uniform_rock_ties_go_north(self):
        """All directions score 100 in plain rock and north wins the tie."""
        analyzer = make_analyzer()

        result = analyzer.find_safest_direction((50, 50, 35))

        assert result.direction == Direction.NORTH
        assert result.score == 100.0
        assert result.hazards == []
        assert set(result.all_scores) == set(Direction)
        assert all(score == 100.0 for score in result.all_scores.values())

    def test_water_on_three_sides_picks_east(self):
        """Nearby water to the north, south and west leaves east."""
        terrain = GridTerrain.solid(width=100, height=100, depth=40, surface_z=35)
        terrain.add_water(x=50, y=46, z=35)
        terrain.add_water(x=50, y=54, z=35)
        terrain.add_water(x=46, y=50, z=35)
        analyzer = make_analyzer(terrain)

        result = analyzer.find_safest_direction((50, 50, 35))

        assert result.direction == Direction.EAST
        assert result.score == 100.0
        assert result.all_scores[Direction.NORTH] < 70.0
        assert result.all_scores[Direction.SOUTH] < 70.0
        assert result.all_scores[Direction.WEST] < 70.0

    def test_edge_endpoint_penalty(self):
        """Ending within ten tiles of the border costs 15 points."""
        analyzer = make_analyzer()

        result = analyzer.score_direction((50, 15, 35), Direction.NORTH)

        assert result.score == 85.0
        assert "near map edge" in result.hazards

    def test_magma_on_path(self):
        """Magma along the path costs a flat penalty plus proximity penalties."""
        terrain = GridTerrain.solid(width=100, height=100, depth=40, surface_z=35)
        terrain.add_magma(x=60, y=50, z=33)
        analyzer = make_analyzer(terrain)

        result = analyzer.score_direction((50, 50, 35), Direction.EAST)

        assert result.score < 60.0
        assert any("(60,50,33)" in hazard for hazard in result.hazards)

    def test_oracle_failure_scores_zero(self):
        """A failing oracle scores the direction 0."""
        analyzer = make_analyzer(BrokenTerrain(width=50, height=50, depth=10))

        result = analyzer.score_direction((25, 25, 5), Direction.SOUTH)

        assert result.score == 0.0
        assert result.hazards[0].startswith("terrain data unavailable")


class TestAreaAndLevelChecks(unittest.TestCase):
    """Tests for footprint, enclosure and level checks."""

    def setUp(self):
        self.terrain = GridTerrain.solid(width=100, height=100, depth=40, surface_z=35)
        self.analyzer = make_analyzer(self.terrain)

    def test_area_in_solid_rock(self):
        """A footprint deep in plain rock is safe."""
        assert self.analyzer.check_area_safety(40, 40, 20, 10, 10)

    def test_area_rejects_degenerate_footprint(self):
        """Empty footprints are never safe."""
        assert not self.analyzer.check_area_safety(40, 40, 20, 0, 10)

    def test_area_with_water_on_perimeter(self):
        """Water on the footprint border fails the check."""
        self.terrain.add_water(x=40, y=45, z=20)

        assert not self.analyzer.check_area_safety(40, 40, 20, 10, 10)

    def test_area_needs_solid_rock(self):
        """Open sky is not diggable."""
        assert not self.analyzer.check_area_safety(40, 40, 36, 5, 5)

    def test_is_enclosed_underground(self):
        """Rock is enclosed when rock (not sky) is found above it."""
        assert self.analyzer.is_enclosed_underground((50, 50, 30))
        assert not self.analyzer.is_enclosed_underground((50, 50, 35))
        assert not self.analyzer.is_enclosed_underground((50, 50, 36))

    def test_enclosure_looks_through_caverns(self):
        """Open underground tiles are looked through."""
        self.terrain.carve_open(x=50, y=50, z=31, levels=3)
        assert self.analyzer.is_enclosed_underground((50, 50, 30))

        self.terrain.carve_open(x=60, y=60, z=31, levels=5)
        assert not self.analyzer.is_enclosed_underground((60, 60, 30))

    def test_find_enclosed_z_level(self):
        """The shallowest qualifying level is three below the surface."""
        assert self.analyzer.find_enclosed_z_level((50, 50), 35) == 32

    def test_find_enclosed_z_level_fallback(self):
        """Without a qualifying level the fallback depth is used."""
        self.terrain.set_aquifer(x=0, y=0, z=0, width=100, height=100, levels=40)

        assert self.analyzer.find_enclosed_z_level((50, 50), 35) == 25

    def test_check_level_safety(self):
        """Sampled liquids, aquifers and caverns reject a level."""
        assert self.analyzer.check_level_safety(20, 50, 50) == (True, None)

        self.terrain.add_water(x=50, y=50, z=19)
        ok, reason = self.analyzer.check_level_safety(19, 50, 50)
        assert not ok
        assert reason.startswith("liquid")

        self.terrain.set_aquifer(x=60, y=60, z=18)
        ok, reason = self.analyzer.check_level_safety(18, 50, 50)
        assert not ok
        assert reason.startswith("aquifer")

        self.terrain.carve_open(x=30, y=30, z=17)
        ok, reason = self.analyzer.check_level_safety(17, 50, 50)
        assert not ok
        assert reason.startswith("cavern")

    def test_dug_floor_does_not_fail_level(self):
        """Existing dug floors are not caverns."""
        self.terrain.set_floor(x=30, y=30, z=17)

        assert self.analyzer.check_level_safety(17, 50, 50) == (True, None)


class TestSweeps(unittest.TestCase):
    """Tests for corridor validation and water/aquifer sweeps."""

    def setUp(self):
        self.terrain = GridTerrain.solid(width=100, height=100, depth=40)
        self.analyzer = make_analyzer(self.terrain)

    def test_validate_corridor(self):
        """The first unsafe tile of the corridor is reported."""
        assert self.analyzer.validate_corridor(50, 50, 55, 50, 20) == (
            True,
            None,
            None,
        )

        self.terrain.set_aquifer(x=52, y=50, z=20)
        ok, tile, reason = self.analyzer.validate_corridor(55, 50, 50, 50, 20)
        assert not ok
        assert tile == Coordinate(52, 50, 20)
        assert "aquifer" in reason

    def test_validate_corridor_too_large(self):
        """Oversized sweeps are refused."""
        ok, tile, reason = self.analyzer.validate_corridor(0, 0, 200, 200, 20)

        assert not ok
        assert tile is None
        assert reason == "corridor too large to validate"

    def test_scan_for_water(self):
        """The closest water tile and its direction are reported."""
        self.terrain.add_water(x=53, y=50, z=20)
        self.terrain.add_water(x=50, y=46, z=20)

        scan = self.analyzer.scan_for_water((50, 50, 20), radius=10)

        assert scan.count == 2
        assert scan.closest_distance == 3
        assert scan.closest_direction == Direction.EAST

    def test_scan_for_water_dry(self):
        """No water gives an empty summary."""
        scan = self.analyzer.scan_for_water((50, 50, 20))

        assert scan.count == 0
        assert scan.closest_distance is None
        assert scan.closest_direction is None

    def test_scan_for_aquifer(self):
        """Aquifer tiles within the radius are counted."""
        self.terrain.set_aquifer(x=45, y=45, z=20, width=3, height=3)

        assert self.analyzer.scan_for_aquifer((50, 50, 20), radius=10) == 9
        assert self.analyzer.scan_for_aquifer((50, 50, 20), radius=2) == 0


class TestSafetyConfig(unittest.TestCase):
    """Tests for SafetyConfig construction."""

    def test_from_config_overrides(self):
        """Known keys override defaults and unknown keys are reported."""
        with self.assertLogs("fortsmith.utils.config_utils", level="WARNING"):
            config = SafetyConfig.from_config(
                {"safe_score_threshold": 60, "bogus": 1}
            )

        assert config.safe_score_threshold == 60
        assert config.min_edge_distance == 5

    def test_from_config_none(self):
        """A missing section gives defaults."""
        assert SafetyConfig.from_config(None) == SafetyConfig()


if __name__ == "__main__":
    unittest.main()
