"""Tests for the grid terrain oracle."""

import unittest

from omegaconf import OmegaConf

from fortsmith.terrain.terrain_query import GridTerrain, LiquidKind


class TestGridTerrain(unittest.TestCase):
    """Tests for GridTerrain queries and mutators."""

    def setUp(self):
        self.terrain = GridTerrain.solid(width=20, height=20, depth=10, surface_z=6)

    def test_solid_world_with_surface(self):
        """Levels above the surface are sky, the surface itself stays solid."""
        assert self.terrain.is_solid_wall(5, 5, 6)
        assert not self.terrain.is_outdoors(5, 5, 6)
        assert self.terrain.is_outdoors(5, 5, 7)
        assert self.terrain.is_open_space(5, 5, 9)
        assert not self.terrain.is_floor(5, 5, 9)
        assert self.terrain.map_bounds() == (20, 20, 10)

    def test_solid_world_without_surface(self):
        """Without a surface level every voxel is rock."""
        terrain = GridTerrain.solid(width=4, height=4, depth=4)
        assert terrain.is_solid_wall(3, 3, 3)
        assert not terrain.is_outdoors(3, 3, 3)

    def test_invalid_dimensions(self):
        """Non-positive dimensions are rejected."""
        with self.assertRaises(ValueError):
            GridTerrain(width=0, height=5, depth=5)

    def test_out_of_bounds_queries_are_conservative(self):
        """Queries outside the map answer 'nothing here'."""
        for coordinate in [(-1, 0, 0), (20, 0, 0), (0, 0, 10)]:
            assert self.terrain.tile_liquid(*coordinate) == (0, None)
            assert not self.terrain.is_aquifer(*coordinate)
            assert not self.terrain.is_open_space(*coordinate)
            assert not self.terrain.is_solid_wall(*coordinate)
            assert not self.terrain.is_outdoors(*coordinate)
            assert not self.terrain.is_floor(*coordinate)

    def test_water_and_magma(self):
        """Liquids open the tile and report their level and kind."""
        self.terrain.add_water(x=2, y=2, z=3)
        self.terrain.add_magma(x=4, y=4, z=1, level=3)

        assert self.terrain.tile_liquid(2, 2, 3) == (7, LiquidKind.WATER)
        assert self.terrain.tile_liquid(4, 4, 1) == (3, LiquidKind.MAGMA)
        assert self.terrain.tile_liquid(3, 3, 3) == (0, None)
        assert self.terrain.is_open_space(2, 2, 3)
        assert not self.terrain.is_solid_wall(4, 4, 1)

    def test_boxes_are_clipped_to_the_map(self):
        """Boxes reaching past the border only touch in-bounds tiles."""
        self.terrain.add_water(x=-2, y=-2, z=0, width=4, height=4)

        assert self.terrain.tile_liquid(0, 0, 0)[1] == LiquidKind.WATER
        assert self.terrain.tile_liquid(1, 1, 0)[1] == LiquidKind.WATER
        assert self.terrain.tile_liquid(2, 2, 0) == (0, None)

    def test_aquifer_open_and_floor(self):
        """Aquifer flags, carved caverns and dug floors."""
        self.terrain.set_aquifer(x=1, y=1, z=2, width=2, height=2)
        self.terrain.carve_open(x=10, y=10, z=2, levels=2)
        self.terrain.set_floor(x=15, y=15, z=2)
        self.terrain.set_floor(x=50, y=50, z=2)  # Ignored outside the map.

        assert self.terrain.is_aquifer(2, 2, 2)
        assert not self.terrain.is_aquifer(3, 3, 2)
        assert self.terrain.is_open_space(10, 10, 3)
        assert not self.terrain.is_floor(10, 10, 3)
        assert self.terrain.is_floor(15, 15, 2)
        assert self.terrain.is_open_space(15, 15, 2)

    def test_from_config(self):
        """Terrain is built from a config group with optional hazard boxes."""
        cfg = OmegaConf.create(
            {
                "width": 30,
                "height": 20,
                "depth": 12,
                "surface_z": 8,
                "water": [{"x": 3, "y": 4, "z": 5, "width": 2}],
                "magma": [{"x": 10, "y": 10, "z": 1}],
                "aquifer": [{"x": 0, "y": 0, "z": 6, "width": 30, "height": 20}],
                "open": None,
            }
        )
        terrain = GridTerrain.from_config(cfg)

        assert terrain.map_bounds() == (30, 20, 12)
        assert terrain.is_outdoors(0, 0, 9)
        assert terrain.tile_liquid(4, 4, 5) == (7, LiquidKind.WATER)
        assert terrain.tile_liquid(5, 4, 5) == (0, None)
        assert terrain.tile_liquid(10, 10, 1)[1] == LiquidKind.MAGMA
        assert terrain.is_aquifer(29, 19, 6)


if __name__ == "__main__":
    unittest.main()
