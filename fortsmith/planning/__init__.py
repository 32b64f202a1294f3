"""Fortress layout planning: pathfinding, partitioning, room graph and plans."""

from omegaconf import DictConfig

from fortsmith.planning.fortress_graph import FortressGraph, Room, TileOp
from fortsmith.planning.fortress_planner import (
    ExpansionResult,
    FortressPlanError,
    FortressPlanGenerator,
    Plan,
    PlannerConfig,
    PlanningContext,
    generate_fortress_plan,
)
from fortsmith.planning.room_types import room_catalog_from_config
from fortsmith.terrain.terrain_query import TerrainQuery

__all__ = [
    "ExpansionResult",
    "FortressGraph",
    "FortressPlanError",
    "FortressPlanGenerator",
    "Plan",
    "PlannerConfig",
    "PlanningContext",
    "Room",
    "TileOp",
    "build_plan_generator",
    "generate_fortress_plan",
]


def build_plan_generator(
    cfg: DictConfig, terrain: TerrainQuery
) -> FortressPlanGenerator:
    """
    Build a plan generator from the ``planner`` config group.

    Args:
        cfg (DictConfig): The planner configuration. An optional ``room_types``
            list replaces the built-in room catalog.
        terrain (TerrainQuery): The terrain to plan in.

    Returns:
        FortressPlanGenerator: A generator with a fresh planning context.
    """
    config = PlannerConfig.from_config(cfg)
    catalog = room_catalog_from_config(cfg.get("room_types"))
    context = PlanningContext.create(terrain=terrain, config=config, catalog=catalog)
    return FortressPlanGenerator(context)
