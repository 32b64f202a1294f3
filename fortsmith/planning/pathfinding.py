"""Generic A* search over an integer 3D grid.

The search knows nothing about terrain. Callers describe the graph with four
callbacks (neighbors, step cost, heuristic, node validity), which lets the same
search drive ramp routing, tunnel routing and tests on toy grids.

Properties
----------
- **Determinism**: The frontier is a binary heap ordered by ``(f, insertion
  counter)``. Equal-f nodes are expanded in the order they were pushed, so the
  same callbacks always yield the same path.
- **Bounded**: The search gives up after ``max_explored_nodes`` expansions.
- **Forbidden steps**: A step whose cost is at least ``impassable_cost`` (this
  includes ``math.inf``) is never taken. Hazards are expressed this way rather
  than as a large-but-finite detour.
"""

import heapq
import itertools
import logging

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Sequence

from omegaconf import DictConfig

from fortsmith.utils.config_utils import dataclass_from_config
from fortsmith.utils.geometry_utils import CARDINAL_OFFSETS_3D, Coordinate

console_logger = logging.getLogger(__name__)


@dataclass
class PathfindingConfig:
    """Limits for the A* search."""

    max_explored_nodes: int = 5000
    """Expansions allowed before the search reports failure."""

    impassable_cost: float = 999_999.0
    """Step costs at or above this forbid the transition."""

    @classmethod
    def from_config(
        cls, cfg: DictConfig | dict[str, Any] | None
    ) -> "PathfindingConfig":
        return dataclass_from_config(cls, cfg)


@dataclass
class PathCallbacks:
    """Graph description consumed by `find_path`."""

    neighbors: Callable[[Coordinate], Iterable[Coordinate]]
    """Candidate successors of a node."""

    cost: Callable[[Coordinate, Coordinate], float]
    """Cost of stepping from the first node to the second."""

    heuristic: Callable[[Coordinate, Coordinate], float]
    """Estimated remaining cost from a node to the goal."""

    is_valid: Callable[[Coordinate], bool]
    """Whether a node may be entered at all."""


def find_path(
    start: tuple[int, int, int],
    goal: tuple[int, int, int],
    callbacks: PathCallbacks,
    config: PathfindingConfig | None = None,
) -> list[Coordinate] | None:
    """Find a path from start to goal with A*.

    Args:
        start: Start node.
        goal: Goal node. Reached only on exact equality.
        callbacks: Graph description.
        config: Search limits. Defaults to `PathfindingConfig()`.

    Returns:
        The node sequence from start to goal inclusive, or None when the
        frontier empties or the explored-node cap is reached.
    """
    if config is None:
        config = PathfindingConfig()
    start = Coordinate(*start)
    goal = Coordinate(*goal)

    if start == goal:
        return [start]

    counter = itertools.count()
    frontier: list[tuple[float, int, Coordinate]] = [(0.0, next(counter), start)]
    came_from: dict[Coordinate, Coordinate] = {}
    cost_so_far: dict[Coordinate, float] = {start: 0.0}
    closed: set[Coordinate] = set()
    explored = 0

    while frontier:
        _, _, current = heapq.heappop(frontier)
        if current in closed:
            # Stale entry superseded by a cheaper push.
            continue

        if current == goal:
            path = _reconstruct_path(came_from=came_from, start=start, goal=goal)
            console_logger.debug(
                f"Path found after {explored} expansions ({len(path)} nodes)"
            )
            return path

        explored += 1
        if explored > config.max_explored_nodes:
            console_logger.warning(
                f"Pathfinding gave up after {config.max_explored_nodes} expansions "
                f"({start} -> {goal})"
            )
            return None
        closed.add(current)

        current_cost = cost_so_far[current]
        for next_node in callbacks.neighbors(current):
            next_node = Coordinate(*next_node)
            if next_node in closed or not callbacks.is_valid(next_node):
                continue

            step_cost = callbacks.cost(current, next_node)
            if step_cost >= config.impassable_cost:
                continue

            new_cost = current_cost + step_cost
            if next_node not in cost_so_far or new_cost < cost_so_far[next_node]:
                cost_so_far[next_node] = new_cost
                came_from[next_node] = current
                priority = new_cost + callbacks.heuristic(next_node, goal)
                heapq.heappush(frontier, (priority, next(counter), next_node))

    console_logger.debug(f"No path from {start} to {goal} ({explored} expansions)")
    return None


def _reconstruct_path(
    came_from: dict[Coordinate, Coordinate], start: Coordinate, goal: Coordinate
) -> list[Coordinate]:
    path = [goal]
    node = goal
    while node != start:
        node = came_from[node]
        path.append(node)
    path.reverse()
    return path


def manhattan_heuristic(a: Coordinate, b: Coordinate) -> float:
    """Manhattan distance with vertical moves counted twice."""
    return abs(a.x - b.x) + abs(a.y - b.y) + 2 * abs(a.z - b.z)


def grid_neighbors_6(node: Coordinate) -> list[Coordinate]:
    """The six face neighbors of a node (up, down, then horizontal)."""
    return [node.offset(dx, dy, dz) for dx, dy, dz in CARDINAL_OFFSETS_3D]


def path_cost(
    path: Sequence[Coordinate], cost: Callable[[Coordinate, Coordinate], float]
) -> float:
    """Sum of step costs along a path."""
    return sum(cost(a, b) for a, b in zip(path, path[1:]))
