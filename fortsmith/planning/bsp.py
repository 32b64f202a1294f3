"""Binary space partitioning of a z-level rectangle into room footprints.

Nodes live in a flat arena (`BSPTree.nodes`) and refer to their children by
index. The root is always index 0. Leaves may carry the id of the room planned
inside them; the tree never owns rooms.
"""

import logging

from dataclasses import dataclass
from typing import Iterator

import numpy as np

from fortsmith.utils.geometry_utils import Rect

console_logger = logging.getLogger(__name__)

SPLIT_ASPECT_RATIO = 1.25
"""Rectangles at least this elongated are always split across their long axis."""


@dataclass
class BSPNode:
    """One rectangle of the partition."""

    bounds: Rect
    left: int | None = None
    """Arena index of the first child (top or west half)."""

    right: int | None = None
    """Arena index of the second child (bottom or east half)."""

    room_id: int | None = None
    """Room planned inside this leaf, if any."""

    @property
    def is_leaf(self) -> bool:
        return self.left is None and self.right is None


class BSPTree:
    """Recursive rectangle splitter driven by a seeded RNG."""

    def __init__(self, bounds: Rect, rng: np.random.Generator | None = None):
        self.rng = rng if rng is not None else np.random.default_rng()
        self.nodes: list[BSPNode] = [BSPNode(bounds=bounds)]

    @property
    def root(self) -> BSPNode:
        return self.nodes[0]

    def split(self, index: int, min_leaf_size: int) -> bool:
        """Split a node into two children.

        Elongated nodes (aspect ratio >= 1.25) are cut across their long axis;
        otherwise the axis is random. The cut offset is uniform in
        ``[min_leaf_size, axis_length - min_leaf_size]``, so both children keep
        at least ``min_leaf_size`` along the cut axis.

        Args:
            index: Arena index of the node.
            min_leaf_size: Minimum child extent along the cut axis.

        Returns:
            False if the node is already split or the chosen axis is shorter
            than ``2 * min_leaf_size``.
        """
        node = self.nodes[index]
        if not node.is_leaf:
            return False

        bounds = node.bounds
        width, height = bounds.width, bounds.height
        if width > height and width >= SPLIT_ASPECT_RATIO * height:
            split_horizontally = False
        elif height > width and height >= SPLIT_ASPECT_RATIO * width:
            split_horizontally = True
        else:
            split_horizontally = bool(self.rng.random() > 0.5)

        axis_length = height if split_horizontally else width
        if axis_length < 2 * min_leaf_size:
            return False

        offset = int(
            self.rng.integers(min_leaf_size, axis_length - min_leaf_size + 1)
        )
        if split_horizontally:
            first = Rect(x=bounds.x, y=bounds.y, width=bounds.width, height=offset)
            second = Rect(
                x=bounds.x,
                y=bounds.y + offset,
                width=bounds.width,
                height=bounds.height - offset,
            )
        else:
            first = Rect(x=bounds.x, y=bounds.y, width=offset, height=bounds.height)
            second = Rect(
                x=bounds.x + offset,
                y=bounds.y,
                width=bounds.width - offset,
                height=bounds.height,
            )

        node.left = len(self.nodes)
        self.nodes.append(BSPNode(bounds=first))
        node.right = len(self.nodes)
        self.nodes.append(BSPNode(bounds=second))
        return True

    def partition(self, max_depth: int, min_leaf_size: int) -> None:
        """Split recursively from the root down to ``max_depth`` levels."""

        def _split_recursive(index: int, depth: int) -> None:
            if depth >= max_depth:
                return
            if self.split(index, min_leaf_size):
                node = self.nodes[index]
                _split_recursive(node.left, depth + 1)
                _split_recursive(node.right, depth + 1)

        _split_recursive(0, 0)
        console_logger.debug(
            f"Partitioned {self.root.bounds} into {len(list(self.get_leaves()))} leaves"
        )

    def get_leaves(self) -> Iterator[int]:
        """Yield leaf indices in pre-order (first child before second)."""
        stack = [0]
        while stack:
            index = stack.pop()
            node = self.nodes[index]
            if node.is_leaf:
                yield index
            else:
                stack.append(node.right)
                stack.append(node.left)

    def leaf_bounds(self) -> list[Rect]:
        return [self.nodes[i].bounds for i in self.get_leaves()]

    def assign_room(self, leaf_index: int, room_id: int) -> None:
        node = self.nodes[leaf_index]
        if not node.is_leaf:
            raise ValueError(f"Node {leaf_index} is not a leaf")
        node.room_id = room_id
