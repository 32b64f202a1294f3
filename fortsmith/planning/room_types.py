"""Room catalog and the demand model that decides which rooms to build next."""

import logging
import math

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Iterable

from omegaconf import DictConfig, ListConfig, OmegaConf

if TYPE_CHECKING:
    from fortsmith.planning.fortress_graph import FortressGraph

console_logger = logging.getLogger(__name__)


class ZBand(Enum):
    """Functional vertical band, relative to the hub level."""

    ENTRY = "entry"
    STORAGE = "storage"
    COMMON = "common"
    LIVING = "living"
    MILITARY = "military"
    DEEP = "deep"
    ANY = "any"

    @property
    def offset(self) -> int | None:
        """Levels below the hub level (0 or negative). None for ANY."""
        return _Z_BAND_OFFSETS[self]


_Z_BAND_OFFSETS = {
    ZBand.ENTRY: 0,
    ZBand.STORAGE: -1,
    ZBand.COMMON: -2,
    ZBand.LIVING: -3,
    ZBand.MILITARY: -4,
    ZBand.DEEP: -5,
    ZBand.ANY: None,
}

EXPANDABLE_BANDS = (
    ZBand.LIVING,
    ZBand.MILITARY,
    ZBand.DEEP,
    ZBand.STORAGE,
    ZBand.COMMON,
)
"""Underground bands that can grow by adding new levels beneath them."""


class DemandKind(Enum):
    """How the wanted number of rooms of a type is derived."""

    FIXED = "fixed"
    PER_POPULATION = "per_population"
    PER_MILITARY = "per_military"
    STRUCTURAL = "structural"
    """Corridors and stairwells. Never produces demand."""


@dataclass(frozen=True)
class DemandRule:
    """Demand rule of a room type."""

    kind: DemandKind
    value: int = 0
    """Room count for FIXED, people per room for the PER_* kinds."""

    def target(self, population: int, military_count: int) -> int:
        """Number of rooms of this type the settlement should have."""
        if self.kind == DemandKind.FIXED:
            return max(0, self.value)
        if self.kind == DemandKind.PER_POPULATION:
            return math.ceil(population / self.value)
        if self.kind == DemandKind.PER_MILITARY:
            return math.ceil(military_count / self.value)
        return 0


@dataclass(frozen=True)
class RoomTypeSpec:
    """Static description of a kind of room."""

    type_id: str
    name: str
    min_width: int
    min_height: int
    max_width: int
    max_height: int
    priority: int
    """Lower is more urgent. 0 marks structural types, never matched to demand."""

    demand: DemandRule
    z_band: ZBand
    needs_soil: bool = False
    surface_only: bool = False

    @property
    def is_structural(self) -> bool:
        return self.priority == 0

    def to_dict(self) -> dict:
        return {
            "type_id": self.type_id,
            "name": self.name,
            "min_width": self.min_width,
            "min_height": self.min_height,
            "max_width": self.max_width,
            "max_height": self.max_height,
            "priority": self.priority,
            "demand": self.demand.kind.value,
            "demand_value": self.demand.value,
            "z_band": self.z_band.value,
            "needs_soil": self.needs_soil,
            "surface_only": self.surface_only,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RoomTypeSpec":
        """Build a spec from a catalog entry.

        Raises:
            ValueError: If the demand kind or z band is unknown, or a PER_*
                rule has a non-positive divisor.
        """
        demand_kind = DemandKind(data.get("demand", DemandKind.FIXED.value))
        demand_value = int(data.get("demand_value", 1))
        if demand_kind in (DemandKind.PER_POPULATION, DemandKind.PER_MILITARY):
            if demand_value <= 0:
                raise ValueError(
                    f"Room type {data['type_id']}: {demand_kind.value} needs a "
                    f"positive demand_value, got {demand_value}"
                )
        return cls(
            type_id=data["type_id"],
            name=data.get("name", data["type_id"]),
            min_width=int(data["min_width"]),
            min_height=int(data["min_height"]),
            max_width=int(data["max_width"]),
            max_height=int(data["max_height"]),
            priority=int(data["priority"]),
            demand=DemandRule(kind=demand_kind, value=demand_value),
            z_band=ZBand(data.get("z_band", ZBand.ANY.value)),
            needs_soil=bool(data.get("needs_soil", False)),
            surface_only=bool(data.get("surface_only", False)),
        )


def _room_type(
    type_id: str,
    name: str,
    min_size: tuple[int, int],
    max_size: tuple[int, int],
    priority: int,
    demand: DemandRule,
    z_band: ZBand,
    **flags: bool,
) -> RoomTypeSpec:
    return RoomTypeSpec(
        type_id=type_id,
        name=name,
        min_width=min_size[0],
        min_height=min_size[1],
        max_width=max_size[0],
        max_height=max_size[1],
        priority=priority,
        demand=demand,
        z_band=z_band,
        **flags,
    )


def _fixed(count: int) -> DemandRule:
    return DemandRule(kind=DemandKind.FIXED, value=count)


_STRUCTURAL = DemandRule(kind=DemandKind.STRUCTURAL)

DEFAULT_ROOM_TYPES: dict[str, RoomTypeSpec] = {
    spec.type_id: spec
    for spec in (
        _room_type("entrance", "Entrance", (3, 3), (5, 5), 1, _fixed(1), ZBand.ENTRY),
        _room_type(
            "workshop_hall",
            "Workshop Hall",
            (7, 7),
            (15, 15),
            1,
            _fixed(1),
            ZBand.ENTRY,
        ),
        _room_type(
            "storage_main",
            "Main Storage",
            (6, 6),
            (12, 12),
            1,
            _fixed(1),
            ZBand.STORAGE,
        ),
        _room_type("dining", "Dining Hall", (5, 5), (9, 9), 2, _fixed(1), ZBand.COMMON),
        _room_type(
            "dormitory",
            "Dormitory",
            (4, 4),
            (7, 7),
            2,
            DemandRule(kind=DemandKind.PER_POPULATION, value=10),
            ZBand.LIVING,
        ),
        _room_type(
            "bedroom",
            "Bedroom",
            (2, 2),
            (3, 3),
            3,
            DemandRule(kind=DemandKind.PER_POPULATION, value=1),
            ZBand.LIVING,
        ),
        _room_type("hospital", "Hospital", (4, 4), (6, 6), 2, _fixed(1), ZBand.COMMON),
        _room_type("tavern", "Tavern", (5, 5), (8, 8), 3, _fixed(1), ZBand.COMMON),
        _room_type("temple", "Temple", (4, 4), (7, 7), 3, _fixed(1), ZBand.COMMON),
        _room_type("library", "Library", (3, 3), (5, 5), 4, _fixed(1), ZBand.COMMON),
        _room_type(
            "barracks",
            "Barracks",
            (5, 5),
            (8, 8),
            3,
            DemandRule(kind=DemandKind.PER_MILITARY, value=10),
            ZBand.MILITARY,
        ),
        _room_type(
            "training", "Training Room", (5, 5), (10, 10), 3, _fixed(1), ZBand.MILITARY
        ),
        _room_type(
            "farm",
            "Farm Plot Area",
            (4, 4),
            (6, 6),
            2,
            _fixed(2),
            ZBand.ENTRY,
            needs_soil=True,
        ),
        _room_type("cistern", "Cistern", (3, 3), (5, 5), 4, _fixed(1), ZBand.DEEP),
        _room_type(
            "forge_area", "Forge Area", (6, 6), (10, 10), 3, _fixed(1), ZBand.ENTRY
        ),
        _room_type("jail", "Jail", (3, 3), (5, 5), 4, _fixed(1), ZBand.COMMON),
        _room_type("tomb", "Tomb", (5, 5), (10, 10), 4, _fixed(1), ZBand.DEEP),
        _room_type(
            "trade_depot", "Trade Depot Area", (5, 5), (7, 7), 2, _fixed(1), ZBand.ENTRY
        ),
        _room_type(
            "pasture",
            "Pasture",
            (6, 6),
            (12, 12),
            3,
            _fixed(1),
            ZBand.ENTRY,
            surface_only=True,
        ),
        _room_type("corridor", "Corridor", (1, 1), (1, 50), 0, _STRUCTURAL, ZBand.ANY),
        _room_type("stairwell", "Stairwell", (1, 1), (3, 3), 0, _STRUCTURAL, ZBand.ANY),
    )
}
"""Built-in catalog, in catalog order (used to break priority ties)."""


def room_catalog_from_config(
    cfg: DictConfig | ListConfig | list | None,
) -> dict[str, RoomTypeSpec]:
    """Build a room catalog from a config list of room type entries.

    Args:
        cfg: A list of entries as accepted by `RoomTypeSpec.from_dict`, or None
            to use `DEFAULT_ROOM_TYPES`.

    Returns:
        Mapping of type id to spec, in list order.

    Raises:
        ValueError: On malformed entries or duplicate type ids.
    """
    if cfg is None:
        return dict(DEFAULT_ROOM_TYPES)
    if isinstance(cfg, (DictConfig, ListConfig)):
        cfg = OmegaConf.to_container(cfg, resolve=True)
    if len(cfg) == 0:
        return dict(DEFAULT_ROOM_TYPES)

    catalog: dict[str, RoomTypeSpec] = {}
    for entry in cfg:
        spec = RoomTypeSpec.from_dict(entry)
        if spec.type_id in catalog:
            raise ValueError(f"Duplicate room type id in catalog: {spec.type_id}")
        catalog[spec.type_id] = spec
    console_logger.info(f"Loaded room catalog with {len(catalog)} room types")
    return catalog


@dataclass
class RoomDemand:
    """Outstanding need for rooms of one type."""

    room_type: RoomTypeSpec
    count: int
    """Rooms still wanted. Decremented as rooms are assigned."""

    @property
    def priority(self) -> int:
        return self.room_type.priority

    @property
    def satisfied(self) -> bool:
        return self.count <= 0


def compute_demand(
    catalog: dict[str, RoomTypeSpec],
    graph: "FortressGraph",
    population: int,
    military_count: int = 0,
) -> list[RoomDemand]:
    """Compute which room types are under capacity.

    Args:
        catalog: Room types to consider.
        graph: Current fortress graph (existing rooms count toward targets).
        population: Settlement population.
        military_count: Number of soldiers.

    Returns:
        Demands with a positive count, sorted by ascending priority. Types with
        equal priority keep catalog order.
    """
    demands = []
    for spec in _non_structural(catalog.values()):
        target = spec.demand.target(
            population=population, military_count=military_count
        )
        needed = max(0, target - graph.count_rooms_by_type(spec.type_id))
        if needed > 0:
            demands.append(RoomDemand(room_type=spec, count=needed))

    # sorted() is stable, so equal priorities stay in catalog order.
    return sorted(demands, key=lambda d: d.priority)


def _non_structural(specs: Iterable[RoomTypeSpec]) -> Iterable[RoomTypeSpec]:
    return (spec for spec in specs if not spec.is_structural)


def check_expansion_needs(
    catalog: dict[str, RoomTypeSpec],
    graph: "FortressGraph",
    population: int,
    military_count: int = 0,
) -> tuple[bool, list[RoomDemand]]:
    """Return whether any room type is under capacity, with the demands."""
    demands = compute_demand(
        catalog=catalog,
        graph=graph,
        population=population,
        military_count=military_count,
    )
    if demands:
        console_logger.debug(
            f"Expansion needed: {len(demands)} room types under capacity"
        )
        return True, demands
    return False, []


DORMITORY_BEDS = 4
"""Residents housed by one dormitory."""


def living_capacity(graph: "FortressGraph") -> int:
    """Residents housed by the planned bedrooms and dormitories."""
    return graph.count_rooms_by_type("bedroom") + DORMITORY_BEDS * (
        graph.count_rooms_by_type("dormitory")
    )


def should_expand(graph: "FortressGraph", population: int) -> bool:
    """True once population exceeds 80% of living capacity."""
    return population > 0.8 * living_capacity(graph)

