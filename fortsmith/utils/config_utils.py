"""Helpers for turning OmegaConf config nodes into typed dataclass configs."""

import dataclasses
import logging

from typing import Any, TypeVar

from omegaconf import DictConfig, OmegaConf

console_logger = logging.getLogger(__name__)

ConfigT = TypeVar("ConfigT")


def to_plain_dict(cfg: DictConfig | dict[str, Any] | None) -> dict[str, Any]:
    """Convert a config node to a plain, resolved dictionary.

    Args:
        cfg: A DictConfig, a plain dict, or None.

    Returns:
        A new dictionary (empty when cfg is None).
    """
    if cfg is None:
        return {}
    if isinstance(cfg, DictConfig):
        return OmegaConf.to_container(cfg, resolve=True)
    return dict(cfg)


def dataclass_from_config(
    cls: type[ConfigT],
    cfg: DictConfig | dict[str, Any] | None,
    skip: tuple[str, ...] = (),
) -> ConfigT:
    """Build a flat dataclass config from a (possibly partial) config node.

    Keys missing from ``cfg`` keep the dataclass defaults. Unknown keys are
    ignored with a warning so that typos do not silently pass unnoticed.

    Args:
        cls: The dataclass type to build.
        cfg: Config node with overrides.
        skip: Field names the caller fills in itself (nested configs).

    Returns:
        The dataclass instance.
    """
    values = to_plain_dict(cfg)
    field_names = {f.name for f in dataclasses.fields(cls)}

    unknown = set(values) - field_names - set(skip)
    if unknown:
        console_logger.warning(
            f"Ignoring unknown {cls.__name__} config keys: {sorted(unknown)}"
        )

    kwargs = {
        name: value
        for name, value in values.items()
        if name in field_names and name not in skip
    }
    return cls(**kwargs)
