"""
Main file for the project. This will plan a fortress in a configured terrain.
"""

import logging
import os
import time

from datetime import timedelta
from pathlib import Path

import hydra

from omegaconf import DictConfig, OmegaConf

from fortsmith.planning import FortressPlanError, build_plan_generator
from fortsmith.planning.ascii_map import generate_ascii_level_map
from fortsmith.terrain.terrain_query import GridTerrain
from fortsmith.utils.logging import ConsoleLogger, FileLoggingContext
from fortsmith.utils.print_utils import cyan, green, red

console_logger = logging.getLogger(__name__)


def run_local(cfg: DictConfig):
    start_time = time.time()

    OmegaConf.resolve(cfg)
    hydra_cfg = hydra.core.hydra_config.HydraConfig.get()

    # Set up the output directory.
    output_dir = Path(hydra_cfg.runtime.output_dir)
    run_log_path = output_dir / "run.log"
    run_log_path.parent.mkdir(parents=True, exist_ok=True)

    with FileLoggingContext(log_file_path=run_log_path, suppress_stdout=False):
        console_logger.info(f"Outputs will be saved to: {output_dir}")
        print(cyan("Outputs will be saved to:"), output_dir)

        (output_dir.parents[1] / "latest-run").unlink(missing_ok=True)
        (output_dir.parents[1] / "latest-run").symlink_to(
            output_dir, target_is_directory=True
        )

        # Log and save resolved configuration.
        resolved_config_yaml = OmegaConf.to_yaml(cfg)
        console_logger.info("Resolved configuration:\n" + resolved_config_yaml)

        config_file = output_dir / "resolved_config.yaml"
        with open(config_file, "w") as f:
            f.write(resolved_config_yaml)
        console_logger.info(f"Saved resolved config to: {config_file}")
        print(cyan(f"Saved resolved config to: {config_file}"))

        logger = ConsoleLogger(output_dir=output_dir)
        logger.log_hyperparams(OmegaConf.to_container(cfg.planner, resolve=True))

        terrain = GridTerrain.from_config(cfg.terrain)
        generator = build_plan_generator(cfg=cfg.planner, terrain=terrain)

        anchor = (cfg.anchor.x, cfg.anchor.y, cfg.anchor.z)
        try:
            plan = generator.generate(
                anchor=anchor,
                population=cfg.population,
                military_count=cfg.military_count,
            )
        except FortressPlanError as e:
            console_logger.error(f"Planning failed: {e}")
            print(red(f"Planning failed: {e}"))
            return
        logger.log(
            {
                "direction": plan.direction.value,
                "direction_score": plan.direction_score,
                "rooms": len(plan.graph),
                "corridors": len(plan.graph.corridors),
                "tiles": len(plan.tiles),
            }
        )
        tiles = list(plan.tiles)

        if cfg.expansion_population is not None:
            expansion = generator.expand(
                graph=plan.graph,
                hub_center=plan.hub_center,
                hub_z=plan.hub_z,
                population=cfg.expansion_population,
                military_count=cfg.military_count,
            )
            if expansion.is_empty:
                print(red("Expansion added nothing"))
            else:
                print(
                    green(
                        f"Expansion added {len(expansion.rooms)} rooms at "
                        f"z={expansion.z}"
                    )
                )
            logger.log(
                {
                    "expansion_z": expansion.z,
                    "expansion_rooms": len(expansion.rooms),
                    "expansion_tiles": len(expansion.tiles),
                }
            )
            tiles.extend(expansion.tiles)

        plan_data = plan.to_dict()
        plan_data["tiles"] = [tile.to_dict() for tile in tiles]
        plan_path = logger.log_plan(plan_data)
        print(cyan(f"Saved plan to: {plan_path}"))

        if cfg.render_levels:
            for z in plan.graph.levels():
                level_map = generate_ascii_level_map(graph=plan.graph, z=z, tiles=tiles)
                logger.log_text(
                    f"levels/z{z:03d}.txt",
                    level_map.ascii_art + "\n\n" + level_map.legend + "\n",
                )

        print(
            green(
                f"Planned {len(plan.graph)} rooms heading {plan.direction.value}: "
                f"depot z={plan.depot_z}, hub z={plan.hub_z}, {len(tiles)} tiles"
            )
        )
        console_logger.info(
            f"Planning completed in {timedelta(seconds=time.time() - start_time)}"
        )


@hydra.main(version_base=None, config_path="configurations", config_name="config")
def run(cfg: DictConfig):
    # Configure logging level from LOGLEVEL environment variable.
    log_level = os.environ.get("LOGLEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    run_local(cfg)


if __name__ == "__main__":
    run()
