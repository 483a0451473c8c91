#!/usr/bin/env python3
"""Command line entry point: ``python main.py --config config.yaml``."""

import argparse
import json
import logging
import os
from datetime import datetime
from typing import Any, Dict, Optional

import yaml

from smsched.generator import generate_instance
from smsched.models import Instance
from smsched.parser import load_instance
from smsched.report import format_schedule_table, results_payload, write_results_json
from smsched.solver import Solution, SolverParams, solve
from smsched.visualization import next_unique_path, plot_gantt, plot_search_progress

SOLVER_KEYS = ("objective", "weights", "oracle", "relaxation_time_limit_s", "tolerance", "search")

logger = logging.getLogger("smsched")


def load_config(config_file: str = "config.yaml") -> dict:
    """Load configuration from a YAML or JSON file."""
    if not os.path.isfile(config_file):
        raise FileNotFoundError(f"Config file not found: {config_file}")
    with open(config_file, "r", encoding="utf-8") as f:
        text = f.read()
    if config_file.endswith(".json"):
        config = json.loads(text)
    else:
        config = yaml.safe_load(text) or {}
    if not isinstance(config, dict):
        raise ValueError(f"Config {config_file} must contain a mapping")
    return config


def build_instance(config: Dict[str, Any]) -> tuple[Instance, str]:
    """Return the configured instance and a short name for output files."""
    gen_cfg = config.get("generator") or {}
    if gen_cfg.get("enabled"):
        n = gen_cfg.get("n")
        seed = gen_cfg.get("seed", 0)
        if n is None:
            raise ValueError("Generator enabled but 'n' not provided in config.generator")
        return generate_instance(int(n), seed=int(seed)), f"generated_n{n}_seed{seed}"
    instance_path = config.get("instance")
    if not instance_path:
        raise ValueError("Missing 'instance' key in config")
    name = os.path.splitext(os.path.basename(instance_path))[0]
    return load_instance(instance_path), name


def run(config: Dict[str, Any]) -> Solution:
    """Solve the configured instance and write the requested artefacts."""
    instance, data_name = build_instance(config)
    params = SolverParams.from_config({k: config[k] for k in SOLVER_KEYS if k in config})
    logger.info(
        "Instance %s: jobs=%d big_m=%g objective=%s oracle=%s",
        data_name,
        len(instance),
        instance.big_m,
        params.objective,
        params.oracle,
    )
    solution = solve(instance, params)

    if solution.schedule is not None:
        print(format_schedule_table(solution.schedule))
    search = solution.search
    print(
        f"status={search.status} nodes={search.nodes} "
        f"lower_bound={search.lower_bound:g} gap={search.gap}"
    )

    charts_cfg = config.get("charts") or {}
    charts_dir: Optional[str] = charts_cfg.get("dir")
    if charts_dir:
        os.makedirs(charts_dir, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        json_path = next_unique_path(os.path.join(charts_dir, f"results_{data_name}_{stamp}.json"))
        write_results_json(json_path, results_payload(solution, config.get("instance")))
        logger.info("Saved results JSON to %s", json_path)
        if charts_cfg.get("gantt", True) and solution.schedule is not None:
            gantt_path = next_unique_path(
                os.path.join(
                    charts_dir, f"gantt_{data_name}_obj{solution.objective:g}_{stamp}.png"
                )
            )
            plot_gantt(solution.schedule, save_path=gantt_path)
        if charts_cfg.get("progress", True) and search.history:
            progress_path = next_unique_path(
                os.path.join(charts_dir, f"progress_{data_name}_{stamp}.png")
            )
            plot_search_progress(search, save_path=progress_path)
    return solution


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Single-machine tardiness branch-and-bound")
    parser.add_argument(
        "--config",
        default="config.yaml",
        help="Path to a YAML/JSON configuration file",
    )
    args = parser.parse_args(argv)
    config = load_config(args.config)

    log_level = config.get("log_level", "INFO")
    logging.basicConfig(
        level=getattr(logging, str(log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run(config)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
