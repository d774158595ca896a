from __future__ import annotations

import argparse
import logging
import sys

from .engine import AssignmentEngine
from .errors import SchedulingError
from .io import create_run_folder, load_dataset, output_csv, save_summary
from .settings import (
    DEFAULT_SETTINGS,
    calendar_config_from_settings,
    load_config_file,
    load_dataset_config,
    merge_settings,
    rooms_from_names,
)

logger = logging.getLogger("pfe_scheduler")


def build_parser():
    p = argparse.ArgumentParser(description="Defense session scheduling")

    # General
    p.add_argument("--config", type=str,
                   help="Path to YAML configuration file")

    # Regarding the input data
    p.add_argument("--input-data", help="Dataset folder with projects.csv and rooms.json")
    p.add_argument("--output-dir")
    p.add_argument("--order-by", help="Column of projects.csv giving the scheduling priority")

    # Regarding the calendar
    p.add_argument("--batch")
    p.add_argument("--working-start", help="HH:MM")
    p.add_argument("--working-end", help="HH:MM")
    p.add_argument("--session-duration", type=int, help="minutes")
    p.add_argument("--break-duration", type=int, help="minutes")
    p.add_argument("--day-off", help="weekday name, or 'none'")
    p.add_argument("--start-date", help="YYYY-MM-DD")
    p.add_argument("--end-date", help="YYYY-MM-DD")
    p.add_argument("--horizon-days", type=int)
    p.add_argument("--excluded-dates", help="comma separated YYYY-MM-DD list")
    p.add_argument("--rooms", help="comma separated room names (overrides rooms.json)")
    p.add_argument("-v", "--verbose", action="store_true")

    return p


def get_settings(argv=None):
    args = build_parser().parse_args(argv)

    file_cfg = load_config_file(args.config) if args.config else {}
    overrides = {key: getattr(args, key, None) for key in DEFAULT_SETTINGS}
    if args.rooms:
        overrides["rooms"] = [name.strip() for name in args.rooms.split(",") if name.strip()]

    input_data = overrides.get("input_data") or file_cfg.get("input_data") or DEFAULT_SETTINGS["input_data"]
    settings = merge_settings(load_dataset_config(input_data), file_cfg, overrides)
    settings["verbose"] = args.verbose
    return settings


def main(argv=None) -> int:
    try:
        cfg = get_settings(argv)
    except SchedulingError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return 2
    except OSError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=logging.DEBUG if cfg.get("verbose") else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        projects, rooms = load_dataset(cfg["input_data"], order_by=cfg.get("order_by"))
        if cfg.get("rooms"):
            rooms = rooms_from_names(cfg["rooms"])
        config = calendar_config_from_settings(cfg)
        result = AssignmentEngine(config, rooms).schedule(projects)
    except FileNotFoundError as exc:
        logger.error("%s", exc)
        return 2
    except SchedulingError as exc:
        logger.error("%s", exc.message)
        return 2

    output_folder, run_id = create_run_folder(base=cfg.get("output_dir", "data/output"))
    output_csv(result, projects, rooms, output_folder)
    save_summary(result, cfg, output_folder)
    print(f"Run ID: {run_id}")
    print(f"Scheduled {result.created_count} defense(s), {result.unassigned_count} unassigned -> {output_folder}")
    return 0 if not result.unassigned else 1


if __name__ == "__main__":
    sys.exit(main())
