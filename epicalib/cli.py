from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from epicalib.calibration.schema import build_schema, validate_schema
from epicalib.calibration.driver import construct_params, train
from epicalib.config import ConfigError, dump_config, load_config
from epicalib.io.logging import setup_logging
from epicalib.model import init_model
from epicalib.simulation import run_simulation


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="epicalib", description="ABC calibration of an epidemic model")
    parser.add_argument("--log-level", default="INFO")
    sub = parser.add_subparsers(dest="command", required=True)

    train_cmd = sub.add_parser("train", help="Calibrate unknowns against training data")
    train_cmd.add_argument("--config", required=True, help="Path to config YAML")
    train_cmd.add_argument("--seed", type=int, default=None)
    train_cmd.add_argument("--out", default=None, help="Override output_directory")

    run = sub.add_parser("run", help="Run the model forward and write daily metrics")
    run.add_argument("--config", required=True, help="Path to config YAML")
    run.add_argument("--nruns", type=int, default=None)
    run.add_argument("--seed", type=int, default=None)
    run.add_argument("--out", required=True, help="Output directory")

    check = sub.add_parser("check", help="Validate config and unknowns without simulating")
    check.add_argument("--config", required=True, help="Path to config YAML")

    return parser.parse_args(argv)


def override_config(cfg, args: argparse.Namespace) -> None:
    if getattr(args, "seed", None) is not None:
        cfg.seed = args.seed
    if getattr(args, "out", None) is not None:
        cfg.output_directory = Path(args.out)


def run_train(args: argparse.Namespace) -> None:
    cfg = load_config(args.config)
    override_config(cfg, args)
    out_dir = Path(cfg.output_directory)
    out_dir.mkdir(parents=True, exist_ok=True)
    setup_logging(args.log_level, out_dir / "train.log")
    dump_config(cfg, out_dir / "config_resolved.yaml")
    train(cfg)


def run_forward(args: argparse.Namespace) -> None:
    cfg = load_config(args.config)
    override_config(cfg, args)
    out_dir = Path(cfg.output_directory)
    out_dir.mkdir(parents=True, exist_ok=True)
    dump_config(cfg, out_dir / "config_resolved.yaml")
    params = construct_params(cfg.paramsfile, cfg.demographics.params)
    outputs = run_simulation(cfg, out_dir, params=params, nruns=args.nruns)
    logging.info("Summary: %s", outputs.summary)


def run_check(args: argparse.Namespace) -> None:
    cfg = load_config(args.config)
    schema, n_unknowns = build_schema(cfg.unknowns)
    model = init_model(construct_params(cfg.paramsfile, cfg.demographics.params), cfg)
    validate_schema(schema, model.params, cfg)
    for i, name in enumerate(schema.slot_names(), start=1):
        print(f"x{i}\t{name}")
    print(f"{n_unknowns} unknowns")


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)
    try:
        if args.command == "train":
            run_train(args)
        elif args.command == "run":
            run_forward(args)
        elif args.command == "check":
            run_check(args)
    except ConfigError as exc:
        logging.error("Configuration error: %s", exc)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
