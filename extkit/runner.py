"""Entry point: load settings and specs, run startup activation, report, shut down."""

import argparse
import json
import logging
import sys
from pathlib import Path

import yaml
from dotenv import load_dotenv

from extkit.extensions import (
    CycleDetected,
    Orchestrator,
    check_health,
    format_report,
    load_specs,
)
from extkit.logging_config import setup_logging
from extkit.settings import get_setting, load_settings

logger = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="extkit", description="Resolve and activate extensions from a spec file."
    )
    parser.add_argument("--root", type=Path, default=_PROJECT_ROOT, help="Project root")
    parser.add_argument("--config-dir", type=Path, help="Directory holding settings.yaml")
    parser.add_argument("--spec-file", type=Path, help="YAML file with extension specs")
    parser.add_argument(
        "--fire",
        action="append",
        default=[],
        metavar="KIND:KEY",
        help="Fire a trigger after startup (e.g. event:BufRead); repeatable",
    )
    parser.add_argument("--json", action="store_true", help="Print the status snapshot as JSON")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Bootstrap: settings -> logging -> orchestrator -> register -> start -> report -> shutdown."""
    args = _parse_args(argv)
    root: Path = args.root
    load_dotenv(root / ".env")
    settings = load_settings(args.config_dir or root / "config")
    setup_logging(root, settings)

    spec_file = args.spec_file or root / get_setting(
        settings, "extensions.spec_file", "config/extensions.yaml"
    )
    try:
        raws = load_specs(spec_file)
    except (OSError, yaml.YAMLError, ValueError) as e:
        logger.error("Cannot read spec file %s: %s", spec_file, e)
        print(f"extkit: cannot read spec file {spec_file}: {e}", file=sys.stderr)
        return 1

    orchestrator = Orchestrator.from_settings(settings, root)
    try:
        registration = orchestrator.register(raws)
        for err in registration.errors:
            print(f"extkit: {err}", file=sys.stderr)
        try:
            orchestrator.start()
        except CycleDetected as e:
            logger.error("%s", e)
            print(f"extkit: {e}", file=sys.stderr)
            return 2
        for trigger in args.fire:
            kind, _, key = trigger.partition(":")
            orchestrator.fire(kind, key)

        install_dir = root / get_setting(settings, "installer.install_dir", "data/extensions")
        health = check_health(orchestrator, install_dir)
        if args.json:
            print(json.dumps(orchestrator.status(), indent=2, default=str))
        else:
            print(format_report(health))
        return 1 if health.status == "error" else 0
    finally:
        orchestrator.shutdown()


__all__ = ["main"]
