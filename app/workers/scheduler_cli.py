from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path

from app.config import load_config, setup_logging
from app.domain.exceptions import PlugSchedError
from app.enums.schedules import TriggerSource
from app.services.container import ServiceContainer

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="plugsched-scheduler",
        description="Run schedule checks and the interval ticker without the web server.",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("run", help="Run the background scheduler loop until interrupted (default)")

    check = sub.add_parser("check", help="Run one schedule check and print the result as JSON")
    check.add_argument(
        "--source",
        choices=[s.value for s in TriggerSource],
        default=TriggerSource.CLI.value,
        help="Trigger source recorded in the execution log (cron jobs pass 'cron')",
    )

    sub.add_parser("status", help="Print today's situation, interval mode and overrides as JSON")

    export = sub.add_parser("export", help="Write calendar, schedules, settings and interval config as JSON")
    export.add_argument("path", nargs="?", help="Output file (stdout when omitted)")

    imp = sub.add_parser("import", help="Load a JSON snapshot written by 'export'")
    imp.add_argument("path", help="Snapshot file")

    return parser


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def _run_loop(container: ServiceContainer) -> int:
    container.start_scheduler()
    logger.info("Scheduler running (press Ctrl+C to stop)")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Stopping scheduler...")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Entry point for ``plugsched-scheduler``."""
    args = _build_parser().parse_args(argv)

    config = load_config()
    setup_logging(debug=config.DEBUG or args.debug)

    try:
        container = ServiceContainer.build(config)
    except PlugSchedError as e:
        logger.error("Cannot start: %s", e)
        return 2

    command = args.command or "run"
    try:
        if command == "run":
            return _run_loop(container)

        if command == "check":
            result = container.coordinator.run_schedule_check(source=TriggerSource(args.source))
            _print_json(result.to_dict())
            return 1 if result.errors else 0

        if command == "status":
            _print_json(
                {
                    "today": container.scheduling_service.today_info(),
                    "interval": container.duty_cycle.status(),
                    "overrides": container.scheduling_service.list_overrides(),
                }
            )
            return 0

        if command == "export":
            snapshot = container.store.export_snapshot([config.interval_device_id])
            if args.path:
                Path(args.path).write_text(json.dumps(snapshot, indent=2), encoding="utf-8")
                logger.info("Exported snapshot to %s", args.path)
            else:
                _print_json(snapshot)
            return 0

        if command == "import":
            try:
                data = json.loads(Path(args.path).read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                logger.error("Cannot read snapshot %s: %s", args.path, e)
                return 2
            _print_json(container.store.import_snapshot(data))
            return 0
    except PlugSchedError as e:
        logger.error("%s failed: %s", command, e)
        _print_json({"ok": False, "error": e.to_dict()})
        return 2
    finally:
        container.shutdown()

    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
