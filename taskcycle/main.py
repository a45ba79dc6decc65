from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading
from dataclasses import asdict, dataclass

from taskcycle.config import Settings, load_settings
from taskcycle.infra.db import create_db_engine, create_session_factory, init_db
from taskcycle.infra.logging import setup_logging
from taskcycle.infra.repository import SqlTaskStore
from taskcycle.scheduling.manager import EnvironmentSignals, SchedulingManager
from taskcycle.scheduling.throttle import GenerationThrottle, build_throttle_store
from taskcycle.services.cleanup import ExpirationCleaner
from taskcycle.services.materializer import InstanceMaterializer

logger = logging.getLogger(__name__)

MAX_DAYS_AHEAD = 365


@dataclass
class Container:
    settings: Settings
    store: SqlTaskStore
    materializer: InstanceMaterializer
    cleaner: ExpirationCleaner
    manager: SchedulingManager


def build_container(settings: Settings) -> Container:
    engine = create_db_engine(settings.database_url)
    init_db(engine)
    store = SqlTaskStore(create_session_factory(engine))
    materializer = InstanceMaterializer(store)
    cleaner = ExpirationCleaner(store)
    throttle = GenerationThrottle(build_throttle_store(settings.throttle_backend, settings.redis_url))
    manager = SchedulingManager(
        materializer,
        cleaner,
        EnvironmentSignals.from_settings(settings),
        throttle=throttle,
        horizon_days=settings.horizon_days,
        cleanup_days_past_due=settings.cleanup_days_past_due,
    )
    return Container(settings, store, materializer, cleaner, manager)


def _print(payload: dict) -> None:
    print(json.dumps(payload, indent=2, default=str, ensure_ascii=False))


def _cmd_generate(container: Container, args: argparse.Namespace) -> int:
    if args.user:
        days = args.days_ahead or container.settings.horizon_days
        generated = container.materializer.materialize_for_user(args.user, days)
        stats = container.materializer.get_recurring_task_stats(args.user)
        _print({
            "success": True,
            "user_id": args.user,
            "days_ahead": days,
            "generated_count": generated,
            "stats": asdict(stats),
        })
        return 0

    report = container.manager.run_generation_job(args.days_ahead)
    _print({"success": True, **asdict(report)})
    return 0


def _cmd_cleanup(container: Container, args: argparse.Namespace) -> int:
    days = args.days_past_due if args.days_past_due is not None else container.settings.cleanup_days_past_due
    deleted = container.cleaner.cleanup_expired_instances(days)
    _print({"success": True, "deleted": deleted})
    return 0


def _cmd_stats(container: Container, args: argparse.Namespace) -> int:
    stats = container.materializer.get_recurring_task_stats(args.user_id)
    _print({"user_id": args.user_id, **asdict(stats)})
    return 0


def _cmd_status(container: Container, args: argparse.Namespace) -> int:
    container.manager.initialize()
    try:
        _print({
            "current_strategy": container.manager.get_current_strategy(),
            "health": container.manager.health_check(),
            "strategies": {
                name: strategy.description for name, strategy in container.manager.strategies.items()
            },
        })
    finally:
        container.manager.shutdown()
    return 0


def _cmd_run(container: Container, args: argparse.Namespace) -> int:
    manager = container.manager
    if args.strategy:
        manager.switch_strategy(args.strategy)
    else:
        manager.initialize()
    logger.info("Scheduling running with strategy %s", manager.get_current_strategy()["name"])

    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())
    try:
        stop.wait()
    finally:
        manager.shutdown()
    return 0


def _days_ahead(value: str) -> int:
    days = int(value)
    if not 1 <= days <= MAX_DAYS_AHEAD:
        raise argparse.ArgumentTypeError(f"must be between 1 and {MAX_DAYS_AHEAD}, got {days}")
    return days


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="taskcycle", description="Recurring task generation engine")
    sub = parser.add_subparsers(dest="command", required=True)

    generate = sub.add_parser("generate", help="Materialize upcoming instances and clean up expired ones")
    generate.add_argument("--user", help="Only materialize this user's templates; cleanup is skipped")
    generate.add_argument("--days-ahead", type=_days_ahead, default=None, help="Horizon in days (1-365)")
    generate.set_defaults(handler=_cmd_generate)

    cleanup = sub.add_parser("cleanup", help="Delete open instances overdue past the retention window")
    cleanup.add_argument("--days-past-due", type=int, default=None)
    cleanup.set_defaults(handler=_cmd_cleanup)

    stats = sub.add_parser("stats", help="Show recurring task statistics for a user")
    stats.add_argument("user_id")
    stats.set_defaults(handler=_cmd_stats)

    status = sub.add_parser("status", help="Show the selected scheduling strategy and its health")
    status.set_defaults(handler=_cmd_status)

    run = sub.add_parser("run", help="Start the scheduling strategy and block until interrupted")
    run.add_argument("--strategy", help="Force a strategy instead of the automatic selection")
    run.set_defaults(handler=_cmd_run)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings()
    setup_logging(settings)
    try:
        container = build_container(settings)
    except Exception as exc:  # noqa: BLE001
        logger.error("Startup failed: %s", exc)
        return 1

    try:
        return args.handler(container, args)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Command %s failed", args.command)
        _print({"success": False, "error": str(exc)})
        return 1


if __name__ == "__main__":
    sys.exit(main())
