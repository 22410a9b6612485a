import argparse
import json
import sys

from dotenv import load_dotenv

load_dotenv()  # import required here to support FULFILLMENT_* overrides from .env

from fulfillment.apis import bootstrap_apis
from fulfillment.db.db import run_migrations
from fulfillment.engine import ReconciliationEngine, build_engine
from fulfillment.errors import FulfillmentError
from fulfillment.media import MediaType
from fulfillment.settings import settings_manager
from fulfillment.utils.logging import log_cleaner, logger


def handle_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse CLI arguments.

    Every command runs one engine operation and exits, so the engine can be
    driven by cron or any other external scheduler.
    """

    parser = argparse.ArgumentParser(prog="fulfillment")
    parser.add_argument(
        "--database",
        type=str,
        default=None,
        help="Database URL (default: settings.database.host)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    process = commands.add_parser("process", help="Submit an approved request for acquisition.")
    process.add_argument("request_id", type=int)

    check = commands.add_parser("check", help="Fulfill a request if its content is available.")
    check.add_argument("request_id", type=int)

    commands.add_parser("check-all", help="Check every approved request.")

    availability = commands.add_parser(
        "availability", help="Show what of a title is already in the library."
    )
    availability.add_argument("tmdb_id", type=int)
    availability.add_argument(
        "--kind", choices=[kind.value for kind in MediaType], required=True
    )
    availability.add_argument("--seasons", type=int, nargs="+", default=None)

    commands.add_parser("sync-series", help="Sync availability of every requested series.")
    commands.add_parser("calendar", help="List upcoming releases.")
    commands.add_parser("migrate", help="Upgrade the database schema.")
    commands.add_parser("clean-logs", help="Remove expired log files.")

    return parser.parse_args(argv)


def run(engine: ReconciliationEngine, args: argparse.Namespace) -> int:
    if args.command == "process":
        engine.process_approved_request(args.request_id)
        logger.info(f"Request {args.request_id} submitted")
    elif args.command == "check":
        fulfilled = engine.check_request_status(args.request_id)
        logger.info(
            f"Request {args.request_id} {'fulfilled' if fulfilled else 'not fulfilled yet'}"
        )
    elif args.command == "check-all":
        fulfilled = engine.check_all_approved()
        logger.info(f"Fulfilled {len(fulfilled)} request(s): {fulfilled}")
    elif args.command == "availability":
        view = engine.check_existing_availability(args.tmdb_id, args.kind, args.seasons)
        print(view.model_dump_json(indent=2))
    elif args.command == "sync-series":
        errors = engine.sync_requested_series()
        for tmdb_id, error in errors.items():
            logger.error(f"tmdb {tmdb_id}: {error}")
        return 1 if errors else 0
    elif args.command == "calendar":
        result = engine.get_upcoming()
        print(
            json.dumps(
                {
                    "items": [item.model_dump(mode="json") for item in result.items],
                    "errors": result.errors,
                },
                indent=2,
            )
        )
        return 1 if result.errors and not result.items else 0

    return 0


def main(argv: list[str] | None = None) -> int:
    args = handle_args(argv)

    if not settings_manager.settings_file.exists():
        logger.info("Settings file not found, creating default settings")
        settings_manager.save()

    database_url = args.database or settings_manager.settings.database.host

    if args.command == "migrate":
        run_migrations(database_url)
        return 0

    if args.command == "clean-logs":
        logger.info(f"Removed {log_cleaner(force=True)} old log file(s)")
        return 0

    bootstrap_apis()
    engine = build_engine(database_url)

    try:
        engine.start()
        return run(engine, args)
    except FulfillmentError as e:
        logger.error(f"[{e.code}] {e}")
        return 1
    finally:
        engine.stop()


if __name__ == "__main__":
    sys.exit(main())
