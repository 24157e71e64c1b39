"""threadwatch command line.

Usage:
    threadwatch serve                 # admin API + monitor loop
    threadwatch run-once              # one crawl cycle, print the report
    threadwatch check-config          # validate data/config.json and exit

Environment (optionally from data/.env): DB_TYPE, SQLITE_PATH, CONFIG_PATH,
ACCESS_TOKEN, HOST, PORT, LOG_DIR, LOG_LEVEL, MONITOR_AUTOSTART.
"""

import argparse
import json
import sys
from typing import List, Optional

from threadwatch import __version__
from threadwatch.backend.utils.errors import ConfigError, StorageError
from threadwatch.backend.utils.logging_config import get_logger, setup_logging
from threadwatch.config import DEFAULT_ENV_FILE, ConfigManager, ProcessSettings, load_env_file

logger = get_logger(__name__)


def cmd_serve(settings: ProcessSettings, args: argparse.Namespace) -> int:
    import uvicorn

    from threadwatch.api.app import create_app

    # Logging is already configured by main()
    uvicorn.run(
        create_app(settings),
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_config=None,
    )
    return 0


def cmd_run_once(settings: ProcessSettings, args: argparse.Namespace) -> int:
    from threadwatch.monitor import ForumMonitor
    from threadwatch.storage import create_store

    manager = ConfigManager(settings.config_path)
    try:
        config = manager.load()
        store = create_store(settings.db_type, settings.sqlite_path)
    except (ConfigError, StorageError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    try:
        monitor = ForumMonitor(store, config, config_manager=manager)
        report = monitor.run_cycle()
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    finally:
        store.close()

    print(json.dumps(report.to_dict(), indent=2))
    return 0


def cmd_check_config(settings: ProcessSettings, args: argparse.Namespace) -> int:
    manager = ConfigManager(settings.config_path)
    try:
        config = manager.load()
        config.validate_backends()
    except ConfigError as e:
        print(f"invalid: {e}", file=sys.stderr)
        return 1

    print(
        f"ok: {len(config.urls)} feed(s), {len(config.extra_urls)} thread URL(s), "
        f"notice_type={config.notice_type}, "
        f"ai_filter={'on (' + config.ai_provider + ')' if config.use_ai_filter else 'off'}, "
        f"keywords_filter={'on' if config.use_keywords_filter else 'off'}"
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="threadwatch",
        description="Monitor forum threads and comments and push notifications.",
    )
    parser.add_argument("--version", action="version", version=f"threadwatch {__version__}")
    parser.add_argument("--env-file", default=DEFAULT_ENV_FILE,
                        help=f"KEY=VALUE file loaded before reading the environment (default: {DEFAULT_ENV_FILE})")
    parser.add_argument("--log-level", help="Console log level (default: LOG_LEVEL or INFO)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the admin API and the monitor loop")
    serve.add_argument("--host", help="Listen address (default: HOST or 0.0.0.0)")
    serve.add_argument("--port", type=int, help="Listen port (default: PORT or 5556)")
    serve.set_defaults(handler=cmd_serve)

    run_once = subparsers.add_parser("run-once", help="Run a single crawl cycle and print its report")
    run_once.set_defaults(handler=cmd_run_once)

    check = subparsers.add_parser("check-config", help="Validate the configuration file")
    check.set_defaults(handler=cmd_check_config)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    load_env_file(args.env_file)
    try:
        settings = ProcessSettings.from_env()
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    setup_logging(log_dir=settings.log_dir, level=args.log_level or settings.log_level)
    logger.debug("cli_started", command=args.command)
    return args.handler(settings, args)


if __name__ == "__main__":
    sys.exit(main())
