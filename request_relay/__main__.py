"""
Request Relay command line

Usage:
    python -m request_relay scheduler
    python -m request_relay executor
    python -m request_relay reconciler
    python -m request_relay submit --tenant acme --name ping --method GET --url https://example.com
    python -m request_relay failed-jobs --limit 20
"""

import argparse
import asyncio
import sys

import orjson

from request_relay.core.config.settings import Settings, get_settings
from request_relay.core.exceptions import BrokerConnectionError, ConfigurationError, RelayError
from request_relay.core.logging import setup_logging
from request_relay.runtime.bootstrap import SERVICES, Components
from request_relay.runtime.service_runner import EXIT_FATAL, EXIT_OK, run_service


def _parse_header(value: str) -> tuple[str, str]:
    name, sep, header_value = value.partition(":")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"header must look like 'Name: value', got {value!r}")
    return name.strip(), header_value.strip()


def _parse_body(value: str):
    try:
        return orjson.loads(value)
    except orjson.JSONDecodeError:
        return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="request_relay",
        description="Tenant-isolated delayed HTTP request pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s scheduler                                  # Run the delayed execution scheduler
  %(prog)s executor                                   # Run the HTTP executor
  %(prog)s reconciler                                 # Run the completion reconciler
  %(prog)s submit --tenant acme --name ping \\
      --method GET --url https://example.com \\
      --schedule 2030-01-01T00:00:00Z                 # Submit a scheduled request
  %(prog)s failed-jobs                                # List jobs whose publish failed
        """,
    )
    commands = parser.add_subparsers(dest="command", required=True)

    for name in SERVICES:
        commands.add_parser(name, help=f"Run the {name} service")

    submit = commands.add_parser("submit", help="Submit a request through intake")
    submit.add_argument("--tenant", required=True, help="Tenant id")
    submit.add_argument("--name", required=True, help="Request name")
    submit.add_argument("--method", required=True, help="HTTP method")
    submit.add_argument("--url", required=True, help="Target URL")
    submit.add_argument("--schedule", help="ISO-8601 instant to execute at")
    submit.add_argument(
        "--header", action="append", type=_parse_header, default=[], metavar="NAME:VALUE", help="Request header"
    )
    submit.add_argument("--body", type=_parse_body, help="Request body (JSON, else sent as text)")
    submit.add_argument("--execute-now", action="store_true", help="Ignore the schedule and execute immediately")

    failed = commands.add_parser("failed-jobs", help="List scheduled jobs marked failed")
    failed.add_argument("--limit", type=int, default=100, metavar="N", help="Maximum jobs to list (default: 100)")

    return parser


async def _submit(args: argparse.Namespace, settings: Settings) -> int:
    components = Components.create(settings)
    try:
        await components.bus.connect()
        record = await components.intake().submit(
            tenant_id=args.tenant,
            name=args.name,
            method=args.method,
            url=args.url,
            headers=dict(args.header),
            body=args.body,
            schedule=args.schedule,
            execute_now=args.execute_now,
        )
    except BrokerConnectionError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return EXIT_FATAL
    except RelayError as e:
        print(orjson.dumps(e.to_dict(), option=orjson.OPT_INDENT_2).decode(), file=sys.stderr)
        return EXIT_FATAL
    finally:
        await components.bus.close()

    print(orjson.dumps(record.to_document(), option=orjson.OPT_INDENT_2).decode())
    return EXIT_OK


async def _failed_jobs(args: argparse.Namespace, settings: Settings) -> int:
    components = Components.create(settings)
    try:
        await components.connection.connect()
        jobs = await components.job_store.list_failed(args.limit)
    except RelayError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return EXIT_FATAL
    finally:
        await components.connection.disconnect()

    print(orjson.dumps([job.model_dump(mode="json") for job in jobs], option=orjson.OPT_INDENT_2).decode())
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = get_settings()
    except ConfigurationError as e:
        print(orjson.dumps(e.to_dict(), option=orjson.OPT_INDENT_2).decode(), file=sys.stderr)
        return EXIT_FATAL

    if args.command in SERVICES:
        return run_service(args.command, settings)

    setup_logging(settings.logging.LOG_LEVEL, settings.logging.LOG_FORMAT)
    if args.command == "submit":
        return asyncio.run(_submit(args, settings))
    return asyncio.run(_failed_jobs(args, settings))


if __name__ == "__main__":
    sys.exit(main())
