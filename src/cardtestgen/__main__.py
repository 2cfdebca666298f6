from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
import sys
from typing import Sequence

from .models import TEST_TYPES
from .operations import CardTestService, OperationReport
from .settings import configure_logging, load_settings


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cardtestgen", description="Generate and repair card Playwright tests.")
    parser.add_argument("--project", help="Named project root from the configuration.")
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level.")
    commands = parser.add_subparsers(dest="command", required=True)

    generate = commands.add_parser("generate", help="Generate the suite for a JSON card configuration.")
    generate.add_argument("config", type=Path)
    generate.add_argument("--test-type", action="append", choices=TEST_TYPES, dest="test_types")
    generate.add_argument("--save", action="store_true")
    generate.add_argument(
        "--include-fallbacks",
        action="store_true",
        help="Chain fallback selectors into page object locators with .or().",
    )

    extract = commands.add_parser("extract", help="Extract a card from a running studio page.")
    extract.add_argument("card_id")
    extract.add_argument("--branch", default=None)
    extract.add_argument("--milolibs", default=None)
    extract.add_argument("--card-type", default=None)
    extract.add_argument("--headed", action="store_true")
    extract.add_argument("--save", action="store_true")

    script = commands.add_parser("script", help="Print a standalone extraction script.")
    script.add_argument("card_id")
    script.add_argument("--branch", default=None)
    script.add_argument("--milolibs", default=None)

    for name in ("validate", "run", "run-and-fix"):
        sub = commands.add_parser(name)
        sub.add_argument("card_type")
        sub.add_argument("test_type", choices=TEST_TYPES)
        if name != "validate":
            sub.add_argument("--headed", action="store_true")
            sub.add_argument("--browser", default=None)
            sub.add_argument("--timeout", type=int, default=None)
        if name == "run-and-fix":
            sub.add_argument("--max-attempts", type=int, default=None)
    return parser


async def _dispatch(service: CardTestService, args: argparse.Namespace) -> OperationReport:
    headless = not getattr(args, "headed", False)
    if args.command == "generate":
        try:
            payload = json.loads(args.config.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            return OperationReport(False, f"Could not read configuration {args.config}: {exc}\n")
        return service.generate_complete_suite(
            payload,
            args.test_types,
            save=args.save,
            project=args.project,
            include_fallbacks=args.include_fallbacks,
        )
    if args.command == "extract":
        return await service.extract_from_live_instance(
            args.card_id,
            args.branch,
            milolibs=args.milolibs,
            card_type=args.card_type,
            headless=headless,
            save=args.save,
            project=args.project,
        )
    if args.command == "script":
        return service.generate_extraction_script(args.card_id, args.branch, milolibs=args.milolibs)
    if args.command == "validate":
        return service.validate_generated_tests(args.card_type, args.test_type, args.project)
    if args.command == "run":
        return await service.run_generated_tests(
            args.card_type,
            args.test_type,
            headless=headless,
            browser=args.browser,
            timeout_ms=args.timeout,
            project=args.project,
        )
    return await service.run_and_fix(
        args.card_type,
        args.test_type,
        max_attempts=args.max_attempts,
        headless=headless,
        browser=args.browser,
        timeout_ms=args.timeout,
        project=args.project,
    )


def main(argv: Sequence[str] | None = None) -> int:
    if sys.version_info < (3, 11):
        raise SystemExit(
            "cardtestgen requires Python 3.11+. "
            f"Current interpreter: {sys.executable} (Python {sys.version.split()[0]})"
        )
    args = _build_parser().parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)
    service = CardTestService(load_settings())
    report = asyncio.run(_dispatch(service, args))
    print(report.text)
    return 0 if report.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
