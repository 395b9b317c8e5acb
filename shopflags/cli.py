"""Command-line access to the configured flags and experiments.

Uses the same settings as the HTTP service (``CATALOG_PATH``,
``ASSIGNMENT_STORE_BACKEND`` ...) and prints JSON to stdout.

Examples:
    shopflags flags
    shopflags evaluate new-user-dashboard --user-id u1 --role admin
    shopflags assign checkout-optimization-v1 --user-id u1 --role user \\
        --device-type desktop --prop cart_value=60000
"""

import argparse
import json
import sys
from typing import Any, Dict, List, Optional

from shopflags.core.bootstrap import build_evaluators
from shopflags.core.config import get_settings
from shopflags.core.context import EvaluationContext, SessionContext, UserContext
from shopflags.core.errors import ShopflagsError
from shopflags.core.experiments import generate_session_id
from shopflags.utils.logging import setup_logging


def _parse_value(text: str) -> Any:
    # JSON literals (numbers, booleans, lists) pass through typed; anything else stays a string
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


def _parse_props(items: Optional[List[str]]) -> Dict[str, Any]:
    props: Dict[str, Any] = {}
    for item in items or []:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"Expected key=value, got {item!r}")
        props[key] = _parse_value(value)
    return props


def _build_context(args: argparse.Namespace) -> EvaluationContext:
    user = None
    if args.user_id:
        user = UserContext(
            id=args.user_id,
            role=args.role,
            segment=getattr(args, "segment", None),
            country=args.country,
        )
    session = None
    session_id = getattr(args, "session_id", None)
    device_type = getattr(args, "device_type", None)
    browser = getattr(args, "browser", None)
    if session_id or device_type or browser:
        session = SessionContext(
            id=session_id or generate_session_id(),
            device_type=device_type,
            browser=browser,
        )
    return EvaluationContext(
        user=user,
        session=session,
        environment=args.environment,
        current_date=args.date,
        custom_properties=_parse_props(args.prop),
    )


def _add_context_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--user-id", help="User id")
    parser.add_argument("--role", help="User role")
    parser.add_argument("--country", help="User country code")
    parser.add_argument("--environment", help="Override the configured environment")
    parser.add_argument("--date", help="Evaluation time (ISO-8601), defaults to now")
    parser.add_argument(
        "--prop",
        action="append",
        metavar="KEY=VALUE",
        help="Custom property, may be repeated",
    )


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shopflags",
        description="Evaluate feature flags and experiment assignments",
    )
    parser.add_argument("--log-level", help="Override LOG_LEVEL")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("flags", help="List configured feature flags")

    evaluate_parser = subparsers.add_parser("evaluate", help="Evaluate one feature flag")
    evaluate_parser.add_argument("flag_key", help="Flag key")
    _add_context_arguments(evaluate_parser)

    experiments_parser = subparsers.add_parser("experiments", help="List experiments")
    experiments_parser.add_argument(
        "--active", action="store_true", help="Only experiments enrolling right now"
    )

    assign_parser = subparsers.add_parser("assign", help="Assign a variant of an experiment")
    assign_parser.add_argument("experiment_id", help="Experiment id")
    _add_context_arguments(assign_parser)
    assign_parser.add_argument("--session-id", help="Session id")
    assign_parser.add_argument("--segment", help="User segment")
    assign_parser.add_argument("--device-type", help="desktop/mobile/tablet")
    assign_parser.add_argument("--browser", help="Browser name")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    settings = get_settings()
    setup_logging(args.log_level or settings.LOG_LEVEL, stream=sys.stderr)

    try:
        evaluator, engine = build_evaluators(settings)

        if args.command == "flags":
            _print_json([flag.to_dict() for flag in evaluator.get_all_flags()])
            return 0

        if args.command == "experiments":
            experiments = (
                engine.get_active_experiments() if args.active else engine.get_all_experiments()
            )
            _print_json([e.to_dict() for e in experiments])
            return 0

        context = _build_context(args)
        if args.environment is None:
            context.environment = settings.ENVIRONMENT

        if args.command == "evaluate":
            result = evaluator.evaluate(args.flag_key, context)
            _print_json(result.to_dict())
            return 0 if result.enabled else 2

        result = engine.assign_variant(args.experiment_id, context)
        data = result.to_dict()
        experiment = engine.get_experiment(args.experiment_id)
        variant = None
        if experiment is not None and result.variant_id is not None:
            variant = experiment.get_variant(result.variant_id)
        data["config"] = variant.config if variant else None
        _print_json(data)
        return 0 if result.is_participant else 2

    except (ShopflagsError, argparse.ArgumentTypeError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
