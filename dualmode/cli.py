#!/usr/bin/env python3
"""dualmode command line - inspect mode detection and vet operation batches."""

import argparse
import sys
from typing import Any, List, Optional

from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from dualmode.core.config import SafetyConfig, Settings, load_yaml_file
from dualmode.core.modes import (
    TestMode,
    create_test_definition,
    detect_mode,
    validate_environment_configuration,
)
from dualmode.core.safety import ProductionSafetyValidator, RiskLevel, TestOperation
from dualmode.utils.logging import get_logger

RISK_STYLES = {
    RiskLevel.LOW: "green",
    RiskLevel.MEDIUM: "yellow",
    RiskLevel.HIGH: "red",
    RiskLevel.CRITICAL: "bold red",
}


def _load_operations(path: str) -> List[TestOperation]:
    """Load operations from a YAML list or a document with an ``operations`` key."""
    data: Any = load_yaml_file(path) or []
    if isinstance(data, dict):
        data = data.get("operations", [])
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a list of operations")
    return [TestOperation(**item) for item in data]


def cmd_detect(args: argparse.Namespace, console: Console) -> int:
    settings = Settings()
    environ = settings.mode_environment()
    result = detect_mode(args.name, args.tag, None, environ)
    definition = create_test_definition(args.name, args.tag)
    env_check = validate_environment_configuration(result.mode, environ)

    table = Table(title=f"Mode detection: {args.name}")
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("mode", result.mode.value)
    table.add_row("confidence", f"{result.confidence:.1f}")
    table.add_row("source", result.source)
    table.add_row("fallback reason", result.fallback_reason or "-")
    table.add_row("supported modes", ", ".join(m.value for m in definition.supported_modes))
    table.add_row("environment issues", "\n".join(env_check.issues) or "-")
    console.print(table)
    return 0


def cmd_validate(args: argparse.Namespace, console: Console) -> int:
    logger = get_logger("cli")
    try:
        config = SafetyConfig.from_file(args.safety_config) if args.safety_config else None
        operations = _load_operations(args.file)
    except (OSError, ValueError, ValidationError) as e:
        logger.error(f"❌ Could not load input: {e}")
        return 2

    mode = TestMode(args.mode)
    validator = ProductionSafetyValidator(config)

    table = Table(title=f"Safety validation ({mode.value} mode)")
    table.add_column("#", justify="right")
    table.add_column("Operation")
    table.add_column("Entity type")
    table.add_column("Target")
    table.add_column("Risk")
    table.add_column("Issues")

    for index, operation in enumerate(operations, start=1):
        result = validator.validate_operation(operation, mode)
        target = operation.entity_name or (operation.target_entity or {}).get("name") or "-"
        style = RISK_STYLES[result.risk_level]
        table.add_row(
            str(index),
            operation.type.value,
            operation.entity_type or "-",
            str(target),
            f"[{style}]{result.risk_level.label}[/]",
            "\n".join(result.issues) or "-",
        )
    console.print(table)

    bulk = validator.validate_bulk_operation(operations, mode)
    style = RISK_STYLES[bulk.risk_level]
    console.print(f"Batch risk: [{style}]{bulk.risk_level.label}[/] ({len(bulk.issues)} issues)")
    return 1 if bulk.is_blocking() else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dualmode", description="Inspect test mode detection and production safety"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    detect = subparsers.add_parser("detect", help="Show the mode a test would run in")
    detect.add_argument("--name", default="adhoc", help="Test name")
    detect.add_argument(
        "--tag", action="append", default=[], help="Tag declared on the test (repeatable)"
    )
    detect.set_defaults(handler=cmd_detect)

    validate = subparsers.add_parser("validate", help="Classify a YAML batch of operations")
    validate.add_argument("file", help="YAML file with a list of operations")
    validate.add_argument(
        "--mode",
        choices=[mode.value for mode in TestMode],
        default=TestMode.PRODUCTION.value,
        help="Mode to validate against (default: production)",
    )
    validate.add_argument("--safety-config", help="YAML file overriding the safety markers")
    validate.set_defaults(handler=cmd_validate)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    console = Console()
    return args.handler(args, console)


if __name__ == "__main__":
    sys.exit(main())
