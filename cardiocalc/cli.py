"""
Command-line access to the cardiology risk calculators.

Usage:
    cardiocalc list
    cardiocalc info cha2ds2_vasc
    cardiocalc run heart_score --vars '{"history": 1, "ecg": 0, "age": 1, "risk_factors": 1, "troponin": 0}'
    cardiocalc run ascvd --vars-file patient.json
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .tools import ToolHandler, format_calc_info

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cardiocalc", description="Cardiology risk calculators")
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Logging verbosity (default: WARNING)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List available calculators")

    info = sub.add_parser("info", help="Show a calculator's input schema")
    info.add_argument("calc_id")
    info.add_argument("--json", action="store_true", help="Print the schema as JSON")

    run = sub.add_parser("run", help="Run a calculator")
    run.add_argument("calc_id")
    src = run.add_mutually_exclusive_group(required=True)
    src.add_argument("--vars", help="Variables as a JSON object")
    src.add_argument("--vars-file", type=Path, help="Path to a JSON file of variables")
    return parser


def _load_variables(args: argparse.Namespace) -> Dict[str, Any]:
    text = args.vars if args.vars is not None else args.vars_file.read_text()
    variables = json.loads(text)
    if not isinstance(variables, dict):
        raise ValueError("variables must be a JSON object")
    return variables


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    handler = ToolHandler()

    if args.command == "list":
        for calc in handler.list_calculators():
            print(f"{calc['id']:<14} {calc['title']}")
        return 0

    if args.command == "info":
        try:
            info = handler.calc_info(args.calc_id)
        except ValueError as e:
            print(f"error: {e}", file=sys.stderr)
            return 2
        if args.json:
            _print_json(info.model_dump())
        else:
            print(format_calc_info(info))
        return 0

    # run
    try:
        variables = _load_variables(args)
    except (OSError, ValueError) as e:
        print(f"error: could not read variables: {e}", file=sys.stderr)
        return 2

    try:
        handler.calc_info(args.calc_id)
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    result = handler.execute_calc(args.calc_id, variables)
    _print_json(result.model_dump())
    if not result.success:
        logger.info(f"{args.calc_id} failed: {result.errors}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
