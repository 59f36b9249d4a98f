"""Throughput benchmark CLI - Command line interface."""

import argparse
import json
import logging
import sys
from typing import List, Optional

from common.errors import InvalidArgumentError
from common.models.scenario import OP_ALL
from common.utils import load_yaml
from harness.config import get_settings
from harness.core.context import BenchmarkContext
from harness.runner import run_benchmark, usage

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Top-level options; everything else is handed to the operations."""
    parser = argparse.ArgumentParser(
        prog="nnbench",
        description="Control-plane throughput benchmark",
        usage=usage(),
        allow_abbrev=False,
    )
    parser.add_argument("--op", required=True, help=f"Operation to run, or '{OP_ALL}'")
    parser.add_argument(
        "--scenario-file",
        help="YAML file with option defaults (keys are option names without dashes)",
    )
    parser.add_argument(
        "--report-file",
        help="Append one JSON line per operation report to this file",
    )
    return parser


def load_defaults(path: str) -> dict:
    """Read option defaults; ``files-per-dir`` and ``files_per_dir`` are equivalent."""
    data = load_yaml(path)
    if not isinstance(data, dict):
        raise InvalidArgumentError(f"{path}: expected a mapping of option names to values", usage())
    return {str(key).replace("-", "_"): value for key, value in data.items()}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format=settings.log_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    parser = build_parser()
    args, op_args = parser.parse_known_args(argv)

    try:
        defaults = load_defaults(args.scenario_file) if args.scenario_file else None
        context = BenchmarkContext.create(settings=settings)
        reports = run_benchmark(context, args.op, op_args, defaults)
    except InvalidArgumentError as e:
        print(f"Error: {e}", file=sys.stderr)
        print(e.usage or usage(), file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception:
        # Already logged by the runner
        return 1

    if args.report_file:
        with open(args.report_file, "a") as f:
            for report in reports:
                f.write(json.dumps(report.to_jsonl()) + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
