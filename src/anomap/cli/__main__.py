"""CLI entry point for anomap.

Dispatches to subcommands::

    anomap predict   : Score images and save heatmap overlays
    anomap evaluate  : Evaluate model and threshold on a labeled folder

Usage:
    python -m anomap.cli predict --model models/bottle.onnx samples/
    python -m anomap.cli evaluate --model models/bottle.onnx --data-root data/bottle/test
"""

from __future__ import annotations

import argparse
import logging
import sys

from anomap.cli.evaluate import add_evaluate_parser
from anomap.cli.predict import add_predict_parser

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point.

    Dispatches to subcommands:
        anomap predict   : Score images and save heatmap overlays
        anomap evaluate  : Evaluate model and threshold on a labeled folder

    Args:
        argv: Optional argument list (defaults to sys.argv[1:]).
    """
    logging.basicConfig(level=logging.INFO, format=_LOG_FORMAT)

    parser = argparse.ArgumentParser(
        prog="anomap",
        description=(
            "anomap: anomaly score and heatmap extraction for "
            "pre-trained anomaly detection models"
        ),
    )
    subparsers = parser.add_subparsers(
        title="subcommands",
        dest="subcommand",
        description="Available commands",
    )

    add_predict_parser(subparsers)
    add_evaluate_parser(subparsers)

    args = parser.parse_args(argv)

    if args.subcommand is None:
        parser.print_help()
        sys.exit(0)

    args.func(args)


if __name__ == "__main__":
    main()
