"""
Application entry point.

This module defines a simple command‑line interface for running the
engine in paper or live mode.  It loads and validates the configuration,
restores the persisted risk state and starts the polling runner.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from .config.schema import ConfigurationError, load_config
from .execution.runner import build_runner


def _setup_logging(verbose: bool) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Parse command‑line arguments and dispatch to the appropriate mode."""
    parser = argparse.ArgumentParser(description="FX position lifecycle engine")
    parser.add_argument('mode', choices=['paper', 'live'], help="Operating mode")
    parser.add_argument('--config', default='config.yaml', help="Path to configuration YAML file")
    parser.add_argument('-v', '--verbose', action='store_true', help="Enable debug logging")
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    try:
        config = load_config(args.config)
        # Override mode from CLI if provided
        config.mode = args.mode
        config.validate()
    except ConfigurationError as exc:
        logging.error("Invalid configuration in %s: %s", args.config, exc)
        return 2

    live_flag = args.mode == 'live'
    logging.info("Starting %s trading on %s via MetaTrader 5...", args.mode, config.symbol)
    try:
        runner = build_runner(config, live=live_flag)
    except RuntimeError as exc:
        logging.error("Could not start: %s", exc)
        return 1
    runner.run()
    return 0


if __name__ == '__main__':
    sys.exit(main())
