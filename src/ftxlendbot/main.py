"""
FTX lending bot main entry point

This is the main entry point for the application, responsible for:
- Parsing command line arguments
- Loading configuration from the environment, .env and the optional config file
- Running one lending cycle every hour until the process is told to stop
"""

from __future__ import annotations

import argparse

from .modules.Orchestrator import BotOrchestrator


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parses command line arguments

    Command line arguments:
        -cfg, --config: Custom configuration file path
        -dry, --dryrun: Dry-run mode, does not submit lending offers
        -v, --verbose: Log every API request and response
        --once: Run a single lending cycle now and exit
    """
    parser = argparse.ArgumentParser(
        description="FTX lending bot - lends the spare balance of one currency every hour",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-cfg",
        "--config",
        help="Custom configuration file path (default: default.cfg)",
        type=str,
        default=None,
    )

    parser.add_argument(
        "-dry",
        "--dryrun",
        help="Dry-run mode, does not submit lending offers",
        action="store_true",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        help="Verbose output mode",
        action="store_true",
    )

    parser.add_argument(
        "--once",
        help="Run a single lending cycle now and exit",
        action="store_true",
    )

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_arguments(argv)

    orchestrator = BotOrchestrator(
        config_path=args.config,
        dry_run=bool(args.dryrun),
        verbose=bool(args.verbose),
    )
    orchestrator.initialize()

    if args.once:
        orchestrator.run_once()
    else:
        orchestrator.run()


if __name__ == "__main__":
    main()
