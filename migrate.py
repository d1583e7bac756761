#!/usr/bin/env python3
"""
Kibela to esa Migration Tool - Main CLI Entry Point

This script provides the command-line interface for migrating a Kibela
markdown export into an esa team: attachments, notes, comments and the links
between notes.
"""

import argparse
import logging
import sys

import yaml

from config_loader import ConfigLoader, MigrationConfig, get_nested
from fetchers import NoteReadError
from logger import LOGGER_NAME, setup_logging, log_section, log_config
from orchestrator import MigrationOrchestrator, MigrationReport

# Version
__version__ = "1.0.0"


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for CLI."""
    parser = argparse.ArgumentParser(
        description="Migrate a Kibela markdown export into esa",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Preview every request without sending anything
  python migrate.py --config config.yaml --dry-run

  # Run the migration and write the URL mapping file
  python migrate.py --config config.yaml --no-dry-run --output post_mappings.tsv

  # Verbose logging
  python migrate.py -vv
        """
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    parser.add_argument(
        '--config',
        type=str,
        default='config.yaml',
        help='Path to configuration YAML file (default: config.yaml)'
    )

    parser.add_argument(
        '--export-dir',
        type=str,
        help='Directory holding the kibela-<team>-N export folders'
    )

    parser.add_argument(
        '--output',
        type=str,
        help='Path of the post mapping file written after migration'
    )

    parser.add_argument(
        '--log-file',
        type=str,
        help='Write a full DEBUG log, including every request, to this file'
    )

    parser.add_argument(
        '--dry-run',
        action=argparse.BooleanOptionalAction,
        default=None,
        help='Log every request without calling esa or Kibela'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='count',
        default=0,
        help='Increase verbosity (-v for INFO, -vv for DEBUG)'
    )

    return parser


def run_migration(config: MigrationConfig, logger: logging.Logger) -> int:
    """Execute the complete migration pipeline."""
    logger.info(f"Dry-run: {config.dry_run}")

    try:
        orchestrator = MigrationOrchestrator(config, logger=logger)
        report = orchestrator.orchestrate_migration()

        report_generator = MigrationReport(logger)
        print("\n" + report_generator.format_console_report(report))

        errors = report.get('summary', {}).get('total_errors', 0)
        if errors > 0:
            logger.warning(f"Migration completed with {errors} errors")
            return 1

        logger.info("Migration completed successfully")
        return 0

    except NoteReadError as e:
        logger.error(f"Migration aborted on invalid note: {e}")
        return 1
    except KeyboardInterrupt:
        logger.error("Migration interrupted by user")
        return 130


def main() -> int:
    """Main entry point for the CLI."""
    parser = create_argument_parser()
    args = parser.parse_args()

    try:
        setup_logging(verbosity=args.verbose)
        logger = logging.getLogger(LOGGER_NAME)

        log_section("Kibela to esa Migration Tool")
        logger.info(f"Version: {__version__}")

        # Load configuration
        logger.info(f"Loading configuration from {args.config}")
        config = ConfigLoader.load(args.config)

        # Merge with CLI arguments (CLI takes precedence)
        config = ConfigLoader.merge_with_args(config, args)

        dry_run = bool(get_nested(config, 'migration.dry_run', False))
        ConfigLoader.validate(config, dry_run=dry_run)

        # Reconfigure logging with config file settings
        logger = setup_logging(
            verbosity=args.verbose,
            log_file=get_nested(config, 'logging.file'),
            level=get_nested(config, 'logging.level')
        )

        migration_config = MigrationConfig.from_dict(config)

    except FileNotFoundError as e:
        print(f"ERROR: File not found: {e}", file=sys.stderr)
        return 2
    except ValueError as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        return 2
    except yaml.YAMLError as e:
        print(f"ERROR: Invalid configuration YAML: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("\nMigration interrupted by user", file=sys.stderr)
        return 130

    log_config(config)

    return run_migration(migration_config, logger)


if __name__ == "__main__":
    sys.exit(main())
