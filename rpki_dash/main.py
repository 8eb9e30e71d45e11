#!/usr/bin/env python3
"""
RPKI Dash - daily route origin validation snapshots

Usage examples:
rpki-dash                                  # full run for today's snapshot
rpki-dash run --date 2024-01-31 --db /var/lib/rpki-dash/rpki_dash.db
rpki-dash validate --date 2024-01-31       # re-run validation only
rpki-dash annotate --date 2024-01-31       # re-run RIR annotation only
rpki-dash summary --date 2024-01-31 --report-dir ./reports
"""

import argparse
import sys
from pathlib import Path

from rpki_dash import __version__
from rpki_dash.database.snapshots import snapshot_date
from rpki_dash.pipeline.workflow import build_pipeline, run_pipeline
from rpki_dash.utils.config import get_config_manager, reset_config_manager
from rpki_dash.utils.error_handling import (
    handle_errors, ParameterValidator, ConfigurationError, ValidationError,
    ErrorFormatter, print_success, print_warning
)
from rpki_dash.utils.logging import setup_logging, log_system_info


def setup_app_logging(config, verbose: bool = False, quiet: bool = False):
    """Configure logging for the application"""
    if quiet:
        level = 'WARNING'
    elif verbose:
        level = 'DEBUG'
    else:
        level = None  # configured level

    setup_logging(config, level=level, console_colors=True)

    if not quiet:
        log_system_info()


def load_config(args):
    """Load configuration and apply command line overrides"""
    if getattr(args, 'config', None):
        reset_config_manager()
        manager = get_config_manager(Path(args.config))
    else:
        manager = get_config_manager()

    manager.update_section('store', db_path=getattr(args, 'db', None))
    manager.update_section('reports', output_dir=getattr(args, 'report_dir', None))
    manager.update_section('concurrency', max_workers=getattr(args, 'workers', None))
    if getattr(args, 'progress', False):
        manager.update_section('concurrency', show_progress=True)

    issues = manager.validate_config()
    if issues:
        raise ConfigurationError(
            "Invalid configuration: " + "; ".join(issues),
            guidance="Fix the configuration file or RPKI_DASH_* environment variables"
        )
    return manager.get_config()


def validate_common_args(args):
    """Validate arguments shared by every command"""
    if getattr(args, 'workers', None) is not None:
        args.workers = ParameterValidator.validate_workers(args.workers, '--workers')
    if getattr(args, 'date', None):
        args.date = ParameterValidator.validate_snapshot_date(args.date, '--date')
    else:
        args.date = snapshot_date()
    return args


def print_stage_table(result):
    for stage, report in result.stages.items():
        outcomes = ", ".join(f"{name}={count}" for name, count in sorted(report['outcomes'].items()))
        print(f"  {stage}: {report['completed']} items in {report['duration']:.1f}s"
              + (f" ({outcomes})" if outcomes else ""))


@handle_errors('rpki_dash.run')
def cmd_run(args, config):
    """Full pipeline: VRPs, routes, validation, registry annotation"""
    result = run_pipeline(config, args.date)

    print_success(f"Snapshot {result.date} complete in {result.execution_time:.1f}s")
    print_stage_table(result)
    if result.summary:
        print(result.summary.to_summary())
    if result.report_file:
        print(f"  Summary file: {result.report_file}")
    return 0


@handle_errors('rpki_dash.validate')
def cmd_validate(args, config):
    """Re-run the validation stage on an existing snapshot"""
    pipeline, closer = build_pipeline(config, args.date)
    try:
        report = pipeline.validate()
    finally:
        closer()

    print_success(f"Validated {pipeline.snapshot.routes} against {report.completed} VRPs "
                  f"in {report.duration:.1f}s")
    print(f"  Route updates: {pipeline.validator.updates}")
    return 0


@handle_errors('rpki_dash.annotate')
def cmd_annotate(args, config):
    """Re-run the registry annotation stage on an existing snapshot"""
    pipeline, closer = build_pipeline(config, args.date)
    try:
        pipeline.annotate()
    finally:
        closer()

    print_success(f"Annotated {pipeline.snapshot.routes} with registry data")
    print_stage_table(pipeline.result)
    return 0


@handle_errors('rpki_dash.summary')
def cmd_summary(args, config):
    """Print validity and RIR counts for a snapshot"""
    pipeline, closer = build_pipeline(config, args.date)
    try:
        summary = pipeline.summarize()
    finally:
        closer()

    if not summary.total_routes and not summary.total_vrps:
        print_warning(f"Snapshot {args.date} is empty or does not exist",
                      "Run 'rpki-dash run' for this date first")
        return 1

    print(summary.to_summary())
    if pipeline.result.report_file:
        print(f"Summary file: {pipeline.result.report_file}")
    return 0


def create_common_flags_parent(suppress_defaults: bool = False):
    """
    Create a parent parser with common global flags

    Subcommand copies suppress their defaults so that flags given before the
    subcommand are not reset by it.
    """
    parent_parser = argparse.ArgumentParser(
        add_help=False,
        argument_default=argparse.SUPPRESS if suppress_defaults else None
    )

    # Verbose/quiet mutual exclusion
    verbose_group = parent_parser.add_mutually_exclusive_group()
    verbose_group.add_argument('-v', '--verbose', action='store_true',
                               help='Enable verbose logging')
    verbose_group.add_argument('-q', '--quiet', action='store_true',
                               help='Quiet mode (warnings only)')

    parent_parser.add_argument('--config', metavar='FILE',
                               help='JSON configuration file')
    parent_parser.add_argument('--date', metavar='YYYY-MM-DD',
                               help="Snapshot date (default: today)")
    parent_parser.add_argument('--db', metavar='PATH',
                               help='Record store path (default: ./rpki_dash.db or RPKI_DASH_DB_PATH)')
    parent_parser.add_argument('--workers', type=int, metavar='N',
                               help='Admission gate capacity (default: 20)')
    parent_parser.add_argument('--report-dir', metavar='DIR',
                               help='Write {date}-summary.yaml into DIR')
    parent_parser.add_argument('--progress', action='store_true',
                               help='Show per-stage progress bars')

    return parent_parser


def create_parser():
    """Create and configure argument parser"""
    common_flags = create_common_flags_parent()
    subcommand_flags = create_common_flags_parent(suppress_defaults=True)

    parser = argparse.ArgumentParser(
        prog='rpki-dash',
        description='RPKI Dash - daily route origin validation snapshots',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
        parents=[common_flags]
    )

    parser.add_argument('--version', action='version', version=f'rpki-dash {__version__}')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    subparsers.add_parser('run',
                          help='Run the full daily pipeline (default)',
                          parents=[subcommand_flags])
    subparsers.add_parser('validate',
                          help='Re-run route origin validation on an existing snapshot',
                          parents=[subcommand_flags])
    subparsers.add_parser('annotate',
                          help='Re-run registry annotation on an existing snapshot',
                          parents=[subcommand_flags])
    subparsers.add_parser('summary',
                          help='Print validity and RIR counts for a snapshot',
                          parents=[subcommand_flags])

    return parser


def main(argv=None):
    """Main entry point"""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        args.command = 'run'

    try:
        args = validate_common_args(args)
        config = load_config(args)
    except (ValidationError, ConfigurationError) as e:
        print(ErrorFormatter.format_error(e))
        return 1

    setup_app_logging(config, args.verbose, args.quiet)

    command_functions = {
        'run': cmd_run,
        'validate': cmd_validate,
        'annotate': cmd_annotate,
        'summary': cmd_summary,
    }

    try:
        return command_functions[args.command](args, config)
    except KeyboardInterrupt:
        print_warning("Operation interrupted by user")
        return 130


if __name__ == '__main__':
    sys.exit(main())
