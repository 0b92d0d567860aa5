# File: schemaforge/cli.py
"""
NexaFlow SchemaForge - Command-Line Interface
===============================================

Built with the standard-library ``argparse`` module.

Usage examples::

    # Generate a project
    schemaforge -m schemaforge.yaml -o ./generated

    # Verbose output with a clean directory and a custom package name
    schemaforge -m manifest.json -o ./out -vv --clean --package-name blog

    # Validate only (no file output), machine-readable
    schemaforge -m manifest.json --validate-only --json

    # Run the pipeline without writing anything
    schemaforge -m manifest.yaml --dry-run

    # Show available stack profiles
    schemaforge --list-profiles

Exit codes:
    0 - success
    1 - validation error
    2 - configuration or generation error
    3 - export error
    4 - input/argument error
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional, Sequence

# ---------------------------------------------------------------------------
# Logger (configured in _setup_logging)
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge")


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_SUCCESS: int = 0
EXIT_VALIDATION_ERROR: int = 1
EXIT_GENERATION_ERROR: int = 2
EXIT_EXPORT_ERROR: int = 3
EXIT_INPUT_ERROR: int = 4


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(verbosity: int) -> None:
    """
    Configure the ``schemaforge`` logger.

    Args:
        verbosity: -1 = ERROR, 0 = WARNING, 1 = INFO, 2+ = DEBUG.
    """
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    elif verbosity == 0:
        level = logging.WARNING
    else:
        level = logging.ERROR

    handler: logging.StreamHandler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    fmt: str = "%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s"
    handler.setFormatter(logging.Formatter(fmt, datefmt="%H:%M:%S"))

    root_logger: logging.Logger = logging.getLogger("schemaforge")
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.propagate = False


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    from schemaforge import __version__
    from schemaforge.registry import default_profile_id

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="schemaforge",
        description=(
            "NexaFlow SchemaForge - declarative schema to code compiler.\n\n"
            "Compiles an entity manifest (JSON/YAML) into a FastAPI + "
            "SQLAlchemy 2.0 + Pydantic v2 project with tests, docs and seeds."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  %(prog)s -m schemaforge.yaml -o ./generated\n"
            "  %(prog)s -m manifest.json --validate-only --json\n"
            "  %(prog)s --list-profiles\n"
        ),
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"NexaFlow SchemaForge v{__version__}",
    )
    parser.add_argument(
        "-m", "--manifest",
        type=str,
        default=None,
        metavar="PATH",
        help="Path to the manifest file (.json, .yaml or .yml).",
    )
    parser.add_argument(
        "-o", "--output",
        type=str,
        default=None,
        metavar="DIR",
        help="Output directory. Required unless --validate-only or --dry-run is set.",
    )
    parser.add_argument(
        "-p", "--profile",
        type=str,
        default=default_profile_id(),
        metavar="ID",
        help="Stack profile to generate (default: %(default)s).",
    )

    mode_group = parser.add_argument_group("operation modes")
    mode_group.add_argument(
        "--validate-only",
        action="store_true",
        default=False,
        help="Only validate the manifest without generating code.",
    )
    mode_group.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Run the full pipeline but list files instead of writing them.",
    )
    mode_group.add_argument(
        "--list-profiles",
        action="store_true",
        default=False,
        help="List the registered stack profiles and exit.",
    )
    mode_group.add_argument(
        "--json",
        dest="as_json",
        action="store_true",
        default=False,
        help="Print validation results as JSON.",
    )

    config_group = parser.add_argument_group("output overrides")
    config_group.add_argument(
        "--package-name",
        type=str,
        default=None,
        metavar="NAME",
        help="Import name of the generated package.",
    )
    config_group.add_argument(
        "--api-prefix",
        type=str,
        default=None,
        metavar="PREFIX",
        help="Mount point of the API routers (e.g. '/api/v1').",
    )
    config_group.add_argument(
        "--seed-count",
        type=int,
        default=None,
        metavar="N",
        help="Seed records per entity (1-1000).",
    )
    config_group.add_argument(
        "--title",
        type=str,
        default=None,
        metavar="TITLE",
        help="Human-readable project title.",
    )

    behaviour_group = parser.add_argument_group("behaviour flags")
    behaviour_group.add_argument(
        "--clean",
        action="store_true",
        default=False,
        help="Clean the output directory before writing.",
    )
    behaviour_group.add_argument(
        "--strict-protection",
        action="store_true",
        default=False,
        help="Fail when protected operations are declared while auth is disabled.",
    )
    behaviour_group.add_argument(
        "--fail-on-warnings",
        action="store_true",
        default=False,
        help="Treat validation warnings as errors.",
    )

    verbosity_group = parser.add_argument_group("verbosity")
    verbosity_group.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for INFO, -vv for DEBUG).",
    )
    verbosity_group.add_argument(
        "-q", "--quiet",
        action="store_true",
        default=False,
        help="Suppress all output except errors.",
    )

    return parser


def _build_config_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {
        "package_name": args.package_name,
        "api_prefix": args.api_prefix,
        "seed_count": args.seed_count,
        "project_title": args.title,
    }
    return {k: v for k, v in overrides.items() if v is not None}


# ---------------------------------------------------------------------------
# Modes
# ---------------------------------------------------------------------------


def _run_list_profiles() -> int:
    from schemaforge.registry import default_profile_id, list_profiles

    for profile in list_profiles():
        marker: str = "*" if profile.id == default_profile_id() else " "
        print(f"{marker} {profile.id:<32s} {profile.name}")
        print(f"    {profile.description}")
        print(f"    steps: {', '.join(profile.step_names)}")
    return EXIT_SUCCESS


def _run_validate_only(manifest_path: Path, as_json: bool) -> int:
    """Batch-validate the manifest and print every issue."""
    from schemaforge.errors import ManifestLoadError
    from schemaforge.json_input import read_manifest_data
    from schemaforge.utils import Timer
    from schemaforge.validators import validate_manifest

    try:
        raw: Dict[str, Any] = read_manifest_data(manifest_path)
    except ManifestLoadError as exc:
        logger.error("Failed to load manifest: %s", exc)
        return EXIT_INPUT_ERROR

    with Timer("validation") as t:
        result = validate_manifest(raw)

    if as_json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print("=" * 50)
        print("  Manifest Validation Report")
        print("=" * 50)
        print(f"  File:     {manifest_path.name}")
        print(f"  Entities: {len(raw.get('entities') or [])}")
        print(f"  Time:     {t.elapsed:.3f}s")
        print(f"  Valid:    {'Yes' if result.is_valid else 'No'}")
        if len(result):
            print()
            print(result.format_report())
        print("=" * 50)

    return EXIT_SUCCESS if result.is_valid else EXIT_VALIDATION_ERROR


def _exit_code(report: Any) -> int:
    if report.success:
        return EXIT_SUCCESS
    if report.input_errors:
        return EXIT_INPUT_ERROR
    if report.validation_errors:
        return EXIT_VALIDATION_ERROR
    if report.configuration_errors or report.generation_errors:
        return EXIT_GENERATION_ERROR
    if report.export_errors:
        return EXIT_EXPORT_ERROR
    return EXIT_GENERATION_ERROR


def _run_generation(
    manifest_path: Path,
    output_dir: Optional[Path],
    args: argparse.Namespace,
) -> int:
    from schemaforge.errors import ConfigurationError
    from schemaforge.generator import CodeGenerator, GenerationReport

    try:
        generator: CodeGenerator = CodeGenerator(
            profile_id=args.profile,
            strict_protection=args.strict_protection,
            fail_on_warnings=args.fail_on_warnings,
            clean_output=args.clean,
        )
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return EXIT_INPUT_ERROR

    overrides: Dict[str, Any] = _build_config_overrides(args)
    report: GenerationReport = generator.generate_from_file(
        manifest_path,
        output_dir,
        config_overrides=overrides or None,
    )

    print(report.summary())
    if output_dir is None and report.success:
        for generated in report.files:
            print(f"  {generated.path}  ({generated.line_count} lines)")

    return _exit_code(report)


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def cli_main(argv: Optional[Sequence[str]] = None) -> NoReturn:
    """
    Main CLI entry point.

    Args:
        argv: Optional argument list (defaults to ``sys.argv[1:]``).
    """
    parser: argparse.ArgumentParser = _build_parser()
    args: argparse.Namespace = parser.parse_args(argv)

    _setup_logging(-1 if args.quiet else args.verbose)

    if args.list_profiles:
        sys.exit(_run_list_profiles())

    if args.manifest is None:
        logger.error("A manifest is required: use -m/--manifest PATH.")
        parser.print_usage(sys.stderr)
        sys.exit(EXIT_INPUT_ERROR)

    manifest_path: Path = Path(args.manifest).resolve()
    if not manifest_path.is_file():
        logger.error("Manifest file not found: %s", manifest_path)
        sys.exit(EXIT_INPUT_ERROR)

    if args.validate_only:
        sys.exit(_run_validate_only(manifest_path, args.as_json))

    output_dir: Optional[Path] = None
    if not args.dry_run:
        if args.output is None:
            logger.error(
                "Output directory is required for generation. "
                "Use -o/--output, --dry-run or --validate-only."
            )
            parser.print_usage(sys.stderr)
            sys.exit(EXIT_INPUT_ERROR)
        output_dir = Path(args.output).resolve()

    logger.info("Manifest: %s", manifest_path)
    logger.info("Output:   %s", output_dir or "(dry run)")
    logger.info("Profile:  %s", args.profile)

    exit_code: int = _run_generation(manifest_path, output_dir, args)
    if exit_code == EXIT_SUCCESS:
        logger.info("Generation completed successfully.")
    else:
        logger.error("Generation failed with exit code %d.", exit_code)
    sys.exit(exit_code)


__all__: List[str] = [
    "cli_main",
    "EXIT_SUCCESS",
    "EXIT_VALIDATION_ERROR",
    "EXIT_GENERATION_ERROR",
    "EXIT_EXPORT_ERROR",
    "EXIT_INPUT_ERROR",
]

logger.debug("schemaforge.cli loaded - %d public symbols.", len(__all__))
