"""CLI entry point: ``sectionforge process`` and ``sectionforge packages``."""

from __future__ import annotations

# Phase 1: singleton logging, before any transitive litellm imports
from sectionforge.logging_config import setup_logging

setup_logging()

import argparse  # noqa: E402
import asyncio  # noqa: E402
import json  # noqa: E402
import sys  # noqa: E402
from pathlib import Path  # noqa: E402

from pydantic import ValidationError  # noqa: E402

from sectionforge import __version__  # noqa: E402
from sectionforge.config import Settings  # noqa: E402
from sectionforge.constants import (  # noqa: E402
    CompressionLevel,
    PackageFormat,
    StageProgress,
)
from sectionforge.logging_config import (  # noqa: E402
    cleanup_third_party_handlers,
    set_verbose,
)
from sectionforge.processing.schemas import (  # noqa: E402
    CombinedModule,
    SplittingResult,
)

# Phase 2: Clear litellm's duplicate handlers after all imports
cleanup_third_party_handlers()


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"sectionforge {__version__}")
        return

    if args.command == "process":
        _run_process(args)
    elif args.command == "packages":
        _run_packages(args, parser)
    else:
        parser.print_help()


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="sectionforge",
        description=(
            "Batch section processing: turns split design sections "
            "into packaged CMS modules."
        ),
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )

    sub = parser.add_subparsers(dest="command")

    process = sub.add_parser(
        "process",
        help="Process a splitting result JSON file",
    )
    process.add_argument(
        "splitting_file",
        type=str,
        help="Path to splitting result JSON",
    )
    process.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Sections per batch (default: splitter recommendation)",
    )
    process.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Quality threshold 0-100 (default: from settings)",
    )
    process.add_argument(
        "--no-skip",
        action="store_true",
        help="Mark low-quality sections failed instead of skipped",
    )
    process.add_argument(
        "--package",
        action="store_true",
        help="Package the combined module",
    )
    process.add_argument(
        "--format",
        choices=[f.value for f in PackageFormat],
        default=PackageFormat.ZIP.value,
        help="Archive format (default: zip)",
    )
    process.add_argument(
        "--compression",
        choices=[c.value for c in CompressionLevel],
        default=CompressionLevel.BEST.value,
        help="Compression level (default: best)",
    )
    process.add_argument(
        "--name",
        default="combined-module",
        help="Module name used in the package manifest",
    )
    process.add_argument(
        "--output-dir",
        "-o",
        default="sectionforge-output",
        help="Output directory (default: sectionforge-output)",
    )
    process.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output",
    )

    pkgs = sub.add_parser("packages", help="Manage stored packages")
    pkg_sub = pkgs.add_subparsers(dest="packages_command")
    list_cmd = pkg_sub.add_parser("list", help="List packages")
    list_cmd.add_argument(
        "--author", default=None, help="Filter by created_by"
    )
    list_cmd.add_argument(
        "--type", dest="module_type", default=None,
        help="Filter by module type",
    )
    info = pkg_sub.add_parser("info", help="Show a package manifest")
    info.add_argument("package_id")
    delete = pkg_sub.add_parser("delete", help="Delete a package")
    delete.add_argument("package_id")
    pkg_sub.add_parser("purge", help="Delete expired packages")

    return parser


def _load_splitting(path: Path) -> SplittingResult:
    if not path.is_file():
        print(f"Error: {path} does not exist", file=sys.stderr)
        sys.exit(1)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        print(f"Error: invalid JSON in {path}: {exc}", file=sys.stderr)
        sys.exit(1)
    if isinstance(raw, list):
        raw = {"sections": raw}
    try:
        return SplittingResult.model_validate(raw)
    except ValidationError as exc:
        print(f"Error: invalid splitting result: {exc}", file=sys.stderr)
        sys.exit(1)


def _run_process(args: argparse.Namespace) -> None:
    """Execute the process command."""
    from sectionforge.logger import PipelineLogger
    from sectionforge.packaging.schemas import (
        PackageMetadata,
        PackageOptions,
    )
    from sectionforge.processing.schemas import ProcessingOptions
    from sectionforge.services.events import StageEvent
    from sectionforge.services.pipeline_service import (
        PackageRequest,
        run_pipeline,
    )

    set_verbose(args.verbose)
    splitting = _load_splitting(Path(args.splitting_file))
    settings = Settings()
    try:
        options = ProcessingOptions.from_settings(
            settings,
            batch_size=args.batch_size,
            quality_threshold=args.threshold,
            skip_failed_sections=False if args.no_skip else None,
        )
    except ValidationError as exc:
        print(f"Error: invalid options: {exc}", file=sys.stderr)
        sys.exit(1)

    package = None
    if args.package:
        package = PackageRequest(
            options=PackageOptions(
                format=PackageFormat(args.format),
                compression_level=CompressionLevel(args.compression),
            ),
            metadata=PackageMetadata(name=args.name),
        )

    def on_progress(event: StageEvent) -> None:
        if args.verbose and event.status != StageProgress.RUNNING:
            suffix = f" {event.message}" if event.message else ""
            print(f"  [{event.status}] {event.label}{suffix}")

    print(f"Processing {splitting.total_sections} sections...")
    run = asyncio.run(
        run_pipeline(
            splitting,
            settings,
            options=options,
            package=package,
            pipeline_logger=PipelineLogger(
                log_dir=settings.log_dir, level=settings.log_level
            ),
            on_progress=on_progress,
        )
    )
    result = run.processing

    output_dir = Path(args.output_dir)
    if result.combined_module is not None:
        _write_module(result.combined_module, output_dir)

    print(
        f"\nDone! {result.processed_sections} completed, "
        f"{result.failed_sections} failed, "
        f"{result.skipped_sections} skipped "
        f"(score {result.overall_quality_score:.0f}, "
        f"{run.total_duration_ms:.0f}ms)"
    )
    if result.combined_module is not None:
        print(f"Module: {output_dir}/")
    elif result.combine_error:
        print(f"No combined module: {result.combine_error}")
    if run.package is not None:
        print(f"Package: {run.package.package_path}")
    for stage in run.stages:
        if not stage.ok and stage.error:
            print(f"  [{stage.name}] {stage.error}", file=sys.stderr)

    if result.nothing_usable:
        sys.exit(1)


def _write_module(module: CombinedModule, output_dir: Path) -> None:
    """Write a combined module's files to ``output_dir``."""
    from sectionforge.processing.combiner import to_module_files

    files = to_module_files(module)
    output_dir.mkdir(parents=True, exist_ok=True)
    for name, content in files.text_files().items():
        (output_dir / name).write_text(content, encoding="utf-8")


def _run_packages(
    args: argparse.Namespace, parser: argparse.ArgumentParser
) -> None:
    from sectionforge.packaging.builder import PackageBuilder
    from sectionforge.packaging.schemas import PackageFilters

    builder = PackageBuilder(Settings())
    command = args.packages_command

    if command == "list":
        manifests = builder.list_packages(
            PackageFilters(
                created_by=args.author, module_type=args.module_type
            )
        )
        if not manifests:
            print("No packages.")
        for m in manifests:
            print(
                f"{m.package_id}  {m.module_name} {m.version}  "
                f"{m.created_at.isoformat()}  {m.created_by}  "
                f"{m.metadata.file_count} files"
            )
    elif command == "info":
        manifest = builder.get_package_info(args.package_id)
        if manifest is None:
            print(
                f"Error: package {args.package_id} not found",
                file=sys.stderr,
            )
            sys.exit(1)
        print(manifest.model_dump_json(indent=2))
    elif command == "delete":
        builder.delete_package(args.package_id)
        print(f"Deleted {args.package_id}")
    elif command == "purge":
        removed = builder.purge_expired()
        print(f"Purged {len(removed)} expired package(s)")
    else:
        parser.print_help()
