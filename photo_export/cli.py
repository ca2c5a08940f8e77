"""
Command-line interface for the photo export pipeline.
"""

import os
import sys
import argparse
from typing import List, Optional

from tqdm import tqdm

from .config import AppConfig, EXTENSION_POLICIES, load_config, validate_config
from .errors import ExportError
from .exporter import ExportOrchestrator, ExportProgress
from .logging_setup import setup_logging, get_logger
from .session import ExportSession
from .surfaces import Surface, parse_surfaces
from .templates import SPACE_CATEGORIES

logger = get_logger(__name__)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Args:
        argv: Argument list, defaults to ``sys.argv[1:]``

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description="Rename, resize and caption venue photos for every publishing surface"
    )

    parser.add_argument(
        "images",
        nargs="*",
        help="Image files or directories containing images"
    )

    parser.add_argument(
        "--config",
        help="Path to configuration JSON file (built-in defaults when omitted)"
    )

    surfaces = parser.add_mutually_exclusive_group()
    surfaces.add_argument(
        "--surfaces",
        help="Comma separated surface keys to export (default from config)"
    )
    surfaces.add_argument(
        "--all-surfaces",
        action="store_true",
        help="Export every surface"
    )

    parser.add_argument(
        "--category",
        choices=SPACE_CATEGORIES,
        help="Category applied to every image"
    )

    parser.add_argument(
        "--location",
        help='Location as "Neighborhood, City"'
    )

    parser.add_argument(
        "--subject",
        help="Name of the space, used in slugs and captions"
    )

    parser.add_argument(
        "--output",
        default=".",
        help="Directory the archive (or CSV) is written to (default: current directory)"
    )

    parser.add_argument(
        "--csv-only",
        action="store_true",
        help="Write metadata.csv only, without transcoding images"
    )

    parser.add_argument(
        "--extension-policy",
        choices=EXTENSION_POLICIES,
        help="Keep original extensions or use each surface's ideal extension"
    )

    parser.add_argument(
        "--drop-failed-rows",
        action="store_true",
        help="Drop manifest rows of artifacts that failed to transcode"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode regardless of config setting"
    )

    parser.add_argument(
        "--list-surfaces",
        action="store_true",
        help="List the available surfaces and exit"
    )

    return parser.parse_args(argv)


def process_arguments(args: argparse.Namespace, config: AppConfig) -> AppConfig:
    """
    Process command-line arguments and override config values.

    Args:
        args: Parsed arguments
        config: Loaded configuration

    Returns:
        Updated configuration
    """
    if args.debug:
        config.debug_mode = True
    if args.all_surfaces:
        config.surfaces = [surface.key for surface in Surface]
    elif args.surfaces:
        config.surfaces = [surface.key for surface in parse_surfaces(args.surfaces)]
    if args.category:
        config.default_category = args.category
    if args.location:
        config.default_location = args.location
    if args.subject:
        config.space_name = args.subject
    if args.extension_policy:
        config.extension_policy = args.extension_policy
    if args.drop_failed_rows:
        config.drop_failed_rows = True

    return validate_config(config)


def list_surfaces() -> None:
    """Print the surface table."""
    print(f"{'key':<17}{'max px':>8}{'quality':>9}  ideal ext")
    for surface in Surface:
        profile = surface.profile
        print(f"{surface.key:<17}{profile.max_dimension:>8}{profile.quality_factor:>9.2f}  {surface.ideal_extension}")


class ProgressBar:
    """Feeds orchestrator progress events into a tqdm bar."""

    def __init__(self, disable: bool = False):
        self.bar = tqdm(total=100, unit="%", desc="Exporting", disable=disable)

    def __call__(self, progress: ExportProgress) -> None:
        delta = progress.percentage - self.bar.n
        if delta > 0:
            self.bar.update(delta)
        self.bar.set_postfix_str(progress.step, refresh=False)

    def close(self) -> None:
        self.bar.close()


def run_cli(argv: Optional[List[str]] = None) -> int:
    """
    Run the command-line interface.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    config = None
    try:
        args = parse_arguments(argv)

        if args.list_surfaces:
            list_surfaces()
            return 0

        config = load_config(args.config) if args.config else AppConfig()
        config = process_arguments(args, config)

        setup_logging(config, log_prefix="photo_export")

        logger.info(f"Python version: {sys.version}")
        logger.info(f"Subject: {config.space_name}")
        logger.info(f"Location: {config.default_location}")
        logger.info(f"Category: {config.default_category}")
        logger.info(f"Surfaces: {', '.join(config.surfaces)}")
        logger.info(f"Extension policy: {config.extension_policy}")
        logger.info(f"Debug mode: {'enabled' if config.debug_mode else 'disabled'}")

        if not args.images:
            logger.error("No images given")
            return 1

        missing = [path for path in args.images if not os.path.exists(path)]
        if missing:
            for path in missing:
                logger.error(f"Not found: {path}")
            return 1

        session = ExportSession(config)
        session.add_paths(args.images)
        if len(session) == 0:
            logger.error("No images found")
            return 1
        logger.info(f"Loaded {len(session)} images")

        session.generate_metadata_for_all_surfaces(config.surfaces)

        if args.csv_only:
            orchestrator = ExportOrchestrator(session, config)
            csv_text = orchestrator.export_csv()
            os.makedirs(args.output, exist_ok=True)
            path = os.path.join(args.output, "metadata.csv")
            with open(path, 'w', encoding='utf-8', newline='') as f:
                f.write(csv_text)
            logger.info(f"Wrote {path}")
            return 0

        progress_bar = ProgressBar(disable=config.debug_mode)
        try:
            orchestrator = ExportOrchestrator(session, config, on_progress=progress_bar)
            result = orchestrator.run()
        finally:
            progress_bar.close()

        path = result.save(args.output)
        session.mark_as_optimized(image.image_id for image in session.images)

        manifest = result.manifest
        logger.info("Export complete")
        logger.info(f"Archive: {path}")
        logger.info(f"Images: {manifest.selected_image_count}")
        logger.info(f"Surfaces: {manifest.surface_count}")
        logger.info(f"Files: {manifest.actual_zip_files}/{manifest.expected_total_files}")
        logger.info(f"Manifest rows: {manifest.csv_rows_generated}")
        return 0

    except ExportError as e:
        logger.error(e.message)
        for detail in e.details:
            logger.error(f"  {detail}")
        return 1
    except Exception as e:
        logger.error(f"Export failed: {str(e)}")
        if config is not None and config.debug_mode:
            import traceback
            logger.error(f"Traceback: {traceback.format_exc()}")
        return 1
