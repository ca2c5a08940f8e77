#!/usr/bin/env python3
"""
Example 1: Export a folder of photos for web and Instagram.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from photo_export.config import AppConfig
from photo_export.exporter import ExportOrchestrator
from photo_export.logging_setup import setup_logging
from photo_export.session import ExportSession
from photo_export.surfaces import Surface


def main():
    if len(sys.argv) < 2:
        print(f"Usage: {sys.argv[0]} <image folder> [output folder]")
        return 1

    config = AppConfig(
        space_name="Studio",
        default_location="SoHo, NYC",
        surfaces=[Surface.WEB.key, Surface.INSTAGRAM.key],
    )
    setup_logging(config)

    session = ExportSession(config)
    session.add_paths([sys.argv[1]])

    # Every selected (image, surface) pair needs metadata before exporting
    session.generate_metadata_for_all_surfaces(config.surfaces)

    def show_progress(progress):
        print(f"[{progress.percentage:3d}%] {progress.step}")

    orchestrator = ExportOrchestrator(session, on_progress=show_progress)
    result = orchestrator.run()

    path = result.save(sys.argv[2] if len(sys.argv) > 2 else ".")
    print(f"Wrote {path}")
    print(result.manifest.to_dict())
    return 0


if __name__ == "__main__":
    sys.exit(main())
