#!/usr/bin/env python3
"""
Example 2: Adjust per-image fields, edit a caption and export the CSV only.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from photo_export.config import AppConfig
from photo_export.errors import MissingMetadataError
from photo_export.exporter import ExportOrchestrator
from photo_export.session import ExportSession


def main():
    if len(sys.argv) < 2:
        print(f"Usage: {sys.argv[0]} <image> [<image> ...]")
        return 1

    config = AppConfig(surfaces=["web", "pinterest", "print"])
    session = ExportSession(config)
    images = session.add_paths(sys.argv[1:])

    session.current_location = "Williamsburg, Brooklyn"
    session.bulk_update_category([image.image_id for image in images], "natural_light_windows")
    session.update_image_field(images[0].image_id, "notes", "Cover image")

    orchestrator = ExportOrchestrator(session)

    # Nothing generated yet: the export refuses to run and names every gap
    try:
        orchestrator.export_csv()
    except MissingMetadataError as e:
        print(f"{e.message} ({len(e.missing_pairs)} pairs)")

    session.generate_metadata_for_all_surfaces(config.surfaces)
    session.update_metadata(images[0].image_id, "web", caption="Morning light in the main room.\nBook today.")

    print(orchestrator.export_csv())
    return 0


if __name__ == "__main__":
    sys.exit(main())
