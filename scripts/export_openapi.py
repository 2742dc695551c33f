#!/usr/bin/env python3
"""Write the VenueFlow OpenAPI schema to disk.

Usage:
    python scripts/export_openapi.py [output_path]
"""

import json
import sys
import logging
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from api.main import app

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT = Path("docs") / "openapi.json"


def export_openapi(output_path: Path = DEFAULT_OUTPUT) -> Path:
    """Export the schema, including the camelCase venue and event models.

    Args:
        output_path: Destination JSON file

    Returns:
        Path written
    """
    schema = app.openapi()
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(schema, f, indent=2, ensure_ascii=False)

    logger.info(
        f"OpenAPI schema ({len(schema.get('paths', {}))} paths) exported to {output_path}"
    )
    return output_path


if __name__ == "__main__":
    export_openapi(Path(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_OUTPUT)
