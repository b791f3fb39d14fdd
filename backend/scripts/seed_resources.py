"""
Resource Specification Seeding
Loads sample resource specifications from a YAML file into the database
"""
import argparse
import sys
from pathlib import Path
from typing import Any, Dict, List

import structlog
import yaml
from sqlalchemy import select

from gcp_boq.db.database import SyncSessionLocal, init_db
from gcp_boq.db.repositories import ResourceRepository
from gcp_boq.models.models import ResourceSpecificationRecord

logger = structlog.get_logger()

DEFAULT_FILE = Path(__file__).resolve().parent.parent / "data" / "sample_resources.yaml"


def load_resources(path: Path) -> List[Dict[str, Any]]:
    """Read resource rows; a top-level project_id applies to rows without one."""
    with open(path, "r", encoding="utf-8") as f:
        payload = yaml.safe_load(f) or {}

    project_id = payload.get("project_id")
    rows = []
    for resource in payload.get("resources", []):
        row = dict(resource)
        row.setdefault("project_id", project_id)
        row.setdefault("created_by", "seed")
        rows.append(row)
    return rows


def seed_resources(path: Path) -> int:
    init_db()
    rows = load_resources(path)

    db = SyncSessionLocal()
    try:
        existing = {
            (project_id, resource_id)
            for project_id, resource_id in db.execute(
                select(ResourceSpecificationRecord.project_id, ResourceSpecificationRecord.resource_id)
            ).all()
        }
        new_rows = [r for r in rows if (r["project_id"], r["resource_id"]) not in existing]

        ResourceRepository(db).add_many(new_rows)
        db.commit()
    finally:
        db.close()

    logger.info("resources_seeded", file=str(path), inserted=len(new_rows), skipped=len(rows) - len(new_rows))
    return len(new_rows)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Seed resource specifications")
    parser.add_argument("--file", type=Path, default=DEFAULT_FILE, help="YAML file with resources")
    args = parser.parse_args(argv)

    try:
        seed_resources(args.file)
    except (OSError, yaml.YAMLError) as e:
        logger.error("resource_seed_failed", error=str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
