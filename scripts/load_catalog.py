#!/usr/bin/env python3
"""
Load destinations from CSV into the catalog tables (upsert by id).

Columns: id, name, image_url, rating, location, price, description,
categories (pipe separated, e.g. "Nature|Adventure").
"""
import csv
import logging
import os
import sys
from typing import Any, Dict, Optional

from pydantic import ValidationError

from scout.core.config import settings
from scout.core.db import SessionLocal, init_db
from scout.places.schemas.destination import Destination
from scout.places.services.catalog import SqlCatalog

logger = logging.getLogger("load_catalog")


def parse_row(row: Dict[str, str]) -> Optional[Destination]:
    """Parse a CSV row into a destination, None when the row is invalid"""
    def to_float(x: Optional[str]) -> float:
        try:
            return float(x) if x not in (None, "", "null", "None") else 0.0
        except ValueError:
            return 0.0

    record: Dict[str, Any] = {
        "id": (row.get("id") or "").strip(),
        "name": (row.get("name") or "").strip(),
        "image_url": (row.get("image_url") or "").strip(),
        "rating": to_float(row.get("rating")),
        "location": (row.get("location") or "").strip(),
        "price": to_float(row.get("price")),
        "description": (row.get("description") or "").strip() or None,
        "categories": tuple(c.strip() for c in (row.get("categories") or "").split("|") if c.strip()),
    }
    if not record["id"] or not record["name"]:
        return None
    try:
        return Destination(**record)
    except ValidationError as e:
        logger.warning(f"Skipping {record['id']}: {e}")
        return None


def main():
    logging.basicConfig(level=settings.log_level)

    csv_file = sys.argv[1] if len(sys.argv) > 1 else "destinations.csv"
    if not os.path.exists(csv_file):
        logger.error(f"CSV file not found: {csv_file}")
        sys.exit(1)

    init_db()
    catalog = SqlCatalog(SessionLocal)

    loaded = 0
    skipped = 0
    logger.info(f"Loading destinations from {csv_file}...")
    with open(csv_file, "r", encoding="utf-8") as f:
        for row in csv.DictReader(f):
            destination = parse_row(row)
            if destination is None:
                skipped += 1
                continue
            catalog.upsert(destination)
            loaded += 1
            if loaded % 100 == 0:
                logger.info(f"Loaded {loaded} destinations...")

    logger.info(f"Loaded {loaded} destinations, skipped {skipped} invalid rows")


if __name__ == "__main__":
    main()
