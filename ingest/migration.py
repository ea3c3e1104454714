from __future__ import annotations

import argparse
import json
import logging
import sys
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

from config.settings import settings
from ingest.sheet_parser import parse_workbook
from ops.metrics import Timer
from repos.category_repo import CategoryRepository
from repos.medication_repo import MedicationRepository
from repos.pharmacy_repo import PharmacyRepository
from repos.price_repo import PriceRepository
from storage.gcs_client import upload_bytes

log = logging.getLogger("medprice.ingest.migration")


def load_workbook(path: str) -> Dict[str, Any]:
    """Read the workbook JSON. Raises FileNotFoundError when the file is missing."""
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(f"ingest_source_not_found: {path}")
    with p.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def resolve_source_path(requested: Optional[str]) -> str:
    """
    Resolve a requested workbook path against the directory of
    INGEST_SOURCE_PATH. Raises ValueError('source_path_outside_ingest_dir').
    """
    default = Path(settings.INGEST_SOURCE_PATH).resolve()
    if not requested:
        return str(default)
    base = default.parent
    candidate = (base / requested).resolve()
    if base not in candidate.parents:
        raise ValueError("source_path_outside_ingest_dir")
    return str(candidate)


def _archive_source(path: str, run_id: str) -> Optional[str]:
    if not settings.GCS_INGEST_ARCHIVE_BUCKET:
        return None
    blob_name = f"ingest/{run_id}/{Path(path).name}"
    return upload_bytes(
        settings.GCS_INGEST_ARCHIVE_BUCKET,
        blob_name,
        Path(path).read_bytes(),
        content_type="application/json",
        metadata={"run_id": run_id, "source": Path(path).name},
    )


class MigrationJob:
    """Replace the catalog (categories, medications, pharmacies, prices) with a workbook's contents."""

    def __init__(
        self,
        categories: Optional[CategoryRepository] = None,
        medications: Optional[MedicationRepository] = None,
        pharmacies: Optional[PharmacyRepository] = None,
        prices: Optional[PriceRepository] = None,
    ):
        self.categories = categories or CategoryRepository()
        self.medications = medications or MedicationRepository(self.categories.db)
        self.pharmacies = pharmacies or PharmacyRepository(self.categories.db)
        self.prices = prices or PriceRepository(self.categories.db)

    def run(self, source_path: Optional[str] = None) -> Dict[str, Any]:
        t = Timer()
        run_id = str(uuid.uuid4())
        path = source_path or settings.INGEST_SOURCE_PATH

        workbook = load_workbook(path)
        catalog = parse_workbook(workbook)
        log.info(
            "migration_parsed",
            extra={"extra": {"event": "migration_parsed", "run_id": run_id, "source": path, **catalog.counts()}},
        )

        archived = _archive_source(path, run_id)

        cleared = {
            "categories": self.categories.clear(),
            "medications": self.medications.clear(),
            "pharmacies": self.pharmacies.clear(),
            "prices": self.prices.clear(),
        }

        self.categories.create_many(catalog.categories)
        self.medications.create_many(catalog.medications)
        self.pharmacies.create_many(catalog.pharmacies)
        price_result = self.prices.create_many(catalog.prices, batch_size=settings.PRICE_INSERT_BATCH_SIZE)

        result = {
            "run_id": run_id,
            "source": path,
            "archived_to": archived,
            "cleared": cleared,
            "sheets_seen": catalog.sheets_seen,
            "sheets_skipped": catalog.sheets_skipped,
            "unmapped_conditions": sorted(set(catalog.unmapped_conditions)),
            "categories": len(catalog.categories),
            "medications": len(catalog.medications),
            "pharmacies": len(catalog.pharmacies),
            "prices_inserted": price_result["inserted"],
            "prices_duplicates": price_result["duplicates"],
            "duration_ms": t.ms(),
        }
        log.info("migration_completed", extra={"extra": {"event": "migration_completed", **result}})
        return result


def main(argv: Optional[list] = None) -> int:
    from ops.structured_logger import setup_logging

    setup_logging()
    parser = argparse.ArgumentParser(description="Load the supplier price workbook into Firestore.")
    parser.add_argument("--source", default=settings.INGEST_SOURCE_PATH, help="path to the workbook JSON")
    args = parser.parse_args(argv)
    try:
        MigrationJob().run(args.source)
    except FileNotFoundError as e:
        log.error("migration_source_missing", extra={"extra": {"event": "migration_source_missing", "message": str(e)}})
        return 1
    except Exception as e:
        log.error(
            "migration_failed",
            extra={"extra": {"event": "migration_failed", "error_type": type(e).__name__, "message": str(e)}},
            exc_info=True,
        )
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
