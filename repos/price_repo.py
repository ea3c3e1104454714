from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from google.api_core.exceptions import AlreadyExists

from models.documents import utcnow
from models.schema import COL_PRICES
from repos.base import FirestoreRepository
from utils.ids import price_key

log = logging.getLogger("medprice.repos.prices")


class PriceRepository(FirestoreRepository):
    """
    prices/{price_key(medication_id, pharmacy_id, dosage)}

    The document id is derived from the natural key, so `upsert` never creates
    a second row for the same (medication, pharmacy, dosage).
    """

    collection_name = COL_PRICES

    def upsert(self, medication_id: str, pharmacy_id: str, dosage: str, data: Dict[str, Any]) -> Dict[str, Any]:
        record_id = price_key(medication_id, pharmacy_id, dosage)
        ref = self._col().document(record_id)
        existed = ref.get().exists
        payload = {
            **data,
            "medication_id": medication_id,
            "pharmacy_id": pharmacy_id,
            "dosage": str(dosage),
            "last_updated": data.get("last_updated") or utcnow(),
        }
        ref.set(payload, merge=True)
        return {"record_id": record_id, "created": not existed}

    def update(self, doc_id: str, data: Dict[str, Any]) -> None:
        patch = {k: v for k, v in data.items() if k not in ("id", "medication_id", "pharmacy_id", "dosage")}
        patch["last_updated"] = utcnow()
        super().update(doc_id, patch)

    def create_many(self, docs: List[Dict[str, Any]], batch_size: int = 1000) -> Dict[str, int]:
        """
        Insert prices, tolerating rows whose key already exists.

        Duplicates are counted and skipped; any other store error propagates
        and aborts the remaining inserts.
        """
        inserted = 0
        duplicates = 0
        for start in range(0, len(docs), max(1, batch_size)):
            chunk = docs[start:start + batch_size]
            for doc in chunk:
                record_id = price_key(doc["medication_id"], doc["pharmacy_id"], doc["dosage"])
                try:
                    self._col().document(record_id).create(doc)
                    inserted += 1
                except AlreadyExists:
                    duplicates += 1
            log.info(
                "price_insert_batch",
                extra={"extra": {"event": "price_insert_batch", "offset": start, "size": len(chunk),
                                 "inserted": inserted, "duplicates": duplicates}},
            )
        return {"inserted": inserted, "duplicates": duplicates}

    def list_for_medication(self, medication_id: str, dosage: Optional[str] = None,
                            in_stock: Optional[bool] = None) -> List[Dict[str, Any]]:
        clauses = [("medication_id", "==", medication_id)]
        if dosage:
            clauses.append(("dosage", "==", str(dosage)))
        if in_stock is not None:
            clauses.append(("in_stock", "==", bool(in_stock)))
        return self._stream(self._where(*clauses))

    def list_for_pharmacy(self, pharmacy_id: str) -> List[Dict[str, Any]]:
        return self._stream(self._where(("pharmacy_id", "==", pharmacy_id)))

    def list_updated_since(self, since: datetime, limit: int = 20) -> List[Dict[str, Any]]:
        rows = self._stream(self._where(("last_updated", ">=", since)))
        rows.sort(key=lambda p: p.get("last_updated"), reverse=True)
        return rows[:limit]

    def delete_for_pharmacy(self, pharmacy_id: str) -> int:
        snaps = self._where(("pharmacy_id", "==", pharmacy_id)).stream()
        return self._commit_in_chunks((s.reference, None, False) for s in snaps)

    def count(self) -> int:
        return sum(1 for _ in self._col().stream())

    def count_updated_since(self, since: datetime) -> int:
        return sum(1 for _ in self._where(("last_updated", ">=", since)).stream())
