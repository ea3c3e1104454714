from __future__ import annotations

from typing import Any, Dict, Iterable, List

from google.api_core.exceptions import AlreadyExists

from models.documents import utcnow
from models.schema import COL_PHARMACIES
from repos.base import FirestoreRepository


class PharmacyRepository(FirestoreRepository):
    collection_name = COL_PHARMACIES

    def create(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        pharmacy_id = doc["id"]
        data = {k: v for k, v in doc.items() if k != "id"}
        try:
            self._col().document(pharmacy_id).create(data)
        except AlreadyExists:
            raise ValueError("pharmacy_exists")
        return {**data, "id": pharmacy_id}

    def create_many(self, docs: List[Dict[str, Any]]) -> int:
        return self._set_many(docs)

    def update(self, doc_id: str, data: Dict[str, Any]) -> None:
        patch = {k: v for k, v in data.items() if k not in ("id", "created_at")}
        patch["updated_at"] = utcnow()
        super().update(doc_id, patch)

    def list(self, active_only: bool = True) -> List[Dict[str, Any]]:
        q = self._where(("active", "==", True)) if active_only else self._col()
        rows = self._stream(q)
        # -rating, then name
        rows.sort(key=lambda p: (-float(p.get("rating") or 0), (p.get("name") or "").lower()))
        return rows

    def get_many(self, ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        out: Dict[str, Dict[str, Any]] = {}
        for pid in set(i for i in ids if i):
            p = self.get(pid)
            if p:
                out[pid] = p
        return out

    def top_rated(self, min_rating: float = 4.0, limit: int = 10) -> List[Dict[str, Any]]:
        rows = [p for p in self.list(active_only=True) if float(p.get("rating") or 0) >= min_rating]
        return rows[:limit]

    def count_active(self) -> int:
        return sum(1 for _ in self._where(("active", "==", True)).stream())
