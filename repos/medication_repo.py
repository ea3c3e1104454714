from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from google.api_core.exceptions import AlreadyExists

from models.documents import utcnow
from models.schema import COL_MEDICATIONS
from repos.base import FirestoreRepository


def _matches(med: Dict[str, Any], term: str) -> bool:
    term = term.lower()
    hay = [med.get("name", ""), med.get("generic_name", ""), med.get("description", "")]
    hay.extend(med.get("search_terms") or [])
    return any(term in str(h).lower() for h in hay)


class MedicationRepository(FirestoreRepository):
    collection_name = COL_MEDICATIONS

    def create(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a new medication under its slug. Raises ValueError('medication_exists')."""
        med_id = doc["id"]
        data = {k: v for k, v in doc.items() if k != "id"}
        try:
            self._col().document(med_id).create(data)
        except AlreadyExists:
            raise ValueError("medication_exists")
        return {**data, "id": med_id}

    def create_many(self, docs: List[Dict[str, Any]]) -> int:
        return self._set_many(docs)

    def update(self, doc_id: str, data: Dict[str, Any]) -> None:
        patch = {k: v for k, v in data.items() if k not in ("id", "created_at")}
        patch["updated_at"] = utcnow()
        super().update(doc_id, patch)

    def deactivate(self, doc_id: str) -> None:
        self.update(doc_id, {"active": False})

    def list(
        self,
        category: Optional[str] = None,
        subcategory: Optional[str] = None,
        search: Optional[str] = None,
        active_only: bool = True,
    ) -> List[Dict[str, Any]]:
        clauses = []
        if active_only:
            clauses.append(("active", "==", True))
        if category:
            clauses.append(("category", "==", category))
        if subcategory:
            clauses.append(("subcategory", "==", subcategory))
        rows = self._stream(self._where(*clauses))
        if search:
            rows = [m for m in rows if _matches(m, search)]
        return sorted(rows, key=lambda m: (m.get("name") or "").lower())

    def list_created_since(self, since: datetime, limit: int = 20) -> List[Dict[str, Any]]:
        rows = self._stream(self._where(("active", "==", True), ("created_at", ">=", since)))
        rows.sort(key=lambda m: m.get("created_at"), reverse=True)
        return rows[:limit]

    def count_active(self) -> int:
        return sum(1 for _ in self._where(("active", "==", True)).stream())
