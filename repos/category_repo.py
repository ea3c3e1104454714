from __future__ import annotations

from typing import Any, Dict, List, Optional

from google.cloud import firestore

from models.schema import COL_CATEGORIES
from repos.base import FirestoreRepository


class CategoryRepository(FirestoreRepository):
    """categories/{category_id} with an ordered, embedded `subcategories` list."""

    collection_name = COL_CATEGORIES

    def list(self, active_only: bool = True) -> List[Dict[str, Any]]:
        rows = self._stream(self._where(("active", "==", True)) if active_only else self._col())
        rows.sort(key=lambda c: (int(c.get("order") or 0), c.get("name") or ""))
        return rows

    def get_subcategory(self, category_id: str, subcategory_id: str) -> Optional[Dict[str, Any]]:
        cat = self.get(category_id)
        if not cat:
            return None
        for sub in cat.get("subcategories") or []:
            if sub.get("id") == subcategory_id:
                return {**sub, "category": {"id": cat["id"], "name": cat.get("name")}}
        return None

    def upsert(self, category_id: str, data: Dict[str, Any]) -> None:
        self._col().document(category_id).set({k: v for k, v in data.items() if k != "id"}, merge=True)

    def create_many(self, docs: List[Dict[str, Any]]) -> int:
        return self._set_many(docs)

    def add_subcategory(self, category_id: str, sub: Dict[str, Any]) -> bool:
        """
        Append a subcategory unless its id already exists in the category.
        Returns False when it was already present. Raises ValueError('category_not_found').
        """
        ref = self._col().document(category_id)
        txn = self.db.transaction()

        @firestore.transactional
        def _run(tx: firestore.Transaction) -> bool:
            snap = ref.get(transaction=tx)
            if not snap.exists:
                raise ValueError("category_not_found")
            subs = list((snap.to_dict() or {}).get("subcategories") or [])
            if any(s.get("id") == sub["id"] for s in subs):
                return False
            subs.append({**sub, "category_id": category_id, "order": int(sub.get("order", len(subs)))})
            tx.set(ref, {"subcategories": subs}, merge=True)
            return True

        return _run(txn)
